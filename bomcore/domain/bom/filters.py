"""
BOM Domain - Item filters.

Upstream filtering applied before tree assembly, statistics and comparison.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from bomcore.domain.shared.exceptions import ValidationException
from bomcore.domain.shared.value_objects import ComponentType

from .entities import BOMItem


@dataclass(frozen=True)
class ItemFilter:
    """Which BOM items take part in a query."""

    max_level: Optional[int] = None
    include_inactive: bool = False
    include_optional: bool = True
    process_step: Optional[str] = None
    component_type: Optional[ComponentType] = None
    as_of: Optional[datetime] = None

    def __post_init__(self):
        if self.max_level is not None and self.max_level < 0:
            raise ValidationException("Max level must be 0 or greater", "max_level", self.max_level)

    def accepts(self, item: BOMItem, now: datetime) -> bool:
        if self.max_level is not None and item.level > self.max_level:
            return False
        if not self.include_inactive and not item.is_currently_active(now):
            return False
        if not self.include_optional and item.is_optional:
            return False
        if self.process_step and item.process_step != self.process_step:
            return False
        if self.component_type is not None and item.component_type != self.component_type:
            return False
        return True

    def apply(self, items: Iterable[BOMItem]) -> List[BOMItem]:
        """Keep input order; parents filtered out leave their children orphaned."""
        now = self.as_of or datetime.now()
        return [item for item in items if self.accepts(item, now)]
