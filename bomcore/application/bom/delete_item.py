"""
Delete BOM Item use case.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.comparison import ImpactLevel
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.bom.repositories import BOMHistoryRepository, BOMRepository
from bomcore.domain.shared.events import BOMItemRemoved
from bomcore.domain.shared.exceptions import (
    BusinessRuleViolationException,
    EntityNotFoundException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import BOMId, BOMItemId

from .locks import BOMLockRegistry, default_lock_registry

logger = logging.getLogger(__name__)


class RecoveryComplexity(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


@dataclass(frozen=True)
class DeletionImpact:
    """What removing a set of items means for production."""

    total_cost_impact: Decimal
    critical_item_count: int
    item_count: int
    affected_processes: List[str] = field(default_factory=list)
    deleted_by_level: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def analyse(cls, items: Sequence[BOMItem], high_cost_threshold: Decimal) -> "DeletionImpact":
        deleted_by_level: Dict[int, int] = {}
        processes: List[str] = []
        for item in items:
            deleted_by_level[item.level] = deleted_by_level.get(item.level, 0) + 1
            if item.process_step and item.process_step not in processes:
                processes.append(item.process_step)
        return cls(
            total_cost_impact=sum((item.total_cost for item in items), Decimal("0")),
            critical_item_count=sum(1 for item in items if item.is_critical(high_cost_threshold)),
            item_count=len(items),
            affected_processes=processes,
            deleted_by_level=deleted_by_level,
        )

    @property
    def production_impact(self) -> ImpactLevel:
        if self.critical_item_count or self.total_cost_impact > 50000:
            return ImpactLevel.HIGH
        if self.total_cost_impact > 10000 or self.item_count > 5:
            return ImpactLevel.MEDIUM
        return ImpactLevel.LOW

    @property
    def recovery_complexity(self) -> RecoveryComplexity:
        if self.item_count > 10 or self.critical_item_count:
            return RecoveryComplexity.HARD
        if self.item_count > 5:
            return RecoveryComplexity.MEDIUM
        return RecoveryComplexity.EASY

    def warnings(self) -> List[str]:
        warnings = []
        if self.critical_item_count:
            warnings.append(
                f"{self.critical_item_count} critical item(s) removed; production may be affected"
            )
        if self.total_cost_impact > 10000:
            warnings.append(f"Removes {self.total_cost_impact} of material cost")
        return warnings


@dataclass(frozen=True)
class DeleteBOMItemRequest:
    bom_id: BOMId
    bom_item_id: BOMItemId
    deleted_by: str
    delete_children: bool = False
    reason: Optional[str] = None


@dataclass
class DeleteBOMItemResult:
    deleted_item_ids: List[BOMItemId]
    bom: BOM
    impact: DeletionImpact
    warnings: List[str]


class DeleteBOMItemUseCase:
    """
    Remove an item, and optionally its whole subtree, from a BOM.

    Items with children are refused unless ``delete_children`` is set.
    """

    def __init__(
        self,
        boms: BOMRepository,
        history: BOMHistoryRepository,
        locks: Optional[BOMLockRegistry] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.boms = boms
        self.history = history
        self.locks = locks or default_lock_registry()
        self.settings = settings or get_settings()

    async def execute(self, request: DeleteBOMItemRequest) -> DeleteBOMItemResult:
        if not request.deleted_by or not request.deleted_by.strip():
            raise ValidationException("Deleting user is required", "deleted_by", request.deleted_by)

        async with self.locks.hold(request.bom_id):
            bom = await self.boms.find_by_id(request.bom_id)
            if bom is None:
                raise EntityNotFoundException("BOM", request.bom_id)
            if not bom.is_currently_active():
                raise BusinessRuleViolationException(
                    "active_bom", f"Items of inactive BOM '{bom.id}' cannot be deleted"
                )

            item = bom.get_item(request.bom_item_id)
            descendants = bom.descendants_of(item.id)
            if descendants and not request.delete_children:
                raise BusinessRuleViolationException(
                    "item_has_children",
                    f"Item '{item.id}' has {len(descendants)} descendant(s); "
                    "delete them first or delete them together",
                )

            doomed = [item] + descendants
            impact = DeletionImpact.analyse(doomed, self.settings.high_cost_threshold)
            updated = await self.boms.save(
                bom.remove_items([doomed_item.id for doomed_item in doomed], request.deleted_by)
            )

        for doomed_item in doomed:
            await self.history.record(BOMItemRemoved(
                bom_id=str(bom.id),
                item_id=str(doomed_item.id),
                component_id=str(doomed_item.component_id),
                cascaded=doomed_item is not item,
                user_id=request.deleted_by,
                reason=request.reason,
            ))

        warnings = impact.warnings()
        for warning in warnings:
            logger.warning("Deleting item %s from BOM %s: %s", item.id, bom.id, warning)
        logger.info("Deleted %d item(s) from BOM %s", len(doomed), bom.id)

        return DeleteBOMItemResult(
            deleted_item_ids=[doomed_item.id for doomed_item in doomed],
            bom=updated,
            impact=impact,
            warnings=warnings,
        )
