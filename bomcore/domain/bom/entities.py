"""
BOM Domain - Entities.

BOMItem represents a single item in the Bill of Materials structure.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from bomcore.domain.shared.exceptions import ValidationException
from bomcore.domain.shared.value_objects import (
    AuditTrail,
    BOMId,
    BOMItemId,
    ComponentId,
    ComponentType,
    Unit,
    to_decimal,
)

HUNDRED = Decimal("100")

# Default threshold above which an item counts as high-cost
DEFAULT_HIGH_COST_THRESHOLD = Decimal("10000")


@dataclass(frozen=True)
class BOMItem:
    """
    A single item in a BOM structure.

    Represents the relationship between a parent item and a child
    component, with the quantity and cost needed for one parent.
    Immutable: "updates" go through ``replace`` and produce a new item.
    """

    id: BOMItemId
    bom_id: BOMId
    component_id: ComponentId
    parent_item_id: Optional[BOMItemId]  # None for top-level items
    level: int
    sequence: int  # Ordering among siblings only
    quantity: Decimal
    unit: Unit
    unit_cost: Decimal
    scrap_rate: Decimal  # Percent, 0..100
    is_optional: bool
    component_type: ComponentType
    effective_date: datetime
    audit: AuditTrail
    expiry_date: Optional[datetime] = None

    # Assembly position (e.g. "PCB-U1")
    position: Optional[str] = None
    # Process step the component is consumed in (e.g. "SMT")
    process_step: Optional[str] = None
    remarks: Optional[str] = None

    def __post_init__(self):
        for name, kind in (("id", BOMItemId), ("bom_id", BOMId), ("component_id", ComponentId)):
            if not isinstance(getattr(self, name), kind):
                raise ValidationException(f"{name} is required", name, getattr(self, name))
        if self.parent_item_id is not None and not isinstance(self.parent_item_id, BOMItemId):
            raise ValidationException(
                "parent_item_id must be a BOM item id", "parent_item_id", self.parent_item_id
            )
        if not isinstance(self.component_type, ComponentType):
            raise ValidationException(
                "component_type is required", "component_type", self.component_type
            )
        if not isinstance(self.unit, Unit):
            raise ValidationException("unit is required", "unit", self.unit)

        if isinstance(self.level, bool) or not isinstance(self.level, int) or self.level < 0:
            raise ValidationException("Level must be a non-negative integer", "level", self.level)
        if self.level == 0 and self.parent_item_id is not None:
            raise ValidationException(
                "A level 0 item cannot have a parent", "parent_item_id", self.parent_item_id
            )
        if self.level > 0 and self.parent_item_id is None:
            raise ValidationException(
                f"A level {self.level} item requires a parent", "parent_item_id", None
            )
        if isinstance(self.sequence, bool) or not isinstance(self.sequence, int):
            raise ValidationException("Sequence must be an integer", "sequence", self.sequence)

        quantity = to_decimal(self.quantity, "quantity")
        if quantity <= 0:
            raise ValidationException("Quantity must be greater than 0", "quantity", quantity)
        unit_cost = to_decimal(self.unit_cost, "unit_cost")
        if unit_cost < 0:
            raise ValidationException("Unit cost cannot be negative", "unit_cost", unit_cost)
        scrap_rate = to_decimal(self.scrap_rate, "scrap_rate")
        if not (0 <= scrap_rate <= 100):
            raise ValidationException(
                "Scrap rate must be between 0 and 100", "scrap_rate", scrap_rate
            )
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_cost", unit_cost)
        object.__setattr__(self, "scrap_rate", scrap_rate)

        if self.expiry_date is not None and self.expiry_date <= self.effective_date:
            raise ValidationException(
                "Expiry date must be after the effective date", "expiry_date", self.expiry_date
            )

    # =========================================================================
    # CALCULATIONS
    # =========================================================================

    @property
    def actual_quantity(self) -> Decimal:
        """Quantity including expected scrap."""
        if not self.scrap_rate:
            return self.quantity
        return self.quantity * (1 + self.scrap_rate / HUNDRED)

    @property
    def total_cost(self) -> Decimal:
        """Scrap-adjusted quantity times unit cost."""
        return self.actual_quantity * self.unit_cost

    # =========================================================================
    # PREDICATES
    # =========================================================================

    def is_currently_active(self, at: Optional[datetime] = None) -> bool:
        """Check if the item is inside its effective/expiry window."""
        now = at or datetime.now()
        return self.effective_date <= now and (
            self.expiry_date is None or self.expiry_date > now
        )

    @property
    def is_top_level(self) -> bool:
        return self.level == 0 and self.parent_item_id is None

    @property
    def is_sub_component(self) -> bool:
        return self.level > 0 and self.parent_item_id is not None

    def is_critical(self, high_cost_threshold: Decimal = DEFAULT_HIGH_COST_THRESHOLD) -> bool:
        """High-cost or mandatory; either condition alone qualifies."""
        return self.total_cost > high_cost_threshold or not self.is_optional

    def is_used_in_process(self, process_step: str) -> bool:
        return self.process_step == process_step

    # =========================================================================
    # COPIES
    # =========================================================================

    def replace(self, **changes: Any) -> BOMItem:
        """Return a validated copy with the given fields changed."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationException(
                f"Unknown BOM item fields: {', '.join(sorted(unknown))}",
                "fields",
                sorted(unknown),
            )
        return replace(self, **changes)
