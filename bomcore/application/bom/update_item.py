"""
Update BOM Item use case.

Changes the quantities, cost and descriptive fields of one item. Structure
(component, parent, level) is never changed here; moving a component is a
delete plus an add.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.comparison import FieldChange, ImpactLevel, relative_change
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.bom.repositories import BOMHistoryRepository, BOMRepository
from bomcore.domain.shared.events import BOMItemUpdated
from bomcore.domain.shared.exceptions import (
    BusinessRuleViolationException,
    EntityNotFoundException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import BOMId, BOMItemId, to_decimal

from .locks import BOMLockRegistry, default_lock_registry

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "quantity",
    "unit_cost",
    "scrap_rate",
    "is_optional",
    "position",
    "process_step",
    "remarks",
    "effective_date",
    "expiry_date",
)
DECIMAL_FIELDS = frozenset({"quantity", "unit_cost", "scrap_rate"})
CRITICAL_FIELDS = frozenset({"quantity", "unit_cost", "is_optional"})

# Quantity changes above this percentage need force_update
LARGE_QUANTITY_CHANGE = Decimal("50")


@dataclass(frozen=True)
class UpdateBOMItemRequest:
    """Fields left as None keep their current value."""

    bom_id: BOMId
    bom_item_id: BOMItemId
    updated_by: str
    quantity: Optional[Decimal] = None
    unit_cost: Optional[Decimal] = None
    scrap_rate: Optional[Decimal] = None
    is_optional: Optional[bool] = None
    position: Optional[str] = None
    process_step: Optional[str] = None
    remarks: Optional[str] = None
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    reason: Optional[str] = None
    force_update: bool = False


@dataclass
class UpdateBOMItemResult:
    item: BOMItem
    previous: BOMItem
    bom: BOM
    changes: List[FieldChange]
    is_critical_change: bool
    affected_item_ids: List[BOMItemId] = field(default_factory=list)

    @property
    def cost_impact(self) -> Decimal:
        return self.item.total_cost - self.previous.total_cost

    @property
    def production_impact(self) -> ImpactLevel:
        impact = abs(self.cost_impact)
        if impact > 50000 or len(self.affected_item_ids) > 10:
            return ImpactLevel.HIGH
        if impact > 10000 or len(self.affected_item_ids) > 5:
            return ImpactLevel.MEDIUM
        return ImpactLevel.LOW

    def recommendations(self) -> List[str]:
        hints = []
        if self.cost_impact > 10000:
            hints.append("Cost increase; review the product price.")
        if self.affected_item_ids:
            hints.append("Review the quantities of the sub-components as well.")
        return hints


def detect_changes(item: BOMItem, request: UpdateBOMItemRequest) -> List[FieldChange]:
    """Requested values that differ from the item, in UPDATABLE_FIELDS order."""
    changes = []
    for name in UPDATABLE_FIELDS:
        value = getattr(request, name)
        if value is None:
            continue
        if name in DECIMAL_FIELDS:
            value = to_decimal(value, name)
        old_value = getattr(item, name)
        if old_value == value:
            continue
        percentage = None
        if name in ("quantity", "unit_cost"):
            percentage = relative_change(value - old_value, old_value)
        changes.append(FieldChange(name, old_value, value, percentage))
    return changes


class UpdateBOMItemUseCase:
    """
    Apply field changes to one item of an active BOM.

    Business rules:
    - a high-cost item cannot be made optional
    - a quantity change above 50% needs ``force_update``
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

    async def execute(self, request: UpdateBOMItemRequest) -> UpdateBOMItemResult:
        if not request.updated_by or not request.updated_by.strip():
            raise ValidationException("Updating user is required", "updated_by", request.updated_by)
        now = datetime.now()
        if request.effective_date is not None and request.effective_date > now:
            raise ValidationException(
                "Effective date cannot be in the future", "effective_date", request.effective_date
            )

        async with self.locks.hold(request.bom_id):
            bom = await self.boms.find_by_id(request.bom_id)
            if bom is None:
                raise EntityNotFoundException("BOM", request.bom_id)
            if not bom.is_currently_active():
                raise BusinessRuleViolationException(
                    "active_bom", f"Items of inactive BOM '{bom.id}' cannot be changed"
                )

            previous = bom.get_item(request.bom_item_id)
            changes = detect_changes(previous, request)
            if not changes:
                raise ValidationException("No fields changed", "fields")
            self._check_rules(previous, changes, request)

            values: Dict[str, Any] = {change.field: change.new_value for change in changes}
            item = previous.replace(audit=previous.audit.touched(request.updated_by, now), **values)
            updated = await self.boms.save(bom.replace_item(item, request.updated_by))

        changed_fields = {change.field for change in changes}
        cost_impact = item.total_cost - previous.total_cost
        is_critical = bool(changed_fields & CRITICAL_FIELDS) or (
            abs(cost_impact) > self.settings.high_cost_threshold
        )
        affected = [child.id for child in bom.descendants_of(item.id)] if is_critical else []

        await self.history.record(BOMItemUpdated(
            bom_id=str(bom.id),
            item_id=str(item.id),
            component_id=str(item.component_id),
            changed_fields=tuple(change.field for change in changes),
            cost_impact=cost_impact,
            user_id=request.updated_by,
            reason=request.reason,
        ))
        logger.info(
            "Updated item %s of BOM %s: %s",
            item.id, bom.id, ", ".join(change.field for change in changes),
        )
        return UpdateBOMItemResult(
            item=item,
            previous=previous,
            bom=updated,
            changes=changes,
            is_critical_change=is_critical,
            affected_item_ids=affected,
        )

    def _check_rules(
        self, item: BOMItem, changes: List[FieldChange], request: UpdateBOMItemRequest
    ) -> None:
        by_field = {change.field: change for change in changes}

        optional = by_field.get("is_optional")
        if optional is not None and optional.new_value and (
            item.total_cost > self.settings.high_cost_threshold
        ):
            raise BusinessRuleViolationException(
                "critical_item_optional",
                f"High-cost item '{item.id}' cannot be made optional",
            )

        quantity = by_field.get("quantity")
        if quantity is not None and not request.force_update and (
            abs(quantity.percentage_change) > LARGE_QUANTITY_CHANGE
        ):
            raise BusinessRuleViolationException(
                "large_quantity_change",
                f"Quantity of item '{item.id}' changes by more than {LARGE_QUANTITY_CHANGE}%; "
                "set force_update to apply it",
            )
