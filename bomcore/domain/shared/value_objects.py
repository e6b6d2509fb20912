"""
Shared Value Objects used across the BOM domain.

Value Objects are immutable objects that describe characteristics of a thing.
Two value objects are equal if all their properties are equal.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from .exceptions import ValidationException


# =============================================================================
# NUMERIC HELPERS
# =============================================================================

def to_decimal(value: Any, field: str) -> Decimal:
    """Convert ints, strings and floats to Decimal through their text form."""
    if isinstance(value, bool) or value is None:
        raise ValidationException(f"{field} must be a number", field, value)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationException(f"{field} must be a number", field, value)
    if not result.is_finite():
        raise ValidationException(f"{field} must be finite", field, value)
    return result


def quantize_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round a monetary amount for presentation. Never used mid-calculation."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ComponentType(str, Enum):
    """Classification of a component within a BOM."""

    RAW_MATERIAL = "RAW_MATERIAL"
    SEMI_FINISHED = "SEMI_FINISHED"
    PURCHASED_PART = "PURCHASED_PART"
    SUB_ASSEMBLY = "SUB_ASSEMBLY"
    CONSUMABLE = "CONSUMABLE"

    @property
    def display_name(self) -> str:
        return _COMPONENT_TYPE_NAMES[self]

    @property
    def is_purchased(self) -> bool:
        """Check if this type is bought in rather than produced."""
        return self in (
            ComponentType.RAW_MATERIAL,
            ComponentType.PURCHASED_PART,
            ComponentType.CONSUMABLE,
        )

    @property
    def is_manufactured(self) -> bool:
        """Check if this type is produced in-house."""
        return not self.is_purchased


_COMPONENT_TYPE_NAMES = {
    ComponentType.RAW_MATERIAL: "Raw material",
    ComponentType.SEMI_FINISHED: "Semi-finished",
    ComponentType.PURCHASED_PART: "Purchased part",
    ComponentType.SUB_ASSEMBLY: "Sub-assembly",
    ComponentType.CONSUMABLE: "Consumable",
}


# =============================================================================
# IDENTIFIERS
# =============================================================================

@dataclass(frozen=True)
class _Identifier:
    value: str

    _field = "id"

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationException(
                f"{self._field} is required", self._field, self.value
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ComponentId(_Identifier):
    """Identifier of a producible or purchasable item."""

    _field = "component_id"


@dataclass(frozen=True)
class BOMId(_Identifier):
    """Identifier of one BOM revision."""

    _field = "bom_id"


@dataclass(frozen=True)
class BOMItemId(_Identifier):
    """Identifier of one BOM node, unique within a BOM."""

    _field = "bom_item_id"


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Unit:
    """
    Value object representing a unit of measure.
    """

    code: str  # EA, KG, M, ...
    name: str

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValidationException("Unit code is required", "unit.code", self.code)
        if not self.name or not self.name.strip():
            raise ValidationException("Unit name is required", "unit.name", self.name)

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class ComponentInfo:
    """Descriptive attributes resolved from the component catalog."""

    id: ComponentId
    code: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class AuditTrail:
    """
    Value object representing who created and last modified a record.
    """

    created_by: str
    created_at: datetime
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.created_by or not self.created_by.strip():
            raise ValidationException("Creator is required", "created_by", self.created_by)
        if self.updated_by is None:
            object.__setattr__(self, "updated_by", self.created_by)
        if self.updated_at is None:
            object.__setattr__(self, "updated_at", self.created_at)
        if self.updated_at < self.created_at:
            raise ValidationException(
                "Update time cannot precede creation time", "updated_at", self.updated_at
            )

    @classmethod
    def new(cls, user_id: str, at: Optional[datetime] = None) -> AuditTrail:
        return cls(created_by=user_id, created_at=at or datetime.now())

    def touched(self, user_id: str, at: Optional[datetime] = None) -> AuditTrail:
        """Return a copy stamped with a new modification."""
        return replace(self, updated_by=user_id, updated_at=at or datetime.now())
