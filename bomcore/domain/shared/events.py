"""
Domain Events.

Domain events are records of significant business occurrences.
The application layer hands them to the BOM history repository.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for all domain events.

    Domain events are immutable records of something that happened in the domain.
    They are used for:
    - Audit trail of BOM changes
    - Triggering side effects (recalculations, notifications)
    """

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=datetime.now)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__


# =============================================================================
# BOM EVENTS
# =============================================================================

@dataclass(frozen=True)
class BOMItemAdded(DomainEvent):
    """Event raised when an item is added to a BOM."""

    bom_id: str = ""
    item_id: str = ""
    component_id: str = ""
    parent_item_id: Optional[str] = None
    quantity: str = ""
    user_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BOMItemRemoved(DomainEvent):
    """Event raised when an item is removed from a BOM."""

    bom_id: str = ""
    item_id: str = ""
    component_id: str = ""
    cascaded: bool = False
    user_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BOMItemUpdated(DomainEvent):
    """Event raised when fields of a BOM item are changed."""

    bom_id: str = ""
    item_id: str = ""
    component_id: str = ""
    changed_fields: Tuple[str, ...] = ()
    cost_impact: Decimal = Decimal("0")
    user_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BOMCopied(DomainEvent):
    """Event raised when a BOM revision is copied into a new one."""

    source_bom_id: str = ""
    target_bom_id: str = ""
    copied_count: int = 0
    skipped_count: int = 0
    user_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BOMCompared(DomainEvent):
    """Event raised when two BOM revisions are compared."""

    source_bom_id: str = ""
    target_bom_id: str = ""
    total_changes: int = 0
    cost_difference: Decimal = Decimal("0")
    user_id: Optional[str] = None


@dataclass(frozen=True)
class CircularReferenceRejected(DomainEvent):
    """Event raised when an insertion is refused by the cycle check."""

    bom_id: str = ""
    component_id: str = ""
    message: str = ""
