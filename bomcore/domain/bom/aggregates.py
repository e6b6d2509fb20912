"""
BOM Domain - Aggregates.

BOM is the aggregate root that owns the flat, parent-linked item list
of one product revision.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from bomcore.domain.shared.exceptions import (
    DuplicateComponentException,
    EntityNotFoundException,
    StructuralException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import (
    AuditTrail,
    BOMId,
    BOMItemId,
    ComponentId,
)

from .entities import BOMItem


@dataclass(frozen=True)
class BOM:
    """
    Aggregate root for a Bill of Materials revision.

    A BOM defines what components are needed to produce a product
    and in what quantities, for one (product, version) pair.

    Key responsibilities:
    - Keep items consistent with the tree structure (levels, parents)
    - Reject duplicate components on the same level
    - Produce new instances instead of mutating
    """

    id: BOMId
    product_id: ComponentId
    version: str
    is_active: bool
    effective_date: datetime
    audit: AuditTrail
    _items: Tuple[BOMItem, ...] = field(default=(), repr=False)
    expiry_date: Optional[datetime] = None
    description: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.id, BOMId):
            raise ValidationException("BOM id is required", "id", self.id)
        if not isinstance(self.product_id, ComponentId):
            raise ValidationException("Product is required", "product_id", self.product_id)
        if not self.version or not self.version.strip():
            raise ValidationException("BOM version is required", "version", self.version)
        if self.effective_date > self.audit.created_at:
            raise ValidationException(
                "Effective date cannot be later than the creation time",
                "effective_date",
                self.effective_date,
            )
        if self.expiry_date is not None and self.expiry_date <= self.effective_date:
            raise ValidationException(
                "Expiry date must be after the effective date", "expiry_date", self.expiry_date
            )
        object.__setattr__(self, "_items", tuple(self._items))
        self.validate()

    @classmethod
    def create(
        cls,
        bom_id: BOMId,
        product_id: ComponentId,
        version: str,
        created_by: str,
        items: Iterable[BOMItem] = (),
        is_active: bool = True,
        effective_date: Optional[datetime] = None,
        expiry_date: Optional[datetime] = None,
        description: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> BOM:
        """Factory method; effective date defaults to the creation time."""
        audit = AuditTrail.new(created_by, created_at)
        return cls(
            id=bom_id,
            product_id=product_id,
            version=version,
            is_active=is_active,
            effective_date=effective_date or audit.created_at,
            audit=audit,
            _items=tuple(items),
            expiry_date=expiry_date,
            description=description,
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def items(self) -> List[BOMItem]:
        """Get all BOM items."""
        return list(self._items)

    @property
    def max_level(self) -> int:
        return max((item.level for item in self._items), default=0)

    def is_currently_active(self, at: Optional[datetime] = None) -> bool:
        """Check if the BOM is active and inside its validity window."""
        now = at or datetime.now()
        return self.is_active and self.effective_date <= now and (
            self.expiry_date is None or self.expiry_date > now
        )

    # =========================================================================
    # TREE NAVIGATION
    # =========================================================================

    def find_item(self, item_id: BOMItemId) -> Optional[BOMItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def get_item(self, item_id: BOMItemId) -> BOMItem:
        item = self.find_item(item_id)
        if item is None:
            raise EntityNotFoundException("BOMItem", item_id)
        return item

    def children_of(self, parent_item_id: Optional[BOMItemId]) -> List[BOMItem]:
        """Get all direct children of an item (or top-level items for None)."""
        return [item for item in self._items if item.parent_item_id == parent_item_id]

    def descendants_of(self, parent_item_id: BOMItemId) -> List[BOMItem]:
        """Get all descendants (children, grandchildren, etc.) of an item."""
        by_parent: Dict[BOMItemId, List[BOMItem]] = {}
        for item in self._items:
            if item.parent_item_id is not None:
                by_parent.setdefault(item.parent_item_id, []).append(item)

        descendants = []
        stack = list(reversed(by_parent.get(parent_item_id, [])))
        while stack:
            child = stack.pop()
            descendants.append(child)
            stack.extend(reversed(by_parent.get(child.id, [])))
        return descendants

    def expand_to_level(self, max_level: int) -> List[BOMItem]:
        """Items down to and including the given level."""
        if max_level < 0:
            raise ValidationException("Max level must be 0 or greater", "max_level", max_level)
        return [item for item in self._items if item.level <= max_level]

    def next_sequence(self, parent_item_id: Optional[BOMItemId]) -> int:
        siblings = self.children_of(parent_item_id)
        return max((item.sequence for item in siblings), default=0) + 1

    # =========================================================================
    # CALCULATIONS
    # =========================================================================

    def total_cost(self) -> Decimal:
        """Flat, scrap-adjusted cost: every item counted once."""
        return sum((item.total_cost for item in self._items), Decimal("0"))

    # =========================================================================
    # COMMANDS (return new instances)
    # =========================================================================

    def add_item(self, item: BOMItem, user_id: Optional[str] = None) -> BOM:
        """
        Return a new BOM with the item added.

        Validates:
        - Item belongs to this BOM
        - Component doesn't already exist on the same level
        - Parent exists one level up
        """
        self._check_duplicate(item)
        return self._with_items(self._items + (item,), user_id)

    def remove_items(self, item_ids: Iterable[BOMItemId], user_id: Optional[str] = None) -> BOM:
        """Return a new BOM without the given items."""
        doomed = set(item_ids)
        for item_id in doomed:
            self.get_item(item_id)
        remaining = tuple(item for item in self._items if item.id not in doomed)
        return self._with_items(remaining, user_id)

    def replace_item(self, item: BOMItem, user_id: Optional[str] = None) -> BOM:
        """Return a new BOM with an existing item swapped for an updated copy."""
        self.get_item(item.id)
        items = tuple(item if existing.id == item.id else existing for existing in self._items)
        return self._with_items(items, user_id)

    def _with_items(self, items: Tuple[BOMItem, ...], user_id: Optional[str]) -> BOM:
        audit = self.audit.touched(user_id) if user_id else self.audit
        return replace(self, _items=items, audit=audit)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _check_duplicate(self, new_item: BOMItem) -> None:
        for existing in self._items:
            if existing.id == new_item.id:
                raise ValidationException(
                    f"BOM item '{new_item.id}' already exists", "id", new_item.id
                )
            if (existing.component_id == new_item.component_id
                    and existing.level == new_item.level):
                raise DuplicateComponentException(self.id, new_item.component_id, new_item.level)

    def validate(self) -> None:
        """Validate aggregate invariants."""
        seen_ids = set()
        seen_keys = set()
        by_id = {item.id: item for item in self._items}

        for item in self._items:
            if item.bom_id != self.id:
                raise ValidationException(
                    f"Item '{item.id}' belongs to BOM '{item.bom_id}', not '{self.id}'",
                    "bom_id",
                    item.bom_id,
                )
            if item.id in seen_ids:
                raise ValidationException(f"BOM item '{item.id}' already exists", "id", item.id)
            seen_ids.add(item.id)

            key = (item.component_id, item.level)
            if key in seen_keys:
                raise DuplicateComponentException(self.id, item.component_id, item.level)
            seen_keys.add(key)

            if item.parent_item_id is not None:
                parent = by_id.get(item.parent_item_id)
                if parent is None:
                    raise StructuralException(
                        f"Item '{item.id}' has unknown parent '{item.parent_item_id}'",
                        code="INVALID_PARENT",
                        details={"item_id": str(item.id), "parent_item_id": str(item.parent_item_id)},
                    )
                if parent.level != item.level - 1:
                    raise StructuralException(
                        f"Item '{item.id}' is at level {item.level} but its parent "
                        f"'{parent.id}' is at level {parent.level}",
                        code="INCORRECT_LEVEL",
                        details={"item_id": str(item.id), "level": item.level},
                    )
