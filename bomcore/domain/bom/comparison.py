"""
BOM Domain - Revision comparison.

Aligns two independently identified BOM trees by structural key
``(component_id, level, parent_key)`` and classifies what changed.

A component that moves to another parent or level between revisions is
reported as REMOVED plus ADDED; structural analysis only flags it as a
relocation candidate.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from bomcore.domain.shared.exceptions import (
    IncomparableStructureException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import (
    BOMItemId,
    ComponentId,
    ComponentInfo,
    quantize_money,
    to_decimal,
)

from .entities import BOMItem
from .filters import ItemFilter
from .tree import TreeNode, assemble_tree, iter_nodes

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

StructuralKey = Tuple[ComponentId, int, Optional[tuple]]

PROPERTY_FIELDS = ("position", "process_step", "is_optional", "remarks", "scrap_rate", "unit")


class DifferenceType(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    QUANTITY_CHANGED = "QUANTITY_CHANGED"
    COST_CHANGED = "COST_CHANGED"
    PROPERTIES_CHANGED = "PROPERTIES_CHANGED"

    @property
    def is_modification(self) -> bool:
        return self not in (DifferenceType.ADDED, DifferenceType.REMOVED)


class ImpactLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class StructuralChangeType(str, Enum):
    SEQUENCE_CHANGE = "SEQUENCE_CHANGE"
    LEVEL_CHANGE = "LEVEL_CHANGE"
    PARENT_CHANGE = "PARENT_CHANGE"


# =============================================================================
# OPTIONS
# =============================================================================

@dataclass(frozen=True)
class CompareOptions:
    """Comparison switches; filters apply to both sides before alignment."""

    ignore_inactive_items: bool = False
    ignore_optional_items: bool = False
    ignore_minor_cost_changes: bool = False
    minor_cost_threshold: Decimal = ZERO
    include_cost_impact_analysis: bool = True
    include_structural_analysis: bool = True
    compare_to_level: Optional[int] = None
    ignore_fields: FrozenSet[str] = frozenset()
    as_of: Optional[datetime] = None

    def __post_init__(self):
        threshold = to_decimal(self.minor_cost_threshold, "minor_cost_threshold")
        if threshold < 0:
            raise ValidationException(
                "Minor cost threshold cannot be negative", "minor_cost_threshold", threshold
            )
        object.__setattr__(self, "minor_cost_threshold", threshold)
        object.__setattr__(self, "ignore_fields", frozenset(self.ignore_fields))
        if self.compare_to_level is not None and self.compare_to_level < 0:
            raise ValidationException(
                "Compare level must be 0 or greater", "compare_to_level", self.compare_to_level
            )

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> CompareOptions:
        """Build from a plain mapping, e.g. a task payload."""
        if not data:
            return cls()
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValidationException(
                f"Unknown comparison options: {', '.join(sorted(unknown))}",
                "options",
                sorted(unknown),
            )
        values = dict(data)
        if "ignore_fields" in values:
            values["ignore_fields"] = frozenset(values["ignore_fields"] or ())
        if isinstance(values.get("as_of"), str):
            values["as_of"] = datetime.fromisoformat(values["as_of"])
        return cls(**values)

    def item_filter(self) -> ItemFilter:
        return ItemFilter(
            max_level=self.compare_to_level,
            include_inactive=not self.ignore_inactive_items,
            include_optional=not self.ignore_optional_items,
            as_of=self.as_of,
        )


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any
    percentage_change: Optional[Decimal] = None


@dataclass(frozen=True)
class ComparisonDifference:
    """One entry of the difference list."""

    type: DifferenceType
    key: StructuralKey
    component_id: ComponentId
    component_code: str
    component_name: str
    level: int
    source: Optional[TreeNode]
    target: Optional[TreeNode]
    cost_impact: Decimal
    significance: ImpactLevel
    description: str
    changed_fields: Tuple[FieldChange, ...] = ()

    @property
    def path(self) -> str:
        return format_key(self.key)

    def to_dict(self, money_places: int = 2) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "path": self.path,
            "component_id": str(self.component_id),
            "component_code": self.component_code,
            "component_name": self.component_name,
            "level": self.level,
            "source_item_id": str(self.source.bom_item_id) if self.source else None,
            "target_item_id": str(self.target.bom_item_id) if self.target else None,
            "cost_impact": str(quantize_money(self.cost_impact, money_places)),
            "significance": self.significance.value,
            "description": self.description,
            "changed_fields": [
                {
                    "field": change.field,
                    "old_value": _plain(change.old_value),
                    "new_value": _plain(change.new_value),
                    "percentage_change": (
                        str(change.percentage_change)
                        if change.percentage_change is not None else None
                    ),
                }
                for change in self.changed_fields
            ],
        }


@dataclass(frozen=True)
class StructuralChange:
    type: StructuralChangeType
    component_id: ComponentId
    component_code: str
    description: str
    impact: ImpactLevel


@dataclass(frozen=True)
class CostChange:
    component_id: ComponentId
    component_code: str
    source_cost: Decimal
    target_cost: Decimal

    @property
    def difference(self) -> Decimal:
        return self.target_cost - self.source_cost

    @property
    def percentage_change(self) -> Decimal:
        return relative_change(self.difference, self.source_cost)


@dataclass(frozen=True)
class ComparisonStatistics:
    added_count: int
    removed_count: int
    modified_count: int
    unchanged_count: int
    source_total_cost: Decimal
    target_total_cost: Decimal
    major_change_count: int
    structural_change_count: int

    @property
    def total_changes(self) -> int:
        return self.added_count + self.removed_count + self.modified_count

    @property
    def cost_difference(self) -> Decimal:
        return self.target_total_cost - self.source_total_cost

    @property
    def cost_change_percentage(self) -> Decimal:
        return relative_change(self.cost_difference, self.source_total_cost)

    @property
    def complexity(self) -> ImpactLevel:
        if self.total_changes > 50 or self.structural_change_count > 10:
            return ImpactLevel.HIGH
        if self.total_changes > 20 or self.structural_change_count > 5:
            return ImpactLevel.MEDIUM
        return ImpactLevel.LOW

    @property
    def confidence_level(self) -> int:
        """Heuristic trust in the alignment, in percent."""
        confidence = 100
        if self.structural_change_count > self.total_changes * 0.5:
            confidence = 85
        if abs(self.cost_change_percentage) > 50:
            confidence = min(confidence, 90)
        return confidence

    def to_dict(self, money_places: int = 2) -> Dict[str, Any]:
        return {
            "added_count": self.added_count,
            "removed_count": self.removed_count,
            "modified_count": self.modified_count,
            "unchanged_count": self.unchanged_count,
            "total_changes": self.total_changes,
            "source_total_cost": str(quantize_money(self.source_total_cost, money_places)),
            "target_total_cost": str(quantize_money(self.target_total_cost, money_places)),
            "cost_difference": str(quantize_money(self.cost_difference, money_places)),
            "cost_change_percentage": str(quantize_money(self.cost_change_percentage, 1)),
            "major_change_count": self.major_change_count,
            "structural_change_count": self.structural_change_count,
            "complexity": self.complexity.value,
            "confidence_level": self.confidence_level,
        }


@dataclass
class BOMComparison:
    """Both assembled trees, the ordered difference list and statistics."""

    source_tree: List[TreeNode]
    target_tree: List[TreeNode]
    differences: List[ComparisonDifference]
    statistics: ComparisonStatistics
    structural_changes: List[StructuralChange] = field(default_factory=list)
    cost_changes: List[CostChange] = field(default_factory=list)

    @property
    def is_identical(self) -> bool:
        return not self.differences

    def of_type(self, difference_type: DifferenceType) -> List[ComparisonDifference]:
        return [diff for diff in self.differences if diff.type == difference_type]

    @property
    def added(self) -> List[ComparisonDifference]:
        return self.of_type(DifferenceType.ADDED)

    @property
    def removed(self) -> List[ComparisonDifference]:
        return self.of_type(DifferenceType.REMOVED)

    @property
    def modified(self) -> List[ComparisonDifference]:
        return [diff for diff in self.differences if diff.type.is_modification]

    def recommendations(self) -> List[str]:
        """Review hints derived from the statistics."""
        stats = self.statistics
        hints = []
        if stats.major_change_count > 5:
            hints.append(
                "Many major changes; coordinate with quality and production planning."
            )
        if abs(stats.cost_change_percentage) > 20:
            hints.append(
                f"Total cost changed by {quantize_money(stats.cost_change_percentage, 1)}%; "
                "a cost review is required."
            )
        if stats.structural_change_count > 10:
            hints.append("Many structural changes; re-check the BOM tree structure.")
        critical_removals = sum(
            1 for diff in self.removed if diff.significance == ImpactLevel.HIGH
        )
        if critical_removals:
            hints.append(
                f"{critical_removals} significant component(s) removed; verify producibility."
            )
        if stats.added_count > stats.removed_count * 2:
            hints.append("Many components added; update inventory and procurement plans.")
        if stats.confidence_level < 90:
            hints.append("Low comparison confidence; review the major changes manually.")
        if not hints:
            hints.append("Comparison completed without findings.")
        return hints

    def to_dict(self, money_places: int = 2) -> Dict[str, Any]:
        return {
            "differences": [diff.to_dict(money_places) for diff in self.differences],
            "statistics": self.statistics.to_dict(money_places),
            "structural_changes": [
                {
                    "type": change.type.value,
                    "component_id": str(change.component_id),
                    "component_code": change.component_code,
                    "description": change.description,
                    "impact": change.impact.value,
                }
                for change in self.structural_changes
            ],
            "cost_changes": [
                {
                    "component_id": str(change.component_id),
                    "component_code": change.component_code,
                    "source_cost": str(quantize_money(change.source_cost, money_places)),
                    "target_cost": str(quantize_money(change.target_cost, money_places)),
                    "difference": str(quantize_money(change.difference, money_places)),
                }
                for change in self.cost_changes
            ],
            "recommendations": self.recommendations(),
        }


# =============================================================================
# COMPARISON
# =============================================================================

def compare_boms(
    source_items: Iterable[BOMItem],
    target_items: Iterable[BOMItem],
    components: Mapping[ComponentId, ComponentInfo],
    options: Optional[CompareOptions] = None,
) -> BOMComparison:
    """
    Compare two item sets.

    Raises IncomparableStructureException when either side holds two nodes
    with the same structural key.
    """
    options = options or CompareOptions()
    item_filter = options.item_filter()
    source_items = list(source_items)
    target_items = list(target_items)

    source_tree = assemble_tree(item_filter.apply(source_items), components, as_of=options.as_of)
    target_tree = assemble_tree(item_filter.apply(target_items), components, as_of=options.as_of)

    # Keys come from the unfiltered items so filtering never moves a node
    source_index = index_by_key(source_tree, "source", source_items)
    target_index = index_by_key(target_tree, "target", target_items)

    differences: List[ComparisonDifference] = []
    cost_changes: List[CostChange] = []
    structural_changes: List[StructuralChange] = []

    for key, node in target_index.items():
        if key not in source_index:
            differences.append(_difference(
                DifferenceType.ADDED, key, None, node, node.total_cost,
                _significance(node.total_cost, removal=False),
            ))
    for key, node in source_index.items():
        if key not in target_index:
            differences.append(_difference(
                DifferenceType.REMOVED, key, node, None, -node.total_cost,
                _significance(node.total_cost, removal=True),
            ))

    matched = 0
    modified = 0
    for key, source in source_index.items():
        target = target_index.get(key)
        if target is None:
            continue
        matched += 1
        cost_impact = target.total_cost - source.total_cost

        changes = compare_fields(source.item, target.item, options)
        if changes:
            modified += 1
            differences.append(_difference(
                _classify(changes), key, source, target, cost_impact,
                _significance(cost_impact, removal=False), tuple(changes),
            ))
            if options.include_cost_impact_analysis and cost_impact:
                cost_changes.append(CostChange(
                    component_id=source.component_id,
                    component_code=source.component_code,
                    source_cost=source.total_cost,
                    target_cost=target.total_cost,
                ))
        if options.include_structural_analysis and source.sequence != target.sequence:
            structural_changes.append(StructuralChange(
                type=StructuralChangeType.SEQUENCE_CHANGE,
                component_id=source.component_id,
                component_code=source.component_code,
                description=f"Sequence changed from {source.sequence} to {target.sequence}",
                impact=ImpactLevel.LOW,
            ))

    if options.include_structural_analysis:
        structural_changes.extend(_relocation_candidates(differences))

    statistics = ComparisonStatistics(
        added_count=sum(1 for diff in differences if diff.type == DifferenceType.ADDED),
        removed_count=sum(1 for diff in differences if diff.type == DifferenceType.REMOVED),
        modified_count=modified,
        unchanged_count=matched - modified,
        source_total_cost=sum((node.total_cost for node in source_index.values()), ZERO),
        target_total_cost=sum((node.total_cost for node in target_index.values()), ZERO),
        major_change_count=sum(1 for diff in differences if diff.significance == ImpactLevel.HIGH),
        structural_change_count=len(structural_changes),
    )
    logger.debug(
        "Compared %d source and %d target nodes: %d differences",
        len(source_index), len(target_index), len(differences),
    )
    return BOMComparison(
        source_tree=source_tree,
        target_tree=target_tree,
        differences=differences,
        statistics=statistics,
        structural_changes=structural_changes,
        cost_changes=cost_changes,
    )


def index_by_key(
    roots: Iterable[TreeNode],
    side: str,
    items: Optional[Iterable[BOMItem]] = None,
) -> Dict[StructuralKey, TreeNode]:
    """
    Map structural key -> node in pre-order.

    The parent part of a key is the parent item's own key, resolved
    against ``items`` (the unfiltered item set) when given, otherwise
    against the items of the tree itself. Identical components under
    differently keyed parents never collide.
    """
    nodes = list(iter_nodes(roots))
    key_of = structural_keys(items if items is not None else [node.item for node in nodes])
    index: Dict[StructuralKey, TreeNode] = {}
    collisions: Dict[StructuralKey, List[str]] = {}

    for node in nodes:
        key = key_of(node.item)
        if key in index:
            collisions.setdefault(key, [str(index[key].bom_item_id)]).append(str(node.bom_item_id))
        else:
            index[key] = node

    if collisions:
        raise IncomparableStructureException(
            side, {format_key(key): item_ids for key, item_ids in collisions.items()}
        )
    return index


def structural_keys(items: Iterable[BOMItem]) -> Callable[[BOMItem], StructuralKey]:
    """Key resolver over one item set; a parent missing from the set ends the chain."""
    by_id = {item.id: item for item in items}
    cache: Dict[BOMItemId, StructuralKey] = {}

    def key_of(item: BOMItem) -> StructuralKey:
        chain: List[BOMItem] = []
        seen: Set[BOMItemId] = set()
        parent_key: Optional[StructuralKey] = None
        current: Optional[BOMItem] = item
        while current is not None:
            if current.id in cache:
                parent_key = cache[current.id]
                break
            if current.id in seen:
                break
            seen.add(current.id)
            chain.append(current)
            current = by_id.get(current.parent_item_id) if current.parent_item_id else None

        for link in reversed(chain):
            parent_key = (link.component_id, link.level, parent_key)
            cache[link.id] = parent_key
        return parent_key

    return key_of


def compare_fields(source: BOMItem, target: BOMItem, options: CompareOptions) -> List[FieldChange]:
    """Field-level changes between two matched items, in priority order."""
    ignored = options.ignore_fields
    changes: List[FieldChange] = []

    if "quantity" not in ignored and source.quantity != target.quantity:
        changes.append(FieldChange(
            "quantity", source.quantity, target.quantity,
            relative_change(target.quantity - source.quantity, source.quantity),
        ))

    if "unit_cost" not in ignored and source.unit_cost != target.unit_cost:
        delta = target.unit_cost - source.unit_cost
        if not options.ignore_minor_cost_changes or abs(delta) > options.minor_cost_threshold:
            changes.append(FieldChange(
                "unit_cost", source.unit_cost, target.unit_cost,
                relative_change(delta, source.unit_cost),
            ))

    for name in PROPERTY_FIELDS:
        if name in ignored:
            continue
        old_value, new_value = getattr(source, name), getattr(target, name)
        if old_value != new_value:
            changes.append(FieldChange(name, old_value, new_value))

    return changes


def format_key(key: Optional[StructuralKey]) -> str:
    """Render a structural key as a root-first path, e.g. ``P1@0 > C7@1``."""
    parts = []
    while key is not None:
        component_id, level, key = key
        parts.append(f"{component_id}@{level}")
    return " > ".join(reversed(parts))


def _classify(changes: List[FieldChange]) -> DifferenceType:
    names = {change.field for change in changes}
    if "quantity" in names:
        return DifferenceType.QUANTITY_CHANGED
    if "unit_cost" in names:
        return DifferenceType.COST_CHANGED
    return DifferenceType.PROPERTIES_CHANGED


def _difference(
    difference_type: DifferenceType,
    key: StructuralKey,
    source: Optional[TreeNode],
    target: Optional[TreeNode],
    cost_impact: Decimal,
    significance: ImpactLevel,
    changed_fields: Tuple[FieldChange, ...] = (),
) -> ComparisonDifference:
    node = source or target
    if difference_type == DifferenceType.ADDED:
        description = f"New component added: {node.component_code}"
    elif difference_type == DifferenceType.REMOVED:
        description = f"Component removed: {node.component_code}"
    else:
        description = (
            f"{node.component_code} - changed fields: "
            + ", ".join(change.field for change in changed_fields)
        )
    return ComparisonDifference(
        type=difference_type,
        key=key,
        component_id=node.component_id,
        component_code=node.component_code,
        component_name=node.component_name,
        level=node.level,
        source=source,
        target=target,
        cost_impact=cost_impact,
        significance=significance,
        description=description,
        changed_fields=changed_fields,
    )


def _significance(cost_impact: Decimal, removal: bool) -> ImpactLevel:
    amount = abs(cost_impact)
    if removal and amount > 50000:
        return ImpactLevel.HIGH
    if amount > 100000:
        return ImpactLevel.HIGH
    if amount > 10000:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def _relocation_candidates(differences: List[ComparisonDifference]) -> List[StructuralChange]:
    # Pair each removal with the first unpaired addition of the same component
    added: Dict[ComponentId, List[ComparisonDifference]] = {}
    for diff in differences:
        if diff.type == DifferenceType.ADDED:
            added.setdefault(diff.component_id, []).append(diff)

    relocations = []
    for diff in differences:
        if diff.type != DifferenceType.REMOVED or not added.get(diff.component_id):
            continue
        counterpart = added[diff.component_id].pop(0)
        if diff.level != counterpart.level:
            relocations.append(StructuralChange(
                type=StructuralChangeType.LEVEL_CHANGE,
                component_id=diff.component_id,
                component_code=diff.component_code,
                description=f"Level changed from {diff.level} to {counterpart.level}",
                impact=ImpactLevel.HIGH if abs(counterpart.level - diff.level) > 1 else ImpactLevel.MEDIUM,
            ))
        else:
            relocations.append(StructuralChange(
                type=StructuralChangeType.PARENT_CHANGE,
                component_id=diff.component_id,
                component_code=diff.component_code,
                description=f"Parent changed: {diff.path} -> {counterpart.path}",
                impact=ImpactLevel.HIGH,
            ))
    return relocations


def relative_change(delta: Decimal, base: Decimal) -> Decimal:
    """Change in percent of a positive base; 0 when the base is not positive."""
    if base <= 0:
        return ZERO
    return delta / base * HUNDRED


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(value)
