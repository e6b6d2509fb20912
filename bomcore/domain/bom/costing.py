"""
BOM Domain - Cost aggregation.

Flat costing counts every item once at its own scrap-adjusted quantity.
Multi-level explosion multiplies quantities down the tree and is only
computed when explicitly asked for.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from bomcore.domain.shared.exceptions import ValidationException
from bomcore.domain.shared.value_objects import ComponentId, ComponentType, to_decimal

from .entities import DEFAULT_HIGH_COST_THRESHOLD, BOMItem
from .tree import TreeNode

ZERO = Decimal("0")

UNSPECIFIED_PROCESS_STEP = "unspecified"


@dataclass
class GroupTotals:
    """Item count and summed total cost of one group."""

    count: int = 0
    total_cost: Decimal = ZERO

    def add(self, cost: Decimal) -> None:
        self.count += 1
        self.total_cost += cost


@dataclass
class CostSummary:
    """Aggregate cost statistics for a set of BOM items."""

    total_cost: Decimal = ZERO
    item_count: int = 0
    by_level: Dict[int, GroupTotals] = field(default_factory=dict)
    by_component_type: Dict[ComponentType, GroupTotals] = field(default_factory=dict)
    by_process_step: Dict[str, GroupTotals] = field(default_factory=dict)
    optional_count: int = 0
    critical_count: int = 0
    max_level: int = 0

    @property
    def average_cost_per_item(self) -> Decimal:
        if not self.item_count:
            return ZERO
        return self.total_cost / self.item_count

    def to_dict(self) -> Dict[str, object]:
        def groups(mapping):
            return {
                str(getattr(key, "value", key)): {"count": totals.count, "total_cost": str(totals.total_cost)}
                for key, totals in mapping.items()
            }

        return {
            "total_cost": str(self.total_cost),
            "item_count": self.item_count,
            "by_level": groups(self.by_level),
            "by_component_type": groups(self.by_component_type),
            "by_process_step": groups(self.by_process_step),
            "optional_count": self.optional_count,
            "critical_count": self.critical_count,
            "average_cost_per_item": str(self.average_cost_per_item),
            "max_level": self.max_level,
        }


def compute_cost_summary(
    items: Iterable[BOMItem],
    high_cost_threshold: Optional[Union[Decimal, int, str]] = None,
) -> CostSummary:
    """
    Summarise total cost and breakdowns over an item set.

    An item is critical when its total cost exceeds the threshold or when
    it is not optional.
    """
    threshold = (
        DEFAULT_HIGH_COST_THRESHOLD
        if high_cost_threshold is None
        else to_decimal(high_cost_threshold, "high_cost_threshold")
    )
    summary = CostSummary()

    for item in items:
        cost = item.total_cost
        summary.item_count += 1
        summary.total_cost += cost
        summary.by_level.setdefault(item.level, GroupTotals()).add(cost)
        summary.by_component_type.setdefault(item.component_type, GroupTotals()).add(cost)
        step = item.process_step or UNSPECIFIED_PROCESS_STEP
        summary.by_process_step.setdefault(step, GroupTotals()).add(cost)
        if item.is_optional:
            summary.optional_count += 1
        if item.is_critical(threshold):
            summary.critical_count += 1
        summary.max_level = max(summary.max_level, item.level)

    return summary


@dataclass
class ComponentRequirement:
    """Exploded requirement of one component across all its occurrences."""

    component_id: ComponentId
    component_code: str
    component_name: str
    quantity: Decimal = ZERO
    total_cost: Decimal = ZERO
    occurrences: int = 0


def explode_requirements(
    roots: Iterable[TreeNode],
    root_quantity: Union[Decimal, int, str] = 1,
) -> List[ComponentRequirement]:
    """
    Multiply scrap-adjusted quantities down every path of an assembled tree.

    Returns one requirement per component, in first-seen pre-order.
    """
    multiplier = to_decimal(root_quantity, "root_quantity")
    if multiplier <= 0:
        raise ValidationException(
            "Root quantity must be greater than 0", "root_quantity", multiplier
        )
    requirements: Dict[ComponentId, ComponentRequirement] = {}

    stack = [(node, multiplier) for node in reversed(list(roots))]
    while stack:
        node, parent_quantity = stack.pop()
        quantity = parent_quantity * node.actual_quantity
        requirement = requirements.get(node.component_id)
        if requirement is None:
            requirement = ComponentRequirement(
                component_id=node.component_id,
                component_code=node.component_code,
                component_name=node.component_name,
            )
            requirements[node.component_id] = requirement
        requirement.quantity += quantity
        requirement.total_cost += quantity * node.item.unit_cost
        requirement.occurrences += 1
        stack.extend((child, quantity) for child in reversed(node.children))

    return list(requirements.values())
