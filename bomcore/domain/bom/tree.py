"""
BOM Domain - Tree assembly.

Turns the flat, parent-linked item list of a BOM into a forest of
TreeNodes ordered by sequence within every sibling group.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from bomcore.domain.shared.value_objects import (
    BOMItemId,
    ComponentId,
    ComponentInfo,
    quantize_money,
)

from .entities import BOMItem

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    """
    A BOM item joined with its catalog data and computed quantities.

    Transient: rebuilt per query, never persisted.
    """

    item: BOMItem
    component_code: str
    component_name: str
    actual_quantity: Decimal
    total_cost: Decimal
    is_active: bool
    is_expanded: bool = False
    has_children: bool = False
    children: List[TreeNode] = field(default_factory=list)

    @property
    def node_id(self) -> str:
        return f"node-{self.item.id}"

    @property
    def bom_item_id(self) -> BOMItemId:
        return self.item.id

    @property
    def component_id(self) -> ComponentId:
        return self.item.component_id

    @property
    def parent_item_id(self) -> Optional[BOMItemId]:
        return self.item.parent_item_id

    @property
    def level(self) -> int:
        return self.item.level

    @property
    def sequence(self) -> int:
        return self.item.sequence

    def walk(self) -> Iterator[TreeNode]:
        """Pre-order traversal of this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self, money_places: int = 2) -> Dict[str, Any]:
        """Presentation view; money is rounded here and nowhere earlier."""
        item = self.item
        return {
            "id": self.node_id,
            "bom_item_id": str(item.id),
            "component_id": str(item.component_id),
            "component_code": self.component_code,
            "component_name": self.component_name,
            "component_type": item.component_type.value,
            "component_type_display": item.component_type.display_name,
            "parent_id": str(item.parent_item_id) if item.parent_item_id else None,
            "level": item.level,
            "sequence": item.sequence,
            "quantity": str(item.quantity),
            "unit": item.unit.code,
            "unit_name": item.unit.name,
            "unit_cost": str(quantize_money(item.unit_cost, money_places)),
            "scrap_rate": str(item.scrap_rate),
            "actual_quantity": str(self.actual_quantity),
            "total_cost": str(quantize_money(self.total_cost, money_places)),
            "is_optional": item.is_optional,
            "position": item.position,
            "process_step": item.process_step,
            "remarks": item.remarks,
            "is_active": self.is_active,
            "has_children": self.has_children,
            "is_expanded": self.is_expanded,
            "children": [child.to_dict(money_places) for child in self.children],
        }


def iter_nodes(roots: Iterable[TreeNode]) -> Iterator[TreeNode]:
    """Pre-order traversal over a forest."""
    for root in roots:
        yield from root.walk()


def build_node(
    item: BOMItem,
    component: ComponentInfo,
    expand_all: bool = False,
    as_of: Optional[datetime] = None,
) -> TreeNode:
    """Create a childless node for one item."""
    actual_quantity = item.actual_quantity
    return TreeNode(
        item=item,
        component_code=component.code,
        component_name=component.name,
        actual_quantity=actual_quantity,
        total_cost=actual_quantity * item.unit_cost,
        is_active=item.is_currently_active(as_of),
        is_expanded=expand_all,
    )


def assemble_tree(
    items: Iterable[BOMItem],
    components: Mapping[ComponentId, ComponentInfo],
    expand_all: bool = False,
    as_of: Optional[datetime] = None,
) -> List[TreeNode]:
    """
    Assemble already-filtered BOM items into a forest.

    Items whose component is missing from ``components`` are skipped.
    Items whose parent is not among the materialised nodes are promoted
    to the root list. Every sibling group is sorted by sequence.
    """
    now = as_of or datetime.now()
    nodes: Dict[BOMItemId, TreeNode] = {}

    for item in items:
        component = components.get(item.component_id)
        if component is None:
            logger.warning(
                "Skipping BOM item %s: component %s not found in catalog",
                item.id, item.component_id,
            )
            continue
        nodes[item.id] = build_node(item, component, expand_all, now)

    roots: List[TreeNode] = []
    for node in nodes.values():
        parent_id = node.item.parent_item_id
        parent = nodes.get(parent_id) if parent_id is not None else None
        if parent is None:
            if parent_id is not None:
                logger.debug(
                    "Promoting BOM item %s to root: parent %s not in the item set",
                    node.item.id, parent_id,
                )
            roots.append(node)
            continue
        if parent.item.level != node.item.level - 1:
            logger.debug(
                "BOM item %s at level %d attached to parent %s at level %d",
                node.item.id, node.item.level, parent.item.id, parent.item.level,
            )
        parent.children.append(node)
        parent.has_children = True

    _sort_by_sequence(roots)
    return roots


def _sort_by_sequence(nodes: List[TreeNode]) -> None:
    # Sequence is scoped to one sibling group, so each list is sorted on its own
    stack = [nodes]
    while stack:
        group = stack.pop()
        group.sort(key=lambda node: node.item.sequence)
        stack.extend(node.children for node in group if node.children)
