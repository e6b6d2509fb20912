"""
BOM Domain - Circular reference detection.

Two questions are answered here:
- does a BOM list its own product among its items (direct check);
- would adding a component under a product make some product an
  ingredient of itself through the cross-BOM product graph (transitive).

The product graph is an explicit in-memory structure so the traversal
can be tested without any repository. Whatever cannot be verified is
reported as a cycle.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from bomcore.domain.shared.value_objects import BOMId, BOMItemId, ComponentId

from .aggregates import BOM
from .entities import BOMItem

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50


class ProductGraph:
    """
    Directed graph of products: an edge X -> Y means Y is an ingredient
    listed in the BOM of X.
    """

    def __init__(self, edges: Optional[Mapping[ComponentId, Iterable[ComponentId]]] = None):
        self._edges: Dict[ComponentId, List[ComponentId]] = {}
        for product_id, ingredients in (edges or {}).items():
            for ingredient_id in ingredients:
                self.add_edge(product_id, ingredient_id)

    @classmethod
    def from_structures(cls, structures: Mapping[ComponentId, Iterable[ComponentId]]) -> ProductGraph:
        """Build from product -> ingredient ids."""
        return cls(structures)

    @classmethod
    def from_boms(cls, boms: Iterable[BOM]) -> ProductGraph:
        graph = cls()
        for bom in boms:
            for item in bom.items:
                graph.add_edge(bom.product_id, item.component_id)
        return graph

    @classmethod
    def from_where_used(
        cls,
        items: Iterable[BOMItem],
        bom_products: Mapping[BOMId, ComponentId],
    ) -> ProductGraph:
        """
        Build from cross-BOM items (each item says "my component is an
        ingredient of my BOM") plus the product owning each BOM.

        An item whose BOM has no known product raises KeyError.
        """
        graph = cls()
        for item in items:
            graph.add_edge(bom_products[item.bom_id], item.component_id)
        return graph

    def add_edge(self, product_id: ComponentId, ingredient_id: ComponentId) -> None:
        ingredients = self._edges.setdefault(product_id, [])
        if ingredient_id not in ingredients:
            ingredients.append(ingredient_id)

    def ingredients_of(self, product_id: ComponentId) -> List[ComponentId]:
        return list(self._edges.get(product_id, ()))

    def __contains__(self, product_id: ComponentId) -> bool:
        return product_id in self._edges

    def __len__(self) -> int:
        return len(self._edges)


IngredientLookup = Callable[[ComponentId], Iterable[ComponentId]]


@dataclass(frozen=True)
class CircularReferenceResult:
    """Outcome of a circular reference check."""

    has_circular_reference: bool
    circular_path: Tuple[ComponentId, ...] = field(default=())
    depth: Optional[int] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.has_circular_reference


class _Unverifiable(Exception):
    """Traversal could not complete; treated as a cycle."""


class CycleDetector:
    """
    Depth-first circular reference checks over a product graph.

    The visited set is scoped to the current path and reverted on
    backtrack, so two independent paths that reach the same product
    are not reported as a cycle.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    # =========================================================================
    # DIRECT CHECKS
    # =========================================================================

    @staticmethod
    def has_circular_reference(bom: BOM) -> bool:
        """True iff some item's component is the BOM's own product."""
        return any(item.component_id == bom.product_id for item in bom.items)

    def check_bom_structure(self, bom: BOM) -> CircularReferenceResult:
        """
        Check the item tree of one BOM: the product may not appear among its
        items, and no component may repeat along a root-to-leaf path.
        """
        if self.has_circular_reference(bom):
            return CircularReferenceResult(
                True,
                (bom.product_id, bom.product_id),
                0,
                f"BOM {bom.id} lists its own product {bom.product_id} as a component",
            )

        children: Dict[Optional[BOMItemId], List[BOMItem]] = {}
        for item in bom.items:
            children.setdefault(item.parent_item_id, []).append(item)

        path: List[ComponentId] = [bom.product_id]
        on_path: Set[ComponentId] = {bom.product_id}

        def visit(item: BOMItem) -> Optional[CircularReferenceResult]:
            if item.component_id in on_path:
                cycle = tuple(path) + (item.component_id,)
                return CircularReferenceResult(
                    True, cycle, len(path),
                    "Circular reference in BOM structure: " + _format_path(cycle),
                )
            on_path.add(item.component_id)
            path.append(item.component_id)
            try:
                for child in children.get(item.id, ()):
                    found = visit(child)
                    if found:
                        return found
            finally:
                path.pop()
                on_path.discard(item.component_id)
            return None

        for root in children.get(None, ()):
            found = visit(root)
            if found:
                return found
        return CircularReferenceResult(False, message="No circular reference in BOM structure")

    # =========================================================================
    # TRANSITIVE CHECK
    # =========================================================================

    def check_component_addition(
        self,
        parent_product_id: ComponentId,
        component_id: ComponentId,
        graph: ProductGraph | IngredientLookup,
    ) -> CircularReferenceResult:
        """
        Would listing ``component_id`` in the BOM of ``parent_product_id``
        make some product an ingredient of itself?
        """
        if parent_product_id == component_id:
            return CircularReferenceResult(
                True, (parent_product_id, component_id), 1,
                f"Product {parent_product_id} cannot be a component of itself",
            )

        lookup = graph.ingredients_of if isinstance(graph, ProductGraph) else graph
        path: List[ComponentId] = [parent_product_id]
        on_path: Set[ComponentId] = {parent_product_id}

        def visit(product_id: ComponentId, depth: int) -> Optional[CircularReferenceResult]:
            if product_id in on_path:
                cycle = tuple(path) + (product_id,)
                return CircularReferenceResult(
                    True, cycle, depth,
                    "Circular reference detected: " + _format_path(cycle),
                )
            if depth > self.max_depth:
                raise _Unverifiable(
                    f"Traversal exceeded the maximum depth of {self.max_depth}"
                )

            on_path.add(product_id)
            path.append(product_id)
            try:
                for ingredient_id in lookup(product_id):
                    found = visit(ingredient_id, depth + 1)
                    if found:
                        return found
            finally:
                path.pop()
                on_path.discard(product_id)
            return None

        try:
            found = visit(component_id, 1)
        except _Unverifiable as exc:
            logger.warning(
                "Assuming circular reference adding %s under %s: %s",
                component_id, parent_product_id, exc,
            )
            return CircularReferenceResult(
                True, (parent_product_id, component_id), None, f"Cycle check failed closed: {exc}"
            )
        except Exception as exc:
            logger.warning(
                "Assuming circular reference adding %s under %s: lookup failed (%s)",
                component_id, parent_product_id, exc,
            )
            return CircularReferenceResult(
                True, (parent_product_id, component_id), None,
                f"Cycle check failed closed: lookup failed ({exc})",
            )

        if found:
            return found
        return CircularReferenceResult(False, message="No circular reference")


def _format_path(path: Iterable[ComponentId]) -> str:
    return " -> ".join(str(product_id) for product_id in path)


def has_circular_reference(bom: BOM) -> bool:
    """True iff some item of the BOM references the BOM's own product."""
    return CycleDetector.has_circular_reference(bom)


def would_create_cycle(
    parent_component_id: ComponentId,
    candidate_component_id: ComponentId,
    graph: ProductGraph | IngredientLookup,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """
    True if adding the candidate under the parent closes a cycle, or if
    that cannot be verified (lookup failure, depth bound exceeded).
    """
    detector = CycleDetector(max_depth=max_depth)
    result = detector.check_component_addition(parent_component_id, candidate_component_id, graph)
    return result.has_circular_reference
