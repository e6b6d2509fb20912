"""
Loads the part of the product graph a cycle check needs.

Starting from the product that would receive a new component, walks
upwards through where-used lookups and collects every product that
(transitively) contains it. A new component closes a cycle exactly when
it is one of those ancestors.
"""

import logging
from typing import Dict, List, Optional

from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.cycles import ProductGraph
from bomcore.domain.bom.repositories import BOMItemRepository, BOMRepository
from bomcore.domain.shared.exceptions import EntityNotFoundException, StructuralException
from bomcore.domain.shared.value_objects import BOMId, ComponentId

logger = logging.getLogger(__name__)


async def load_ancestor_graph(
    product_id: ComponentId,
    boms: BOMRepository,
    items: BOMItemRepository,
    max_depth: int,
) -> ProductGraph:
    """
    Build the graph of products containing ``product_id``.

    Only currently active BOMs contribute edges. Inside a BOM the owner of
    an item is the component of its parent item, or the BOM's product for
    top-level items.

    Raises EntityNotFoundException when a where-used item points at a
    missing BOM, and StructuralException when the ancestry is deeper than
    ``max_depth``.
    """
    graph = ProductGraph()
    loaded: Dict[BOMId, Optional[BOM]] = {}
    seen = {product_id}
    frontier: List[ComponentId] = [product_id]
    depth = 0

    while frontier:
        if depth >= max_depth:
            raise StructuralException(
                f"Product ancestry of {product_id} exceeds {max_depth} levels",
                code="CYCLE_CHECK_INCOMPLETE",
                details={"product_id": str(product_id), "max_depth": max_depth},
            )
        depth += 1
        next_frontier: List[ComponentId] = []

        for component_id in frontier:
            for item in await items.find_by_component_id(component_id):
                if item.bom_id not in loaded:
                    loaded[item.bom_id] = await boms.find_by_id(item.bom_id)
                bom = loaded[item.bom_id]
                if bom is None:
                    raise EntityNotFoundException("BOM", item.bom_id)
                if not bom.is_currently_active():
                    continue

                owner = bom.product_id
                if item.parent_item_id is not None:
                    parent = bom.find_item(item.parent_item_id)
                    if parent is not None:
                        owner = parent.component_id

                graph.add_edge(owner, component_id)
                if owner not in seen:
                    seen.add(owner)
                    next_frontier.append(owner)

        frontier = next_frontier

    logger.debug("Loaded %d ancestor products of %s", len(graph), product_id)
    return graph
