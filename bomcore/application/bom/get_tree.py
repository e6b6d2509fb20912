"""
Get BOM Tree use case.

Loads a product's BOM (a given version or the latest active one),
filters its items and assembles the tree with cost statistics.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.costing import CostSummary, compute_cost_summary
from bomcore.domain.bom.filters import ItemFilter
from bomcore.domain.bom.repositories import BOMRepository, ComponentCatalog
from bomcore.domain.bom.tree import TreeNode, assemble_tree, iter_nodes
from bomcore.domain.shared.exceptions import EntityNotFoundException
from bomcore.domain.shared.value_objects import ComponentId, ComponentInfo, ComponentType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeQuery:
    product_id: ComponentId
    version: Optional[str] = None
    max_level: Optional[int] = None
    include_inactive: bool = False
    include_optional: bool = True
    process_step: Optional[str] = None
    component_type: Optional[ComponentType] = None
    expand_all: bool = False
    as_of: Optional[datetime] = None

    def item_filter(self) -> ItemFilter:
        return ItemFilter(
            max_level=self.max_level,
            include_inactive=self.include_inactive,
            include_optional=self.include_optional,
            process_step=self.process_step,
            component_type=self.component_type,
            as_of=self.as_of,
        )


@dataclass
class BOMTreeView:
    product: ComponentInfo
    bom: Optional[BOM]
    tree: List[TreeNode] = field(default_factory=list)
    statistics: CostSummary = field(default_factory=CostSummary)

    @property
    def node_count(self) -> int:
        return sum(1 for _ in iter_nodes(self.tree))

    def to_dict(self, money_places: int = 2) -> Dict[str, Any]:
        bom = self.bom
        return {
            "product": {
                "id": str(self.product.id),
                "code": self.product.code,
                "name": self.product.name,
            },
            "bom": {
                "id": str(bom.id),
                "version": bom.version,
                "is_active": bom.is_active,
                "effective_date": bom.effective_date.isoformat(),
                "expiry_date": bom.expiry_date.isoformat() if bom.expiry_date else None,
                "description": bom.description,
            } if bom else None,
            "tree": [node.to_dict(money_places) for node in self.tree],
            "statistics": self.statistics.to_dict(),
        }


class GetBOMTreeUseCase:

    def __init__(
        self,
        boms: BOMRepository,
        catalog: ComponentCatalog,
        settings: Optional[EngineSettings] = None,
    ):
        self.boms = boms
        self.catalog = catalog
        self.settings = settings or get_settings()

    async def execute(self, query: TreeQuery) -> BOMTreeView:
        product = await self.catalog.find_by_id(query.product_id)
        if product is None:
            raise EntityNotFoundException("Component", query.product_id)

        if query.version:
            bom = await self.boms.find_by_product_and_version(query.product_id, query.version)
        else:
            bom = await self.boms.find_active_by_product(query.product_id)

        if bom is None:
            logger.info("No BOM for product %s (version %s)", query.product_id, query.version)
            return BOMTreeView(product=product, bom=None)

        items = query.item_filter().apply(bom.items)
        components = await self.catalog.find_many({item.component_id for item in items})
        tree = assemble_tree(items, components, expand_all=query.expand_all, as_of=query.as_of)
        # Items skipped for a missing component stay out of the totals too
        statistics = compute_cost_summary(
            [item for item in items if item.component_id in components],
            self.settings.high_cost_threshold,
        )

        view = BOMTreeView(product=product, bom=bom, tree=tree, statistics=statistics)
        logger.info(
            "Assembled BOM %s of product %s: %d of %d items",
            bom.id, query.product_id, view.node_count, len(bom.items),
        )
        return view
