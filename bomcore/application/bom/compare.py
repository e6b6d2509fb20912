"""
Compare BOM use case.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.comparison import BOMComparison, CompareOptions, compare_boms
from bomcore.domain.bom.repositories import BOMHistoryRepository, BOMRepository, ComponentCatalog
from bomcore.domain.shared.events import BOMCompared
from bomcore.domain.shared.exceptions import EntityNotFoundException, ValidationException
from bomcore.domain.shared.value_objects import BOMId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompareBOMRequest:
    source_bom_id: BOMId
    target_bom_id: BOMId
    options: Optional[CompareOptions] = None
    requested_by: Optional[str] = None


class CompareBOMUseCase:
    """
    Compare two BOM revisions.

    Either BOM failing to load fails the whole comparison. When a
    requester is given the comparison is recorded in the BOM history.
    """

    def __init__(
        self,
        boms: BOMRepository,
        catalog: ComponentCatalog,
        history: BOMHistoryRepository,
        settings: Optional[EngineSettings] = None,
    ):
        self.boms = boms
        self.catalog = catalog
        self.history = history
        self.settings = settings or get_settings()

    async def execute(self, request: CompareBOMRequest) -> BOMComparison:
        if request.source_bom_id == request.target_bom_id:
            raise ValidationException(
                "Cannot compare a BOM with itself", "target_bom_id", request.target_bom_id
            )

        source, target = await asyncio.gather(
            self.boms.find_by_id(request.source_bom_id),
            self.boms.find_by_id(request.target_bom_id),
        )
        if source is None:
            raise EntityNotFoundException("BOM", request.source_bom_id)
        if target is None:
            raise EntityNotFoundException("BOM", request.target_bom_id)

        component_ids = {item.component_id for item in source.items + target.items}
        components = await self.catalog.find_many(component_ids)

        options = request.options or CompareOptions(
            minor_cost_threshold=self.settings.minor_cost_threshold
        )
        comparison = compare_boms(source.items, target.items, components, options)
        statistics = comparison.statistics

        if request.requested_by:
            await self.history.record(BOMCompared(
                source_bom_id=str(source.id),
                target_bom_id=str(target.id),
                total_changes=statistics.total_changes,
                cost_difference=statistics.cost_difference,
                user_id=request.requested_by,
            ))

        logger.info(
            "Compared BOM %s with %s: %d added, %d removed, %d modified",
            source.id, target.id,
            statistics.added_count, statistics.removed_count, statistics.modified_count,
        )
        return comparison
