"""
In-memory repository implementations.

Used by tests, by the Celery tasks when no other store is registered,
and as the reference behaviour for real adapters.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.bom.repositories import (
    BOMHistoryRepository,
    BOMItemRepository,
    BOMRepository,
    ComponentCatalog,
)
from bomcore.domain.shared.events import DomainEvent
from bomcore.domain.shared.value_objects import BOMId, ComponentId, ComponentInfo


class InMemoryComponentCatalog(ComponentCatalog):

    def __init__(self, components: Iterable[ComponentInfo] = ()):
        self._components: Dict[ComponentId, ComponentInfo] = {c.id: c for c in components}

    def add(self, component: ComponentInfo) -> None:
        self._components[component.id] = component

    async def find_by_id(self, component_id: ComponentId) -> Optional[ComponentInfo]:
        return self._components.get(component_id)

    async def find_many(
        self, component_ids: Iterable[ComponentId]
    ) -> Mapping[ComponentId, ComponentInfo]:
        return {
            component_id: self._components[component_id]
            for component_id in component_ids
            if component_id in self._components
        }


class InMemoryBOMRepository(BOMRepository):

    def __init__(self, boms: Iterable[BOM] = ()):
        self._boms: Dict[BOMId, BOM] = {bom.id: bom for bom in boms}

    def all(self) -> List[BOM]:
        return list(self._boms.values())

    async def find_by_id(self, bom_id: BOMId) -> Optional[BOM]:
        return self._boms.get(bom_id)

    async def find_by_product_and_version(
        self, product_id: ComponentId, version: str
    ) -> Optional[BOM]:
        for bom in self._boms.values():
            if bom.product_id == product_id and bom.version == version:
                return bom
        return None

    async def find_active_by_product(self, product_id: ComponentId) -> Optional[BOM]:
        now = datetime.now()
        candidates = [
            bom for bom in self._boms.values()
            if bom.product_id == product_id and bom.is_currently_active(now)
        ]
        if not candidates:
            return None
        # Latest effective revision wins
        return max(candidates, key=lambda bom: (bom.effective_date, bom.audit.created_at))

    async def save(self, bom: BOM) -> BOM:
        self._boms[bom.id] = bom
        return bom


class InMemoryBOMItemRepository(BOMItemRepository):
    """Where-used lookups over the BOMs held by an InMemoryBOMRepository."""

    def __init__(self, boms: InMemoryBOMRepository):
        self._boms = boms

    async def find_by_component_id(self, component_id: ComponentId) -> List[BOMItem]:
        return [
            item
            for bom in self._boms.all()
            for item in bom.items
            if item.component_id == component_id
        ]


class InMemoryBOMHistoryRepository(BOMHistoryRepository):

    def __init__(self):
        self.events: List[DomainEvent] = []

    async def record(self, event: DomainEvent) -> None:
        self.events.append(event)

    async def list_for_bom(self, bom_id: BOMId) -> List[DomainEvent]:
        key = str(bom_id)
        return [
            event for event in self.events
            if key in (
                getattr(event, "bom_id", None),
                getattr(event, "source_bom_id", None),
                getattr(event, "target_bom_id", None),
            )
        ]
