"""
BOM Domain - Repository Interfaces.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Mapping, Optional

from bomcore.domain.shared.events import DomainEvent
from bomcore.domain.shared.value_objects import BOMId, ComponentId, ComponentInfo

from .aggregates import BOM
from .entities import BOMItem


class ComponentCatalog(ABC):
    """Read access to component descriptive data."""

    @abstractmethod
    async def find_by_id(self, component_id: ComponentId) -> Optional[ComponentInfo]:
        """Get component by ID."""
        pass

    @abstractmethod
    async def find_many(
        self, component_ids: Iterable[ComponentId]
    ) -> Mapping[ComponentId, ComponentInfo]:
        """Resolve several components; unknown ids are simply absent."""
        pass


class BOMRepository(ABC):
    """Repository interface for the BOM aggregate."""

    @abstractmethod
    async def find_by_id(self, bom_id: BOMId) -> Optional[BOM]:
        """Get BOM by ID."""
        pass

    @abstractmethod
    async def find_by_product_and_version(
        self, product_id: ComponentId, version: str
    ) -> Optional[BOM]:
        """Get one revision of a product's BOM."""
        pass

    @abstractmethod
    async def find_active_by_product(self, product_id: ComponentId) -> Optional[BOM]:
        """Get the latest active BOM for a product."""
        pass

    @abstractmethod
    async def save(self, bom: BOM) -> BOM:
        """Save BOM."""
        pass


class BOMItemRepository(ABC):
    """Cross-BOM item queries."""

    @abstractmethod
    async def find_by_component_id(self, component_id: ComponentId) -> List[BOMItem]:
        """Every BOM item, in any BOM, that references the component."""
        pass


class BOMHistoryRepository(ABC):
    """Append-only record of BOM changes."""

    @abstractmethod
    async def record(self, event: DomainEvent) -> None:
        """Record an event."""
        pass

    @abstractmethod
    async def list_for_bom(self, bom_id: BOMId) -> List[DomainEvent]:
        """Get recorded events that concern a BOM, oldest first."""
        pass
