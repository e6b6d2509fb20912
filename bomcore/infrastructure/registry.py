"""
Repository registry.

Background tasks have no request context to inject repositories through,
so they look them up here. Applications register their adapters at
start-up; the default is an empty in-memory store.
"""

from dataclasses import dataclass
from typing import Optional

from bomcore.domain.bom.repositories import (
    BOMHistoryRepository,
    BOMItemRepository,
    BOMRepository,
    ComponentCatalog,
)

from .repositories.memory import (
    InMemoryBOMHistoryRepository,
    InMemoryBOMItemRepository,
    InMemoryBOMRepository,
    InMemoryComponentCatalog,
)


@dataclass
class RepositoryRegistry:
    catalog: ComponentCatalog
    boms: BOMRepository
    items: BOMItemRepository
    history: BOMHistoryRepository

    @classmethod
    def in_memory(cls) -> "RepositoryRegistry":
        boms = InMemoryBOMRepository()
        return cls(
            catalog=InMemoryComponentCatalog(),
            boms=boms,
            items=InMemoryBOMItemRepository(boms),
            history=InMemoryBOMHistoryRepository(),
        )


_registry: Optional[RepositoryRegistry] = None


def get_registry() -> RepositoryRegistry:
    global _registry
    if _registry is None:
        _registry = RepositoryRegistry.in_memory()
    return _registry


def set_registry(registry: Optional[RepositoryRegistry]) -> None:
    """Install the repositories used by tasks; None restores the default."""
    global _registry
    _registry = registry
