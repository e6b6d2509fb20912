from .memory import (
    InMemoryBOMHistoryRepository,
    InMemoryBOMItemRepository,
    InMemoryBOMRepository,
    InMemoryComponentCatalog,
)

__all__ = [
    "InMemoryBOMHistoryRepository",
    "InMemoryBOMItemRepository",
    "InMemoryBOMRepository",
    "InMemoryComponentCatalog",
]
