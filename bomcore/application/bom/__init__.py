"""
BOM use cases.

Async orchestration around the synchronous domain core: load from the
repositories, run the core, save and record history.
"""

from .add_item import AddBOMItemRequest, AddBOMItemResult, AddBOMItemUseCase
from .compare import CompareBOMRequest, CompareBOMUseCase
from .copy_bom import CopyBOMRequest, CopyBOMResult, CopyBOMUseCase
from .delete_item import (
    DeleteBOMItemRequest,
    DeleteBOMItemResult,
    DeleteBOMItemUseCase,
    DeletionImpact,
    RecoveryComplexity,
)
from .get_tree import BOMTreeView, GetBOMTreeUseCase, TreeQuery
from .locks import BOMLockRegistry, default_lock_registry
from .product_graph import load_ancestor_graph
from .update_item import UpdateBOMItemRequest, UpdateBOMItemResult, UpdateBOMItemUseCase

__all__ = [
    "AddBOMItemRequest",
    "AddBOMItemResult",
    "AddBOMItemUseCase",
    "BOMLockRegistry",
    "BOMTreeView",
    "CompareBOMRequest",
    "CompareBOMUseCase",
    "CopyBOMRequest",
    "CopyBOMResult",
    "CopyBOMUseCase",
    "DeleteBOMItemRequest",
    "DeleteBOMItemResult",
    "DeleteBOMItemUseCase",
    "DeletionImpact",
    "GetBOMTreeUseCase",
    "RecoveryComplexity",
    "TreeQuery",
    "UpdateBOMItemRequest",
    "UpdateBOMItemResult",
    "UpdateBOMItemUseCase",
    "default_lock_registry",
    "load_ancestor_graph",
]
