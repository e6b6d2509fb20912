"""
BOM structural engine.

Tree assembly, circular reference detection, cost aggregation and
revision comparison for multi-level Bills of Materials.
"""

from .domain.bom.comparison import BOMComparison, CompareOptions, DifferenceType, compare_boms
from .domain.bom.costing import CostSummary, compute_cost_summary, explode_requirements
from .domain.bom.cycles import ProductGraph, has_circular_reference, would_create_cycle
from .domain.bom.tree import TreeNode, assemble_tree

__version__ = "0.1.0"

__all__ = [
    "BOMComparison",
    "CompareOptions",
    "CostSummary",
    "DifferenceType",
    "ProductGraph",
    "TreeNode",
    "assemble_tree",
    "compare_boms",
    "compute_cost_summary",
    "explode_requirements",
    "has_circular_reference",
    "would_create_cycle",
]
