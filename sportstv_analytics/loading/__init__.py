"""
Warehouse Loading Module
"""
from .merger import UpsertMerger, MergeResult
from .dimensions import load_dimensions

__all__ = [
    "UpsertMerger",
    "MergeResult",
    "load_dimensions",
]
