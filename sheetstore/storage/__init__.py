"""
Storage backends: sparse per-sheet cell stores, the metadata repository and
media byte storage.
"""

from .grid_store import GridStore, GridStoreRegistry, SparseGrid
from .media_storage import MediaStorage
from .repository import SpreadsheetRepository

__all__ = [
    "GridStore",
    "GridStoreRegistry",
    "SparseGrid",
    "MediaStorage",
    "SpreadsheetRepository",
]
