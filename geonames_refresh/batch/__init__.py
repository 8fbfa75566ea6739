"""
Bulk refresh path for the places table.
"""

from .bulk_swap import BulkLoadSwap, SwapState, ensure_promotable
from .discovery import classify_partition, discover_partitions
from .master_extract import MasterExtractBuilder
from .pipeline import PlacesRefreshPipeline

__all__ = [
    "BulkLoadSwap",
    "SwapState",
    "ensure_promotable",
    "classify_partition",
    "discover_partitions",
    "MasterExtractBuilder",
    "PlacesRefreshPipeline",
]
