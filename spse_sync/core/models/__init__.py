"""
Core data models for the procurement sync pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .dataset import ItemKind, MappingStatus, OrderedDataset, RawItem
from .enrichment import EnrichmentRecord, EnrichmentResult
from .sync_result import SyncAllResult, SyncResult, SyncState

__all__ = [
    "ItemKind",
    "RawItem",
    "MappingStatus",
    "OrderedDataset",
    "SyncState",
    "SyncResult",
    "SyncAllResult",
    "EnrichmentRecord",
    "EnrichmentResult",
]
