"""
Core data models for the geonames refresh pipelines.

All models use Pydantic for runtime validation and type safety.
"""

from .lookup_record import FeatureCodeRecord, RawRecord
from .refresh_result import ColumnInfo, IndexDefinition, InsertOutcome, RefreshResult
from .refresh_status import RefreshState, RefreshStatus
from .source_partition import MasterExtract, PartitionKind, SourcePartition

__all__ = [
    "PartitionKind",
    "SourcePartition",
    "MasterExtract",
    "RawRecord",
    "FeatureCodeRecord",
    "RefreshState",
    "RefreshStatus",
    "RefreshResult",
    "InsertOutcome",
    "ColumnInfo",
    "IndexDefinition",
]
