"""
Table definitions and structural rule evaluation.
"""

from .record_validator import RecordValidator
from .table_config import (
    LookupTableDefinition,
    PlacesTableDefinition,
    TableConfig,
    TableConfigLoader,
    load_table_config,
)

__all__ = [
    "RecordValidator",
    "LookupTableDefinition",
    "PlacesTableDefinition",
    "TableConfig",
    "TableConfigLoader",
    "load_table_config",
]
