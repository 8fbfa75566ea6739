"""
Structural validation rules for raw lookup records.
"""

from geonames_refresh.core.errors import ValidationError

from .base_validator import BaseValidator
from .composite_identifier_validator import CompositeIdentifierValidator
from .field_count_validator import FieldCountValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "CompositeIdentifierValidator",
    "FieldCountValidator",
]
