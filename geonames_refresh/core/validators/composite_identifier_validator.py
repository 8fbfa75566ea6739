"""
CompositeIdentifierValidator - checks dotted identifiers such as "A.ADM1".
"""

from typing import Any

from geonames_refresh.core.models import RawRecord

from .base_validator import BaseValidator


class CompositeIdentifierValidator(BaseValidator):
    """
    Validates that a field holds exactly N non-empty segments joined by a separator.

    The feature code files end with a "null<TAB>not available" row; its
    identifier has no separator and is rejected here.

    Parameters:
    - separator: Segment separator (default ".")
    - segments: Required number of segments (default 2)
    """

    def __init__(self, field_index: int = 0, parameters: dict[str, Any] | None = None):
        super().__init__(field_index, parameters)
        self.separator = self.parameters.get("separator", ".")
        self.segments = int(self.parameters.get("segments", 2))

        if not self.separator:
            raise ValueError("CompositeIdentifierValidator separator must not be empty")
        if self.segments < 2:
            raise ValueError(f"segments must be at least 2, got {self.segments}")

    def validate(self, record: RawRecord) -> None:
        value = record.field(self.field_index)
        if value is None:
            self.fail("field is missing")

        parts = value.split(self.separator)
        if len(parts) != self.segments:
            self.fail(
                f"'{value}' must have exactly {self.segments} segments separated by '{self.separator}'"
            )
        if any(part == "" for part in parts):
            self.fail(f"'{value}' has an empty segment")

    @property
    def rule_type(self) -> str:
        return "composite_identifier"
