"""
FieldCountValidator - checks that a line carries enough positional fields.
"""

from typing import Any

from geonames_refresh.core.models import RawRecord

from .base_validator import BaseValidator


class FieldCountValidator(BaseValidator):
    """
    Validates the number of fields in a record.

    Parameters:
    - min: Minimum number of fields (required)
    - max: Optional maximum number of fields
    """

    def __init__(self, field_index: int = 0, parameters: dict[str, Any] | None = None):
        super().__init__(field_index, parameters)

        if "min" not in self.parameters:
            raise ValueError("FieldCountValidator requires 'min' parameter")

        self.min_fields = int(self.parameters["min"])
        max_fields = self.parameters.get("max")
        self.max_fields = int(max_fields) if max_fields is not None else None

        if self.max_fields is not None and self.max_fields < self.min_fields:
            raise ValueError(
                f"max ({self.max_fields}) must not be lower than min ({self.min_fields})"
            )

    @property
    def field_name(self) -> str:
        return "fields"

    def validate(self, record: RawRecord) -> None:
        count = len(record.fields)
        if count < self.min_fields:
            self.fail(f"expected at least {self.min_fields} fields, got {count}")
        if self.max_fields is not None and count > self.max_fields:
            self.fail(f"expected at most {self.max_fields} fields, got {count}")

    @property
    def rule_type(self) -> str:
        return "field_count"
