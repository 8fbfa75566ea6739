"""
Record models for the lookup-table path: RawRecord (parsed line) and
FeatureCodeRecord (the validated, provenance-tagged row).
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawRecord(BaseModel):
    """
    One delimited input line split into positional fields (ephemeral).

    Attributes:
        fields: Ordered field values, as read
        line_number: 1-based line number in the source file
        source_file: Path of the originating file
    """

    fields: list[str]
    line_number: int = Field(0, ge=0)
    source_file: str | None = None

    def field(self, index: int) -> str | None:
        """Return the field at ``index`` or None when the line is too short."""
        if index < len(self.fields):
            return self.fields[index]
        return None


class FeatureCodeRecord(BaseModel):
    """
    A feature code row that passed structural validation.

    Immutable once built; the composite identifier ("A.ADM1") has already
    been split into feature_class and feature_code.
    """

    model_config = ConfigDict(frozen=True)

    feature_class: str = Field(..., min_length=1)
    feature_code: str = Field(..., min_length=1)
    name: str
    description: str
    language_code: str = Field(..., min_length=1)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_raw(
        cls,
        raw: RawRecord,
        language_code: str,
        now: datetime | None = None,
        separator: str = ".",
    ) -> "FeatureCodeRecord":
        """
        Build a record from a RawRecord that already passed validation.

        Args:
            raw: The parsed line
            language_code: Provenance taken from the source file name
            now: Timestamp for created_at/updated_at (defaults to current UTC time)
            separator: Separator inside the composite identifier

        Returns:
            FeatureCodeRecord instance
        """
        stamp = now or datetime.now(timezone.utc)
        feature_class, feature_code = raw.fields[0].split(separator)
        return cls(
            feature_class=feature_class,
            feature_code=feature_code,
            name=raw.fields[1],
            description=raw.fields[2],
            language_code=language_code,
            created_at=stamp,
            updated_at=stamp,
        )

    def to_row(self) -> dict[str, Any]:
        """Column mapping ready for insertion."""
        return self.model_dump()
