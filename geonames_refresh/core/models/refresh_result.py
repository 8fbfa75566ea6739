"""
Result models returned by the pipeline entry points and the storage client.
"""

from typing import Any

from pydantic import BaseModel, Field


class RefreshResult(BaseModel):
    """
    Aggregate summary of one table refresh.

    Attributes:
        table: Live table the run targeted
        rows_attempted: Rows presented to the load/insert step (plus rejected rows)
        rows_accepted: Rows that landed in staging
        rows_rejected: Rows dropped by validation or refused by the storage engine
        elapsed_seconds: Wall-clock duration of the run
        success: True only when the live table now holds the new data
        error: Error message when the run failed
        details: Extra per-pipeline facts (line counts, file names, ...)
    """

    table: str
    rows_attempted: int = Field(0, ge=0)
    rows_accepted: int = Field(0, ge=0)
    rows_rejected: int = Field(0, ge=0)
    elapsed_seconds: float = Field(0.0, ge=0.0)
    success: bool = False
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "table": "geonames_feature_codes",
                "rows_attempted": 681,
                "rows_accepted": 680,
                "rows_rejected": 1,
                "elapsed_seconds": 0.84,
                "success": True,
                "error": None,
                "details": {"files": ["featureCodes_en.txt"]},
            }
        }


class InsertOutcome(BaseModel):
    """
    Outcome of a transactional multi-row insert.

    Attributes:
        inserted: Rows the storage engine accepted
        failed: Rows the storage engine refused
        committed: Whether the batch was committed (False means rolled back)
        errors: One message per refused row
    """

    inserted: int = 0
    failed: int = 0
    committed: bool = False
    errors: list[str] = Field(default_factory=list)


class ColumnInfo(BaseModel):
    """One column of a table as reported by the catalog."""

    name: str
    data_type: str
    nullable: bool = True


class IndexDefinition(BaseModel):
    """A secondary index captured so it can be dropped and re-created."""

    name: str
    definition: str
