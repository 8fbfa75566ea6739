"""
SourcePartition and MasterExtract models for the places refresh path.
"""

from enum import Enum

from pydantic import BaseModel, Field


class PartitionKind(str, Enum):
    """Which flavour of extract a partition file is."""

    CONSOLIDATED = "consolidated"
    COUNTRY = "country"


class SourcePartition(BaseModel):
    """
    One downloaded extract file found in the storage directory.

    Attributes:
        name: File name (no directory component)
        kind: Consolidated (every country) or country-scoped
        path: Absolute path to the file
        size_bytes: Size on disk when discovered
    """

    name: str = Field(..., min_length=1)
    kind: PartitionKind
    path: str
    size_bytes: int = Field(0, ge=0)

    @property
    def is_consolidated(self) -> bool:
        return self.kind is PartitionKind.CONSOLIDATED

    class Config:
        json_schema_extra = {
            "example": {
                "name": "US.txt",
                "kind": "country",
                "path": "/var/geonames/US.txt",
                "size_bytes": 315663102,
            }
        }


class MasterExtract(BaseModel):
    """
    The single file handed to the bulk loader.

    Attributes:
        path: Absolute path of the master extract
        line_count: Lines written (reporting only)
        byte_count: Bytes in the master extract
        fast_path: True when the consolidated file was moved instead of merged
    """

    path: str
    line_count: int = Field(0, ge=0)
    byte_count: int = Field(0, ge=0)
    fast_path: bool = False
