"""
Table configuration management.

Loads the places and lookup table definitions from a YAML file and falls
back to the standard geonames layout when no file is present.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from geonames_refresh.utils.validation import sanitize_sql_identifier

# The 19 tab-separated columns of a geonames dump line, in file order.
GEONAMES_INPUT_COLUMNS = [
    "geonameid",
    "name",
    "asciiname",
    "alternatenames",
    "latitude",
    "longitude",
    "feature_class",
    "feature_code",
    "country_code",
    "cc2",
    "admin1_code",
    "admin2_code",
    "admin3_code",
    "admin4_code",
    "population",
    "elevation",
    "dem",
    "timezone",
    "modification_date",
]


class PlacesTableDefinition(BaseModel):
    """
    Definition of the large table refreshed through bulk load.

    Attributes:
        live_table: Table consumers read
        staging_table: Schema twin receiving the new data
        consolidated_stem: File stem of the all-countries extract
        master_file_name: Name of the merged extract in the storage directory
        input_columns: Column names for the positional input fields
        load_time_column: Column stamped with the load time
        null_columns: Trailing columns loaded as NULL
    """

    live_table: str = "geonames"
    staging_table: str = "geonames_working"
    consolidated_stem: str = "allCountries"
    master_file_name: str = "master.txt"
    input_columns: list[str] = Field(default_factory=lambda: list(GEONAMES_INPUT_COLUMNS))
    load_time_column: str = "created_at"
    null_columns: list[str] = Field(default_factory=lambda: ["updated_at"])

    @field_validator("live_table", "staging_table", "load_time_column")
    @classmethod
    def check_identifier(cls, v, info):
        return sanitize_sql_identifier(v, info.field_name)

    @field_validator("input_columns", "null_columns")
    @classmethod
    def check_identifiers(cls, v, info):
        return [sanitize_sql_identifier(name, info.field_name) for name in v]

    @property
    def retired_table(self) -> str:
        return f"{self.live_table}_retired"

    @property
    def all_columns(self) -> list[str]:
        return [*self.input_columns, self.load_time_column, *self.null_columns]


class LookupTableDefinition(BaseModel):
    """
    Definition of a small lookup table refreshed row by row.

    Attributes:
        key: Config key ("feature_codes")
        live_table: Table consumers read
        staging_table: Schema twin receiving the new rows
        file_prefix: Source files are named <file_prefix>_<language>.txt
        record_type: Which transform builds the validated record
        delimiter: Field delimiter in the source files
        rules: Structural rules applied to each raw record
    """

    key: str
    live_table: str
    staging_table: str
    file_prefix: str = Field(..., min_length=1)
    record_type: str = "feature_code"
    delimiter: str = "\t"
    rules: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("live_table", "staging_table")
    @classmethod
    def check_identifier(cls, v, info):
        return sanitize_sql_identifier(v, info.field_name)

    @property
    def retired_table(self) -> str:
        return f"{self.live_table}_retired"


def default_feature_codes_definition() -> LookupTableDefinition:
    return LookupTableDefinition(
        key="feature_codes",
        live_table="geonames_feature_codes",
        staging_table="geonames_feature_codes_working",
        file_prefix="featureCodes",
        record_type="feature_code",
        rules=[
            {"type": "field_count", "params": {"min": 3}},
            {"type": "composite_identifier", "field": 0, "params": {"separator": ".", "segments": 2}},
        ],
    )


class TableConfig(BaseModel):
    places: PlacesTableDefinition = Field(default_factory=PlacesTableDefinition)
    lookup_tables: dict[str, LookupTableDefinition] = Field(
        default_factory=lambda: {"feature_codes": default_feature_codes_definition()}
    )


class TableConfigLoader:
    """
    Loads table definitions from YAML configuration files.

    Expected YAML format:
    ```yaml
    places:
      live_table: geonames
      staging_table: geonames_working

    lookup_tables:
      feature_codes:
        live_table: geonames_feature_codes
        staging_table: geonames_feature_codes_working
        file_prefix: featureCodes
        record_type: feature_code
        rules:
          - type: field_count
            params:
              min: 3
          - type: composite_identifier
            field: 0
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the table config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Table configuration file not found: {config_path}")

    def load(self) -> TableConfig:
        """
        Load and parse table definitions.

        Returns:
            TableConfig with places and lookup table definitions

        Raises:
            ValueError: If YAML is invalid or a section has the wrong shape
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError("Table configuration must be a mapping")

        places = PlacesTableDefinition(**(config.get("places") or {}))

        lookup_section = config.get("lookup_tables")
        if lookup_section is None:
            return TableConfig(places=places)
        if not isinstance(lookup_section, dict):
            raise ValueError("'lookup_tables' must be a mapping of table key to definition")

        lookup_tables = {}
        for key, table_def in lookup_section.items():
            if not isinstance(table_def, dict):
                raise ValueError(f"Definition for lookup table '{key}' must be a mapping")
            lookup_tables[key] = LookupTableDefinition(key=key, **table_def)

        return TableConfig(places=places, lookup_tables=lookup_tables)


def load_table_config(config_path: str | Path | None = None) -> TableConfig:
    """Load the YAML file when it exists, otherwise the built-in geonames layout."""
    if config_path and Path(config_path).exists():
        return TableConfigLoader(config_path).load()
    return TableConfig()
