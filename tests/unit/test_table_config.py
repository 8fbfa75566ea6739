"""
Unit tests for table configuration loading and identifier checks.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from geonames_refresh.core.rules import (
    LookupTableDefinition,
    PlacesTableDefinition,
    TableConfigLoader,
    load_table_config,
)
from geonames_refresh.core.rules.table_config import GEONAMES_INPUT_COLUMNS
from geonames_refresh.utils.validation import (
    ConfigValidationError,
    sanitize_sql_identifier,
    validate_language_code,
)

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "tables.yaml"


class TestPlacesTableDefinition:

    def test_defaults(self):
        places = PlacesTableDefinition()

        assert places.live_table == "geonames"
        assert places.staging_table == "geonames_working"
        assert places.retired_table == "geonames_retired"
        assert len(places.input_columns) == 19
        assert places.all_columns[-2:] == ["created_at", "updated_at"]

    def test_unsafe_table_name_rejected(self):
        with pytest.raises(ValidationError):
            PlacesTableDefinition(staging_table="geonames; DROP TABLE geonames")


class TestTableConfigLoader:

    def test_repository_config_matches_defaults(self):
        config = TableConfigLoader(REPO_CONFIG).load()

        assert config.places.input_columns == GEONAMES_INPUT_COLUMNS
        feature_codes = config.lookup_tables["feature_codes"]
        assert feature_codes.file_prefix == "featureCodes"
        assert feature_codes.staging_table == "geonames_feature_codes_working"
        assert [r["type"] for r in feature_codes.rules] == ["field_count", "composite_identifier"]

    def test_partial_config(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("places:\n  live_table: places\n  staging_table: places_next\n")

        config = TableConfigLoader(path).load()

        assert config.places.live_table == "places"
        assert "feature_codes" in config.lookup_tables

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TableConfigLoader(tmp_path / "missing.yaml")

    def test_lookup_tables_must_be_mapping(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("lookup_tables:\n  - feature_codes\n")

        with pytest.raises(ValueError):
            TableConfigLoader(path).load()

    def test_defaults_when_file_absent(self, tmp_path):
        config = load_table_config(tmp_path / "missing.yaml")

        assert config.places.live_table == "geonames"
        assert isinstance(config.lookup_tables["feature_codes"], LookupTableDefinition)


class TestIdentifierValidation:

    @pytest.mark.parametrize("name", ["geonames", "geonames_working", "_t1"])
    def test_valid_identifiers(self, name):
        assert sanitize_sql_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "1geonames", "geo-names", "geo names", "a" * 64])
    def test_invalid_identifiers(self, name):
        with pytest.raises(ConfigValidationError):
            sanitize_sql_identifier(name)

    @pytest.mark.parametrize("code", ["en", "fr", "pt-BR", "zh-Hant", "ast"])
    def test_language_codes(self, code):
        assert validate_language_code(code) == code

    @pytest.mark.parametrize("code", ["", "e", "english", "en_US", "en-"])
    def test_invalid_language_codes(self, code):
        with pytest.raises(ConfigValidationError):
            validate_language_code(code)
