"""
Unit tests for the lookup record pipeline, against the in-memory storage.
"""

import pytest

from geonames_refresh.core.errors import DiscoveryError
from geonames_refresh.core.rules.table_config import default_feature_codes_definition
from geonames_refresh.lookup.pipeline import LookupRecordPipeline, language_code_from_path

A_ADM1 = "A.ADM1\tfirst-order admin division\tan administrative division"


def feature_code_lines(count: int) -> list[str]:
    return [f"P.PPL{i}\tpopulated place {i}\ta city, town or village" for i in range(count)]


@pytest.fixture
def pipeline(memory_storage):
    return LookupRecordPipeline(memory_storage, default_feature_codes_definition())


@pytest.fixture
def write_lookup_file(storage_dir):
    def _write(name: str, lines: list[str]) -> str:
        path = storage_dir / name
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return str(path)
    return _write


@pytest.mark.unit
class TestLanguageCode:

    def test_from_file_name(self):
        assert language_code_from_path("/data/featureCodes_en.txt", "featureCodes") == "en"

    def test_region_suffix(self):
        assert language_code_from_path("featureCodes_pt-BR.txt", "featureCodes") == "pt-BR"

    @pytest.mark.parametrize("name", ["featureCodes.txt", "featureCodes_.txt", "other_en.txt", "featureCodes_e n.txt"])
    def test_bad_names(self, name):
        with pytest.raises(DiscoveryError):
            language_code_from_path(name, "featureCodes")


@pytest.mark.unit
class TestParseAndCollect:

    def test_parse_line_strips_newline(self, pipeline):
        raw = pipeline.parse_line(A_ADM1 + "\r\n", 7, "featureCodes_en.txt")

        assert raw.fields == ["A.ADM1", "first-order admin division", "an administrative division"]
        assert raw.line_number == 7

    def test_canonical_record(self, pipeline, write_lookup_file):
        path = write_lookup_file("featureCodes_en.txt", [A_ADM1])

        rows, attempted, rejected = pipeline.collect([path])

        assert (attempted, rejected) == (1, 0)
        row = rows[0]
        assert row["feature_class"] == "A"
        assert row["feature_code"] == "ADM1"
        assert row["name"] == "first-order admin division"
        assert row["description"] == "an administrative division"
        assert row["language_code"] == "en"
        assert row["created_at"] == row["updated_at"]

    def test_null_line_rejected(self, pipeline, write_lookup_file):
        lines = feature_code_lines(9)
        lines.insert(4, "null\tnot available")
        path = write_lookup_file("featureCodes_en.txt", lines)

        rows, attempted, rejected = pipeline.collect([path])

        assert len(rows) == 9
        assert attempted == 10
        assert rejected == 1

    @pytest.mark.parametrize("identifier", ["A", "A.", ".ADM1", "A.ADM1.X", ""])
    def test_malformed_identifiers(self, pipeline, write_lookup_file, identifier):
        path = write_lookup_file("featureCodes_en.txt", [f"{identifier}\tname\tdescription"])

        rows, _, rejected = pipeline.collect([path])

        assert rows == []
        assert rejected == 1

    def test_blank_lines_are_not_candidates(self, pipeline, write_lookup_file):
        path = write_lookup_file("featureCodes_en.txt", [A_ADM1, "", "   ", A_ADM1])

        rows, attempted, rejected = pipeline.collect([path])

        assert (len(rows), attempted, rejected) == (2, 2, 0)

    def test_language_per_file(self, pipeline, write_lookup_file):
        en = write_lookup_file("featureCodes_en.txt", [A_ADM1])
        de = write_lookup_file("featureCodes_de.txt", [A_ADM1])

        rows, _, _ = pipeline.collect([en, de])

        assert [r["language_code"] for r in rows] == ["en", "de"]

    def test_progress_per_file(self, memory_storage, write_lookup_file):
        reports = []
        pipeline = LookupRecordPipeline(
            memory_storage,
            default_feature_codes_definition(),
            progress=lambda fraction, message: reports.append((fraction, message)),
        )
        paths = [write_lookup_file(f"featureCodes_{c}.txt", [A_ADM1]) for c in ("de", "en")]

        pipeline.collect(paths)

        assert reports == [(0.5, "featureCodes_de.txt"), (1.0, "featureCodes_en.txt")]

    def test_unknown_record_type(self, memory_storage):
        definition = default_feature_codes_definition().model_copy(update={"record_type": "alternate_name"})

        with pytest.raises(ValueError):
            LookupRecordPipeline(memory_storage, definition)


@pytest.mark.unit
class TestRunAndRefresh:

    def test_refresh_replaces_live(self, pipeline, memory_storage, write_lookup_file):
        memory_storage.tables["geonames_feature_codes"]["rows"] = [{"feature_code": "OLD"}]
        lines = feature_code_lines(9)
        lines.append("null\tnot available")
        path = write_lookup_file("featureCodes_en.txt", lines)

        result = pipeline.refresh([path])

        assert result.success
        assert result.rows_attempted == 10
        assert result.rows_accepted == 9
        assert result.rows_rejected == 1
        assert len(memory_storage.rows("geonames_feature_codes")) == 9
        assert "geonames_feature_codes_working" not in memory_storage.tables

    def test_single_refused_row_fails_whole_batch(self, pipeline, memory_storage, write_lookup_file):
        memory_storage.tables["geonames_feature_codes"]["rows"] = [{"feature_code": "OLD"}]
        path = write_lookup_file("featureCodes_en.txt", feature_code_lines(100))
        memory_storage.refuse_row = lambda row: row["feature_code"] == "PPL42"

        result = pipeline.refresh([path])

        assert not result.success
        assert result.details["rows_valid"] == 100
        assert result.details["rows_failed_insert"] == 1
        assert result.rows_accepted == 0
        assert memory_storage.rows("geonames_feature_codes_working") == []
        assert memory_storage.rows("geonames_feature_codes") == [{"feature_code": "OLD"}]
        assert "swap_tables" not in memory_storage.calls

    def test_run_does_not_promote(self, pipeline, memory_storage, write_lookup_file):
        path = write_lookup_file("featureCodes_en.txt", [A_ADM1])

        result = pipeline.run([path])

        assert result.success
        assert len(memory_storage.rows("geonames_feature_codes_working")) == 1
        assert memory_storage.rows("geonames_feature_codes") == []

    def test_no_files(self, pipeline):
        result = pipeline.refresh([])

        assert not result.success
        assert result.details["error_type"] == "DiscoveryError"

    def test_missing_live_table(self, pipeline, memory_storage, write_lookup_file):
        del memory_storage.tables["geonames_feature_codes"]
        path = write_lookup_file("featureCodes_en.txt", [A_ADM1])

        result = pipeline.refresh([path])

        assert not result.success
        assert result.details["error_type"] == "LoadError"

    def test_badly_named_file(self, pipeline, write_lookup_file):
        path = write_lookup_file("features.txt", [A_ADM1])

        result = pipeline.refresh([path])

        assert not result.success
        assert "features.txt" in result.error
