"""
Lookup table refresh pipeline.

Coordinates the flow: read lookup files -> parse -> validate -> transform ->
transactional insert into staging -> promote over live
"""

import os
import re
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from typing import Any

import psycopg

from geonames_refresh.batch.bulk_swap import ensure_promotable
from geonames_refresh.core.errors import (
    DiscoveryError,
    LoadError,
    RefreshError,
    SwapError,
    ValidationError,
)
from geonames_refresh.core.models import FeatureCodeRecord, RawRecord, RefreshResult
from geonames_refresh.core.progress import ProgressCallback, report_progress
from geonames_refresh.core.rules import LookupTableDefinition, RecordValidator
from geonames_refresh.observability import metrics
from geonames_refresh.observability.logger import get_logger, log_operation
from geonames_refresh.utils.validation import ConfigValidationError, validate_language_code
from geonames_refresh.warehouse.storage import StorageClient

logger = get_logger(__name__)


def _feature_code_transform(raw: RawRecord, language_code: str, now: datetime) -> dict[str, Any]:
    return FeatureCodeRecord.from_raw(raw, language_code, now=now).to_row()


# record_type -> callable(raw, language_code, now) returning an insertable row
TRANSFORM_REGISTRY: dict[str, Callable[[RawRecord, str, datetime], dict[str, Any]]] = {
    "feature_code": _feature_code_transform,
}


def language_code_from_path(path: str, prefix: str) -> str:
    """
    Extract the language code from a lookup file name.

    Examples:
        >>> language_code_from_path("/data/featureCodes_en.txt", "featureCodes")
        'en'

    Raises:
        DiscoveryError: If the file name does not follow <prefix>_<code>.<ext>
    """
    stem = os.path.splitext(os.path.basename(path))[0]
    match = re.fullmatch(re.escape(prefix) + r"_(.+)", stem)
    if not match:
        raise DiscoveryError(f"Lookup file {path} is not named {prefix}_<language>")
    try:
        return validate_language_code(match.group(1))
    except ConfigValidationError as e:
        raise DiscoveryError(f"Lookup file {path}: {e}") from e


class LookupRecordPipeline:
    """
    Refreshes one lookup table from its per-language source files.

    Rows failing validation are logged, counted and dropped. Valid rows are
    inserted into staging in a single transaction; if the storage engine
    refuses any of them the whole batch is rolled back and the run fails.
    """

    def __init__(
        self,
        storage: StorageClient,
        definition: LookupTableDefinition,
        progress: ProgressCallback | None = None,
    ):
        """
        Initialize lookup pipeline.

        Args:
            storage: Storage client
            definition: Lookup table definition (tables, file prefix, rules)
            progress: Optional (fraction_done, message) callback, called per file
        """
        self.storage = storage
        self.definition = definition
        self.progress = progress
        self.validator = RecordValidator(definition.rules)

        transform = TRANSFORM_REGISTRY.get(definition.record_type)
        if transform is None:
            raise ValueError(f"Unknown lookup record type: {definition.record_type}")
        self.transform = transform

    def parse_line(self, line: str, line_number: int = 0, source_file: str | None = None) -> RawRecord:
        return RawRecord(
            fields=line.rstrip("\r\n").split(self.definition.delimiter),
            line_number=line_number,
            source_file=source_file,
        )

    def read_records(self, path: str) -> Iterator[RawRecord]:
        """Yield one RawRecord per non-blank line of ``path``."""
        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                yield self.parse_line(line, line_number, path)

    def collect(self, paths: list[str]) -> tuple[list[dict[str, Any]], int, int]:
        """
        Parse, validate and transform every line of the given files.

        Args:
            paths: Resolved lookup file paths

        Returns:
            Tuple of (rows, attempted, rejected)

        Raises:
            DiscoveryError: If a file name carries no language code or a file cannot be read
        """
        table = self.definition.live_table
        rows: list[dict[str, Any]] = []
        attempted = 0
        rejected = 0
        now = datetime.now(timezone.utc)

        for index, path in enumerate(paths):
            language_code = language_code_from_path(path, self.definition.file_prefix)
            try:
                for raw in self.read_records(path):
                    attempted += 1
                    try:
                        self.validator.validate(raw)
                    except ValidationError as e:
                        rejected += 1
                        metrics.record_validation_failure(table, e.rule_name)
                        logger.warning(
                            f"Rejected line {raw.line_number} of {path}: {e}",
                            extra={"table": table, "rule_name": e.rule_name, "line_number": raw.line_number},
                        )
                        continue
                    rows.append(self.transform(raw, language_code, now))
            except (OSError, UnicodeDecodeError) as e:
                raise DiscoveryError(f"Unable to read lookup file {path}: {e}") from e

            report_progress(self.progress, (index + 1) / len(paths), os.path.basename(path))

        logger.info(
            f"Collected {len(rows)} valid rows for {table} ({rejected} rejected)",
            extra={"table": table, "files": len(paths)},
        )
        return rows, attempted, rejected

    def prepare_staging(self) -> None:
        """Drop and re-create the staging table as an empty twin of live."""
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            if not self.storage.table_exists(live):
                raise LoadError(f"Live table {live} does not exist; run the schema migrations first")
            self.storage.drop_table_if_exists(staging)
            self.storage.create_table_like(live, staging)
        except psycopg.Error as e:
            raise LoadError(f"Unable to prepare staging table {staging}: {e}") from e

    def run(self, paths: list[str]) -> RefreshResult:
        """
        Fill the staging table from the given lookup files.

        Returns:
            RefreshResult; ``success`` is True only when every valid row was inserted
        """
        table = self.definition.live_table
        staging = self.definition.staging_table
        started = time.perf_counter()

        if not paths:
            return self._failed(DiscoveryError(f"No lookup files given for {table}"), started)

        try:
            with log_operation("Prepare lookup staging", logger=logger, table=staging):
                self.prepare_staging()
            rows, attempted, rejected = self.collect(paths)
            with log_operation("Insert lookup rows", logger=logger, table=staging, rows=len(rows)), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=table, stage="insert"):
                outcome = self.storage.insert_rows(staging, rows, atomic=True)
        except psycopg.Error as e:
            return self._failed(LoadError(f"Unable to insert into {staging}: {e}"), started)
        except RefreshError as e:
            return self._failed(e, started)

        success = outcome.committed and outcome.inserted == len(rows)
        result = RefreshResult(
            table=table,
            rows_attempted=attempted,
            rows_accepted=outcome.inserted,
            rows_rejected=rejected + outcome.failed,
            elapsed_seconds=time.perf_counter() - started,
            success=success,
            details={
                "files": [os.path.basename(p) for p in paths],
                "rows_valid": len(rows),
                "rows_failed_insert": outcome.failed,
                "committed": outcome.committed,
            },
        )
        if not success:
            result.error = (
                f"{outcome.failed} of {len(rows)} valid rows were refused by {staging}; "
                "the batch was rolled back"
            )
            logger.error(result.error, extra={"table": table, "insert_errors": outcome.errors[:10]})
        return result

    def promote(self) -> None:
        """
        Replace the live lookup table with staging.

        Raises:
            SwapError: If staging is missing, mismatched or the swap fails
        """
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            with log_operation("Promote lookup table", logger=logger, table=live), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=live, stage="swap"):
                ensure_promotable(self.storage, staging, live)
                self.storage.swap_tables(staging, live, self.definition.retired_table)
        except psycopg.Error as e:
            raise SwapError(f"Unable to promote {staging} to {live}: {e}") from e

    def refresh(self, paths: list[str]) -> RefreshResult:
        """
        Run the pipeline and promote staging when the run succeeded.

        Args:
            paths: Resolved lookup file paths

        Returns:
            RefreshResult for the whole refresh
        """
        result = self.run(paths)
        if result.success:
            try:
                self.promote()
            except RefreshError as e:
                result.success = False
                result.error = str(e)
                logger.error(f"Lookup refresh failed: {e}", extra={"table": result.table})

        metrics.record_refresh(result.table, result.rows_accepted, result.rows_rejected, result.success)
        if result.success:
            logger.info(
                f"Lookup refresh complete: {result.rows_accepted} rows in {result.elapsed_seconds:.2f}s",
                extra={"table": result.table, "rows": result.rows_accepted},
            )
        return result

    def _failed(self, error: RefreshError, started: float) -> RefreshResult:
        table = self.definition.live_table
        logger.error(
            f"Lookup refresh failed: {error}",
            extra={"table": table, "error_type": type(error).__name__},
        )
        return RefreshResult(
            table=table,
            elapsed_seconds=time.perf_counter() - started,
            success=False,
            error=str(error),
            details={"error_type": type(error).__name__},
        )
