"""
Staging-table lifecycle for the places table.

    idle -> staging_created -> loaded -> indexes_rebuilt -> swapped -> done
                  \\               \\            \\              \\
                   +-------------- error ---------+--------------+

The live table is only touched by the final promotion, which is a single
atomic swap. Any earlier failure leaves the live table as it was and the
staging table in place for diagnosis.
"""

import time
from datetime import datetime, timezone
from enum import Enum

import psycopg

from geonames_refresh.core.errors import LoadError, StateError, SwapError
from geonames_refresh.core.models import IndexDefinition, MasterExtract, RefreshResult
from geonames_refresh.core.rules import PlacesTableDefinition
from geonames_refresh.observability import metrics
from geonames_refresh.observability.logger import get_logger, log_operation
from geonames_refresh.warehouse.storage import BulkLoadMapping, StorageClient

logger = get_logger(__name__)


class SwapState(str, Enum):
    IDLE = "idle"
    STAGING_CREATED = "staging_created"
    LOADED = "loaded"
    INDEXES_REBUILT = "indexes_rebuilt"
    SWAPPED = "swapped"
    DONE = "done"
    ERROR = "error"


_NEXT_STATE = {
    SwapState.IDLE: SwapState.STAGING_CREATED,
    SwapState.STAGING_CREATED: SwapState.LOADED,
    SwapState.LOADED: SwapState.INDEXES_REBUILT,
    SwapState.INDEXES_REBUILT: SwapState.SWAPPED,
    SwapState.SWAPPED: SwapState.DONE,
}


def ensure_promotable(storage: StorageClient, staging: str, live: str) -> None:
    """
    Check that ``staging`` can replace ``live`` before any rename happens.

    Raises:
        SwapError: If staging is missing or its columns differ from live's
    """
    if not storage.table_exists(staging):
        raise SwapError(f"Staging table {staging} does not exist")
    if not storage.table_exists(live):
        return

    staging_columns = storage.describe_columns(staging)
    live_columns = storage.describe_columns(live)
    if staging_columns != live_columns:
        raise SwapError(
            f"Staging table {staging} does not match the schema of {live}: "
            f"{[c.name for c in staging_columns]} != {[c.name for c in live_columns]}"
        )


class BulkLoadSwap:
    """
    Drives one bulk refresh of the places table.

    An instance handles a single run; create a new one for the next refresh.
    """

    def __init__(
        self,
        storage: StorageClient,
        definition: PlacesTableDefinition | None = None,
        load_timeout: float | None = None,
    ):
        """
        Args:
            storage: Storage client
            definition: Live/staging table names and column mapping
            load_timeout: Upper bound in seconds for the bulk load (None = unbounded)
        """
        self.storage = storage
        self.definition = definition or PlacesTableDefinition()
        self.load_timeout = load_timeout
        self.mapping = BulkLoadMapping(
            input_columns=self.definition.input_columns,
            load_time_column=self.definition.load_time_column,
            null_columns=self.definition.null_columns,
        )
        self._state = SwapState.IDLE
        self._failed_from: SwapState | None = None
        self._rows_loaded: int | None = None
        self._deferred_indexes: list[IndexDefinition] = []

    @property
    def state(self) -> SwapState:
        return self._state

    @property
    def failed_from(self) -> SwapState | None:
        """Last state reached before the run moved to error."""
        return self._failed_from

    @property
    def rows_loaded(self) -> int | None:
        """Rows sitting in staging once the bulk load completed."""
        return self._rows_loaded

    def _advance(self, target: SwapState) -> None:
        if _NEXT_STATE.get(self._state) is not target:
            raise StateError(f"Cannot move from {self._state.value} to {target.value}")
        logger.debug(f"{self.definition.live_table}: {self._state.value} -> {target.value}")
        self._state = target

    def run(self, master: MasterExtract) -> RefreshResult:
        """
        Load the master extract into staging and promote it over live.

        Args:
            master: Master extract produced by MasterExtractBuilder

        Returns:
            RefreshResult for a successful run

        Raises:
            LoadError: If staging cannot be prepared, loaded or re-indexed
            SwapError: If promotion fails
            StateError: If this instance already ran
        """
        if self._state is not SwapState.IDLE:
            raise StateError(f"BulkLoadSwap already used (state: {self._state.value})")

        live = self.definition.live_table
        started = time.perf_counter()
        logger.info(
            f"Refreshing {live} from {master.path} ({master.line_count} lines)",
            extra={"table": live, "path": master.path},
        )

        try:
            self._create_staging()
            rows_loaded = self._load(master)
            self._rebuild_indexes()
            self._promote()
            self._advance(SwapState.DONE)
        except Exception:
            self._failed_from = self._state
            self._state = SwapState.ERROR
            raise

        return RefreshResult(
            table=live,
            rows_attempted=rows_loaded,
            rows_accepted=rows_loaded,
            rows_rejected=0,
            elapsed_seconds=time.perf_counter() - started,
            success=True,
            details={
                "master_path": master.path,
                "master_lines": master.line_count,
                "fast_path": master.fast_path,
            },
        )

    def _create_staging(self) -> None:
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            with log_operation("Create staging table", logger=logger, table=staging), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=live, stage="staging"):
                if not self.storage.table_exists(live):
                    raise LoadError(f"Live table {live} does not exist; run the schema migrations first")
                self.storage.drop_table_if_exists(staging)
                self.storage.create_table_like(live, staging)
                self._deferred_indexes = self.storage.secondary_indexes(staging)
                self.storage.drop_indexes(self._deferred_indexes)
        except (psycopg.Error, OSError) as e:
            raise LoadError(f"Unable to prepare staging table {staging}: {e}") from e
        self._advance(SwapState.STAGING_CREATED)

    def _load(self, master: MasterExtract) -> int:
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            with log_operation("Bulk load", logger=logger, table=staging, path=master.path), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=live, stage="load"):
                rows = self.storage.bulk_load_file(
                    staging,
                    master.path,
                    self.mapping,
                    load_time=datetime.now(timezone.utc),
                    timeout=self.load_timeout,
                )
        except (psycopg.Error, OSError) as e:
            raise LoadError(f"Bulk load of {master.path} into {staging} failed: {e}") from e
        logger.info(f"Loaded {rows} rows into {staging}", extra={"table": staging, "rows": rows})
        self._rows_loaded = rows
        self._advance(SwapState.LOADED)
        return rows

    def _rebuild_indexes(self) -> None:
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            with log_operation("Rebuild indexes", logger=logger, table=staging,
                               indexes=len(self._deferred_indexes)), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=live, stage="indexes"):
                self.storage.create_indexes(self._deferred_indexes)
        except (psycopg.Error, OSError) as e:
            raise LoadError(f"Unable to rebuild indexes on {staging}: {e}") from e
        self._advance(SwapState.INDEXES_REBUILT)

    def _promote(self) -> None:
        live = self.definition.live_table
        staging = self.definition.staging_table
        try:
            with log_operation("Promote staging table", logger=logger, table=live), \
                    metrics.track_duration(metrics.stage_duration_seconds, table=live, stage="swap"):
                ensure_promotable(self.storage, staging, live)
                self.storage.swap_tables(staging, live, self.definition.retired_table)
        except (psycopg.Error, OSError) as e:
            raise SwapError(f"Unable to promote {staging} to {live}: {e}") from e
        self._advance(SwapState.SWAPPED)
