"""
Places refresh pipeline orchestration.

Coordinates the flow: discover partitions -> build master extract ->
bulk load into staging -> promote over live
"""

import os
import time
from typing import Any

from geonames_refresh.core.errors import RefreshError
from geonames_refresh.core.models import MasterExtract, RefreshResult
from geonames_refresh.core.progress import ProgressCallback
from geonames_refresh.core.rules import PlacesTableDefinition
from geonames_refresh.observability import metrics
from geonames_refresh.observability.logger import get_logger
from geonames_refresh.warehouse.storage import StorageClient

from .bulk_swap import BulkLoadSwap
from .discovery import discover_partitions
from .master_extract import MasterExtractBuilder, count_lines

logger = get_logger(__name__)


class PlacesRefreshPipeline:
    """
    Refreshes the places table from the partitions in a storage directory.

    Entry points return a RefreshResult in every case; a failed run has
    ``success=False`` and the error message, and the live table keeps its
    previous contents.
    """

    def __init__(
        self,
        storage: StorageClient,
        storage_dir: str,
        definition: PlacesTableDefinition | None = None,
        progress: ProgressCallback | None = None,
        load_timeout: float | None = None,
    ):
        """
        Initialize places pipeline.

        Args:
            storage: Storage client
            storage_dir: Directory with the downloaded (extracted) partitions
            definition: Table names and column mapping
            progress: Optional (fraction_done, message) callback for the merge step
            load_timeout: Upper bound in seconds for the bulk load
        """
        self.storage = storage
        self.storage_dir = storage_dir
        self.definition = definition or PlacesTableDefinition()
        self.progress = progress
        self.load_timeout = load_timeout

    def refresh_directory(self) -> RefreshResult:
        """
        Discover the extracted (.txt) partitions, merge them and load the result.

        Returns:
            RefreshResult with row counts and timing
        """
        started = time.perf_counter()
        logger.info(f"Starting places refresh from {self.storage_dir}")

        try:
            partitions = discover_partitions(
                self.storage_dir,
                extension=".txt",
                consolidated_stem=self.definition.consolidated_stem,
            )
            builder = MasterExtractBuilder(
                self.storage_dir,
                master_file_name=self.definition.master_file_name,
                progress=self.progress,
            )
            with metrics.track_duration(
                metrics.stage_duration_seconds, table=self.definition.live_table, stage="merge"
            ):
                master = builder.build(partitions)
        except RefreshError as e:
            return self._failed(e, started, {"storage_dir": self.storage_dir})

        result = self._run(master, started)
        result.details["partitions"] = [p.name for p in partitions]
        return result

    def load_master(self, master_path: str) -> RefreshResult:
        """
        Load an already-built master extract.

        Args:
            master_path: Resolved absolute path of the master extract

        Returns:
            RefreshResult with row counts and timing
        """
        started = time.perf_counter()
        try:
            master = MasterExtract(
                path=master_path,
                line_count=count_lines(master_path),
                byte_count=os.path.getsize(master_path),
            )
        except OSError as e:
            return self._failed(
                RefreshError(f"Unable to read master extract {master_path}: {e}"),
                started,
                {"master_path": master_path},
            )
        return self._run(master, started)

    def _run(self, master: MasterExtract, started: float) -> RefreshResult:
        swap = BulkLoadSwap(self.storage, self.definition, load_timeout=self.load_timeout)
        try:
            result = swap.run(master)
        except RefreshError as e:
            failed_from = swap.failed_from or swap.state
            result = self._failed(
                e,
                started,
                {
                    "master_path": master.path,
                    "master_lines": master.line_count,
                    "state": swap.state.value,
                    "failed_from": failed_from.value,
                    "promoted": False,
                },
            )
            if swap.rows_loaded is None:
                result.rows_attempted = master.line_count
                result.rows_rejected = master.line_count
            else:
                # rows reached staging; only the promotion is missing
                result.rows_attempted = swap.rows_loaded
                result.rows_accepted = swap.rows_loaded
            return result

        result.elapsed_seconds = time.perf_counter() - started
        metrics.record_refresh(result.table, result.rows_accepted, result.rows_rejected, True)
        logger.info(
            f"Places refresh complete: {result.rows_accepted} rows in {result.elapsed_seconds:.1f}s",
            extra={"table": result.table, "rows": result.rows_accepted},
        )
        return result

    def _failed(self, error: RefreshError, started: float, details: dict[str, Any]) -> RefreshResult:
        table = self.definition.live_table
        logger.error(
            f"Places refresh failed: {error}",
            extra={"table": table, "error_type": type(error).__name__},
        )
        metrics.record_refresh(table, 0, 0, False)
        return RefreshResult(
            table=table,
            elapsed_seconds=time.perf_counter() - started,
            success=False,
            error=str(error),
            details={"error_type": type(error).__name__, **details},
        )
