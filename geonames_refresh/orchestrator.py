"""
Install orchestration.

Runs a full geonames install in a fixed order: every lookup table first,
then the places table. The run holds a database advisory lock, records its
lifecycle in the status table and, when asked, empties the storage
directory once everything is live.
"""

import glob
import os
import shutil

from geonames_refresh.batch.pipeline import PlacesRefreshPipeline
from geonames_refresh.core.errors import DiscoveryError, RefreshError
from geonames_refresh.core.models import RefreshResult
from geonames_refresh.core.progress import ProgressCallback
from geonames_refresh.core.rules import LookupTableDefinition, TableConfig
from geonames_refresh.lookup.pipeline import LookupRecordPipeline
from geonames_refresh.observability.logger import get_logger, log_operation
from geonames_refresh.status.tracker import RefreshStatusTracker
from geonames_refresh.warehouse.connection import DatabaseConnectionPool
from geonames_refresh.warehouse.storage import StorageClient

logger = get_logger(__name__)


def find_lookup_files(storage_dir: str, definition: LookupTableDefinition) -> list[str]:
    """Resolved paths of ``<prefix>_*.txt`` files in the storage directory, sorted."""
    pattern = os.path.join(storage_dir, f"{glob.escape(definition.file_prefix)}_*.txt")
    return sorted(os.path.abspath(p) for p in glob.glob(pattern) if os.path.isfile(p))


def empty_directory(directory: str) -> int:
    """Remove everything inside ``directory``; returns the number of entries removed."""
    removed = 0
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                shutil.rmtree(entry.path)
            else:
                os.remove(entry.path)
            removed += 1
    return removed


class InstallOrchestrator:
    """
    Drives a full install and the status transitions around it.
    """

    LOCK_NAME = "geonames_refresh"

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        storage: StorageClient,
        storage_dir: str,
        tables: TableConfig | None = None,
        tracker: RefreshStatusTracker | None = None,
        load_timeout: float | None = None,
        progress: ProgressCallback | None = None,
    ):
        """
        Args:
            pool: Connection pool (advisory lock and status table)
            storage: Storage client used by the pipelines
            storage_dir: Directory with the extracted source files
            tables: Places and lookup table definitions
            tracker: Status tracker (defaults to one on ``pool``)
            load_timeout: Upper bound in seconds for the places bulk load
            progress: Optional (fraction_done, message) callback
        """
        self.pool = pool
        self.storage = storage
        self.storage_dir = storage_dir
        self.tables = tables or TableConfig()
        self.tracker = tracker or RefreshStatusTracker(pool)
        self.load_timeout = load_timeout
        self.progress = progress

    def install(self, clean_storage: bool = False) -> list[RefreshResult]:
        """
        Refresh every lookup table, then the places table.

        Args:
            clean_storage: Empty the storage directory after a successful install

        Returns:
            One RefreshResult per refreshed table, in run order

        Raises:
            StateError: If another install holds the lock
            RefreshError: If any table refresh fails (status is set to error)
        """
        with self.pool.advisory_lock(self.LOCK_NAME):
            self.tracker.ensure_table()
            # The lock is held, so an Installing row can only be left over from a crashed run.
            self.tracker.begin(recover_stale=True)

            try:
                results = self._run_all()
                self.tracker.mark_live()
            except Exception as e:
                self.tracker.mark_error(str(e))
                raise

        if clean_storage:
            removed = empty_directory(self.storage_dir)
            logger.info(f"Emptied storage directory {self.storage_dir} ({removed} entries)")
        return results

    def _run_all(self) -> list[RefreshResult]:
        results = []
        with log_operation("Install", logger=logger, storage_dir=self.storage_dir):
            for definition in self.tables.lookup_tables.values():
                results.append(self._checked(self.refresh_lookup(definition)))
            results.append(self._checked(self.refresh_places()))
        return results

    def refresh_lookup(self, definition: LookupTableDefinition) -> RefreshResult:
        paths = find_lookup_files(self.storage_dir, definition)
        if not paths:
            raise DiscoveryError(
                f"No {definition.file_prefix}_<language>.txt files found in {self.storage_dir}"
            )
        pipeline = LookupRecordPipeline(self.storage, definition, progress=self.progress)
        return pipeline.refresh(paths)

    def refresh_places(self) -> RefreshResult:
        pipeline = PlacesRefreshPipeline(
            self.storage,
            self.storage_dir,
            definition=self.tables.places,
            progress=self.progress,
            load_timeout=self.load_timeout,
        )
        return pipeline.refresh_directory()

    @staticmethod
    def _checked(result: RefreshResult) -> RefreshResult:
        if not result.success:
            raise RefreshError(f"Refresh of {result.table} failed: {result.error}")
        return result
