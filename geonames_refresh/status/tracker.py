"""
Refresh status tracker.

Persists the coarse lifecycle state of a dataset (one row per dataset) so
operators and the next run can see whether the last install finished.
The tracker holds no control logic: the install orchestrator decides when
to move between states, the tracker checks that the move is legal and
records it.
"""

from datetime import datetime, timezone

from psycopg import sql

from geonames_refresh.core.errors import StateError
from geonames_refresh.core.models import RefreshState, RefreshStatus
from geonames_refresh.observability.logger import get_logger
from geonames_refresh.utils.validation import sanitize_sql_identifier
from geonames_refresh.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

STATUS_TABLE = "geonames_refresh_status"

_ALLOWED_TRANSITIONS = {
    RefreshState.NOT_INSTALLED: {RefreshState.INSTALLING},
    RefreshState.LIVE: {RefreshState.INSTALLING},
    RefreshState.ERROR: {RefreshState.INSTALLING},
    RefreshState.INSTALLING: {RefreshState.LIVE, RefreshState.ERROR},
}


def validate_transition(
    current: RefreshState,
    target: RefreshState,
    recover_stale: bool = False,
) -> None:
    """
    Check a lifecycle move.

    Installing -> Installing is only allowed with ``recover_stale``: the
    caller holds the run lock, so a leftover Installing row belongs to a
    run that died without recording its outcome.

    Raises:
        StateError: If the move is not allowed
    """
    if current is RefreshState.INSTALLING and target is RefreshState.INSTALLING and recover_stale:
        return
    if target not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise StateError(f"Cannot move refresh status from {current.value} to {target.value}")


class RefreshStatusTracker:
    """Reads and writes the status row of one dataset."""

    def __init__(self, pool: DatabaseConnectionPool, dataset: str = "geonames", table: str = STATUS_TABLE):
        self.pool = pool
        self.dataset = dataset
        self.table = sanitize_sql_identifier(table, "status_table")

    def ensure_table(self) -> None:
        self.pool.execute_command(
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {} (
                    dataset TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    first_installed_at TIMESTAMPTZ,
                    last_installed_at TIMESTAMPTZ,
                    last_error TEXT,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            ).format(sql.Identifier(self.table))
        )

    def get(self) -> RefreshStatus:
        """Current status; NotInstalled when the dataset has no row yet."""
        rows = self.pool.execute_query(
            sql.SQL(
                "SELECT dataset, state, first_installed_at, last_installed_at, last_error, updated_at "
                "FROM {} WHERE dataset = %s"
            ).format(sql.Identifier(self.table)),
            (self.dataset,),
        )
        if not rows:
            return RefreshStatus(dataset=self.dataset)
        return RefreshStatus(**rows[0])

    def begin(self, recover_stale: bool = False) -> RefreshStatus:
        """Move to Installing."""
        return self._transition(RefreshState.INSTALLING, recover_stale=recover_stale, last_error=None)

    def mark_live(self, at: datetime | None = None) -> RefreshStatus:
        """
        Move to Live after a successful install.

        ``last_installed_at`` is always updated; ``first_installed_at`` is
        only set the first time the dataset goes live.
        """
        return self._transition(RefreshState.LIVE, installed_at=at or datetime.now(timezone.utc), last_error=None)

    def mark_error(self, message: str) -> RefreshStatus:
        return self._transition(RefreshState.ERROR, last_error=message)

    def _transition(
        self,
        target: RefreshState,
        recover_stale: bool = False,
        installed_at: datetime | None = None,
        last_error: str | None = None,
    ) -> RefreshStatus:
        table = sql.Identifier(self.table)
        now = datetime.now(timezone.utc)

        with self.pool.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        sql.SQL(
                            "SELECT dataset, state, first_installed_at, last_installed_at, last_error, updated_at "
                            "FROM {} WHERE dataset = %s FOR UPDATE"
                        ).format(table),
                        (self.dataset,),
                    )
                    row = cur.fetchone()
                    current = RefreshStatus(**row) if row else RefreshStatus(dataset=self.dataset)
                    validate_transition(current.state, target, recover_stale)

                    updated = current.model_copy(
                        update={
                            "state": target,
                            "last_error": last_error,
                            "updated_at": now,
                            "first_installed_at": current.first_installed_at or installed_at,
                            "last_installed_at": installed_at or current.last_installed_at,
                        }
                    )
                    cur.execute(
                        sql.SQL(
                            """
                            INSERT INTO {} (dataset, state, first_installed_at, last_installed_at,
                                            last_error, updated_at)
                            VALUES (%(dataset)s, %(state)s, %(first_installed_at)s, %(last_installed_at)s,
                                    %(last_error)s, %(updated_at)s)
                            ON CONFLICT (dataset) DO UPDATE SET
                                state = EXCLUDED.state,
                                first_installed_at = EXCLUDED.first_installed_at,
                                last_installed_at = EXCLUDED.last_installed_at,
                                last_error = EXCLUDED.last_error,
                                updated_at = EXCLUDED.updated_at
                            """
                        ).format(table),
                        {**updated.model_dump(), "state": target.value},
                    )

        logger.info(
            f"Refresh status of {self.dataset}: {current.state.value} -> {target.value}",
            extra={"dataset": self.dataset, "state": target.value},
        )
        return updated
