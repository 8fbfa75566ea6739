"""
PostgreSQL connection pool management using psycopg3

One pool per process; the refresh pipelines borrow a connection per unit of
work (a DDL step, the COPY, the insert batch, the swap transaction).
"""
import os
import time
import zlib
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from geonames_refresh.core.errors import StateError
from geonames_refresh.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Connection settings default to the GEONAMES_DB_* environment variables.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host (defaults to env var GEONAMES_DB_HOST)
            port: Database port (defaults to env var GEONAMES_DB_PORT)
            database: Database name (defaults to env var GEONAMES_DB_NAME)
            user: Database user (defaults to env var GEONAMES_DB_USER)
            password: Database password (defaults to env var GEONAMES_DB_PASSWORD)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
        """
        self.host = host or os.getenv("GEONAMES_DB_HOST", "localhost")
        self.port = port or int(os.getenv("GEONAMES_DB_PORT", "5432"))
        self.database = database or os.getenv("GEONAMES_DB_NAME", "geonames")
        self.user = user or os.getenv("GEONAMES_DB_USER", "geonames")
        self.password = password or os.getenv("GEONAMES_DB_PASSWORD")

        if not self.password:
            raise ValueError(
                "Database password must be provided. "
                "Set GEONAMES_DB_PASSWORD environment variable or pass to constructor."
            )

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        self.conninfo = (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password} "
            f"connect_timeout={int(self.timeout)}"
        )

        self._pool: ConnectionPool | None = None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool, retrying while the server comes up.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            pool = ConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
                self._pool = pool
                return
            except OperationalError as e:
                pool.close()
                if attempt < max_retries:
                    logger.warning(
                        f"Database not reachable (attempt {attempt}/{max_retries}), retrying",
                        extra={"host": self.host, "port": self.port},
                    )
                    time.sleep(retry_delay)
                else:
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Borrow a connection from the pool.

        The block runs inside one transaction: it is committed when the block
        exits normally and rolled back when it raises.

        Yields:
            psycopg.Connection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query, params: tuple | dict | None = None) -> list[dict]:
        """
        Execute a query and return all rows as dictionaries
        """
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_command(self, command, params: tuple | dict | None = None) -> int:
        """
        Execute a DDL/DML command in its own transaction

        Returns:
            Number of rows affected
        """
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(command, params)
                rowcount = cur.rowcount
            conn.commit()
            return rowcount

    @contextmanager
    def advisory_lock(self, name: str):
        """
        Hold a session-level advisory lock for the duration of the block.

        Two refresh runs against the same database share staging table names;
        the lock keeps a second run from starting while the first is active.

        Args:
            name: Lock name, hashed to the bigint key PostgreSQL expects

        Raises:
            StateError: If another session already holds the lock
        """
        key = zlib.crc32(name.encode("utf-8"))
        with self.get_connection() as conn:
            row = conn.execute("SELECT pg_try_advisory_lock(%s) AS locked", (key,)).fetchone()
            conn.commit()
            if not row["locked"]:
                raise StateError(f"Another refresh run holds the '{name}' lock")
            try:
                yield
            finally:
                conn.execute("SELECT pg_advisory_unlock(%s)", (key,))
                conn.commit()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
