"""
Relational storage client used by the refresh pipelines.

StorageClient is the capability the pipelines depend on; PostgresStorage
implements it on top of psycopg3. Methods raise psycopg.Error (or OSError
for file access) and leave wrapping into refresh errors to the callers,
which know which lifecycle step failed.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import psycopg
from psycopg import sql

from geonames_refresh.core.models import ColumnInfo, IndexDefinition, InsertOutcome
from geonames_refresh.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class BulkLoadMapping:
    """
    Maps the positional fields of a delimited file onto table columns.

    Attributes:
        input_columns: One column per input field, in file order
        load_time_column: Column stamped with the load time (not read from input)
        null_columns: Columns loaded as NULL (not read from input)
        delimiter: Field delimiter of the input file
    """

    def __init__(
        self,
        input_columns: list[str],
        load_time_column: str | None = None,
        null_columns: list[str] | None = None,
        delimiter: str = "\t",
    ):
        if not input_columns:
            raise ValueError("BulkLoadMapping requires at least one input column")
        self.input_columns = list(input_columns)
        self.load_time_column = load_time_column
        self.null_columns = list(null_columns or [])
        self.delimiter = delimiter

    @property
    def target_columns(self) -> list[str]:
        columns = list(self.input_columns)
        if self.load_time_column:
            columns.append(self.load_time_column)
        columns.extend(self.null_columns)
        return columns

    def line_suffix(self, load_time: datetime) -> bytes:
        """Bytes appended to every input line for the synthesized columns."""
        parts = []
        if self.load_time_column:
            parts.append(load_time.isoformat())
        # Empty field == NULL (COPY runs with NULL '')
        parts.extend("" for _ in self.null_columns)
        if not parts:
            return b""
        return (self.delimiter + self.delimiter.join(parts)).encode("utf-8")


class StorageClient(ABC):
    """Storage-engine capability required by the refresh pipelines."""

    @abstractmethod
    def table_exists(self, name: str) -> bool: ...

    @abstractmethod
    def drop_table_if_exists(self, name: str) -> None: ...

    @abstractmethod
    def create_table_like(self, source: str, target: str) -> None:
        """Create ``target`` with the columns, defaults, constraints and indexes of ``source``."""

    @abstractmethod
    def describe_columns(self, table: str) -> list[ColumnInfo]: ...

    @abstractmethod
    def secondary_indexes(self, table: str) -> list[IndexDefinition]:
        """Indexes of ``table`` that do not back a constraint."""

    @abstractmethod
    def drop_indexes(self, indexes: list[IndexDefinition]) -> None: ...

    @abstractmethod
    def create_indexes(self, indexes: list[IndexDefinition]) -> None: ...

    @abstractmethod
    def bulk_load_file(
        self,
        table: str,
        path: str | Path,
        mapping: BulkLoadMapping,
        load_time: datetime | None = None,
        timeout: float | None = None,
    ) -> int:
        """Load a delimited file into ``table``; returns the number of rows loaded."""

    @abstractmethod
    def insert_row(self, table: str, row: dict[str, Any]) -> None: ...

    @abstractmethod
    def insert_rows(self, table: str, rows: Iterable[dict[str, Any]], atomic: bool = True) -> InsertOutcome:
        """
        Insert rows one by one inside a single transaction.

        Every row is attempted and counted. With ``atomic`` the transaction is
        rolled back when any row fails, leaving ``table`` untouched.
        """

    @abstractmethod
    def rename_table(self, old_name: str, new_name: str) -> None: ...

    @abstractmethod
    def swap_tables(self, staging: str, live: str, retired: str) -> None:
        """Atomically promote ``staging`` to ``live`` and discard the old live table."""

    @abstractmethod
    def count_rows(self, table: str) -> int: ...


class PostgresStorage(StorageClient):
    """
    PostgreSQL implementation of StorageClient.

    PostgreSQL DDL is transactional, so the swap runs as one transaction:
    readers either see the previous live table or the promoted one.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        copy_buffer_size: int = 1 << 20,
        lock_timeout: float | None = None,
    ):
        """
        Initialize storage client.

        Args:
            pool: Database connection pool
            copy_buffer_size: Bytes accumulated before each COPY write
            lock_timeout: Seconds the swap waits for table locks (None = wait indefinitely)
        """
        self.pool = pool
        self.copy_buffer_size = copy_buffer_size
        self.lock_timeout = lock_timeout

    def table_exists(self, name: str) -> bool:
        rows = self.pool.execute_query(
            "SELECT to_regclass(%s) IS NOT NULL AS present", (name,)
        )
        return bool(rows and rows[0]["present"])

    def drop_table_if_exists(self, name: str) -> None:
        self.pool.execute_command(
            sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(name))
        )

    def create_table_like(self, source: str, target: str) -> None:
        self.pool.execute_command(
            sql.SQL("CREATE TABLE {} (LIKE {} INCLUDING ALL)").format(
                sql.Identifier(target), sql.Identifier(source)
            )
        )

    def describe_columns(self, table: str) -> list[ColumnInfo]:
        rows = self.pool.execute_query(
            """
            SELECT column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_schema = current_schema() AND table_name = %s
            ORDER BY ordinal_position
            """,
            (table,),
        )
        return [
            ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
            )
            for row in rows
        ]

    def secondary_indexes(self, table: str) -> list[IndexDefinition]:
        rows = self.pool.execute_query(
            """
            SELECT i.relname AS index_name, pg_get_indexdef(ix.indexrelid) AS definition
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE n.nspname = current_schema()
              AND t.relname = %s
              AND NOT EXISTS (
                  SELECT 1 FROM pg_constraint c WHERE c.conindid = ix.indexrelid
              )
            ORDER BY i.relname
            """,
            (table,),
        )
        return [
            IndexDefinition(name=row["index_name"], definition=row["definition"])
            for row in rows
        ]

    def drop_indexes(self, indexes: list[IndexDefinition]) -> None:
        if not indexes:
            return
        with self.pool.get_connection() as conn:
            for index in indexes:
                conn.execute(sql.SQL("DROP INDEX {}").format(sql.Identifier(index.name)))

    def create_indexes(self, indexes: list[IndexDefinition]) -> None:
        if not indexes:
            return
        with self.pool.get_connection() as conn:
            for index in indexes:
                logger.debug(f"Re-creating index {index.name}")
                # pg_get_indexdef output, captured from the catalog
                conn.execute(index.definition)

    def bulk_load_file(
        self,
        table: str,
        path: str | Path,
        mapping: BulkLoadMapping,
        load_time: datetime | None = None,
        timeout: float | None = None,
    ) -> int:
        """
        Stream a delimited file into ``table`` through COPY FROM STDIN.

        Each input line is sent as-is with the synthesized columns appended.
        Blank lines are skipped. The COPY runs in one transaction, so a
        rejected line leaves ``table`` as it was before the call.

        Args:
            table: Target table
            path: Delimited input file
            mapping: Column mapping for the input fields
            load_time: Value for the load-time column (defaults to now, UTC)
            timeout: statement_timeout for the COPY in seconds

        Returns:
            Number of rows loaded
        """
        suffix = mapping.line_suffix(load_time or datetime.now(timezone.utc))
        statement = sql.SQL(
            "COPY {} ({}) FROM STDIN WITH (FORMAT text, DELIMITER {}, NULL '')"
        ).format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in mapping.target_columns),
            sql.Literal(mapping.delimiter),
        )

        rows = 0
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                if timeout:
                    cur.execute(
                        sql.SQL("SET LOCAL statement_timeout = {}").format(
                            sql.Literal(int(timeout * 1000))
                        )
                    )
                with open(path, "rb") as source, cur.copy(statement) as copy:
                    buffer = bytearray()
                    for line in source:
                        line = line.rstrip(b"\r\n")
                        if not line:
                            continue
                        buffer += line + suffix + b"\n"
                        rows += 1
                        if len(buffer) >= self.copy_buffer_size:
                            copy.write(buffer)
                            buffer = bytearray()
                    if buffer:
                        copy.write(buffer)
        return rows

    def _insert_statement(self, table: str, columns: list[str]) -> sql.Composed:
        return sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
        )

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        self.pool.execute_command(self._insert_statement(table, list(row)), row)

    def insert_rows(self, table: str, rows: Iterable[dict[str, Any]], atomic: bool = True) -> InsertOutcome:
        outcome = InsertOutcome()
        with self.pool.get_connection() as conn:
            with conn.transaction() as tx:
                with conn.cursor() as cur:
                    for position, row in enumerate(rows):
                        try:
                            with conn.transaction():
                                cur.execute(self._insert_statement(table, list(row)), row)
                            outcome.inserted += 1
                        except psycopg.Error as e:
                            outcome.failed += 1
                            outcome.errors.append(f"row {position}: {e}")
                            logger.error(
                                f"Row {position} was not inserted into {table}: {e}",
                                extra={"table": table, "row_position": position},
                            )
                if atomic and outcome.failed:
                    raise psycopg.Rollback(tx)
                outcome.committed = True
        if not outcome.committed:
            outcome.inserted = 0
        return outcome

    def rename_table(self, old_name: str, new_name: str) -> None:
        self.pool.execute_command(
            sql.SQL("ALTER TABLE {} RENAME TO {}").format(
                sql.Identifier(old_name), sql.Identifier(new_name)
            )
        )

    def swap_tables(self, staging: str, live: str, retired: str) -> None:
        """
        Promote ``staging`` to ``live`` in a single transaction.

        Steps, all-or-nothing: rename live to retired, rename staging to live,
        drop retired, then rename the promoted indexes from the staging prefix
        to the live prefix so index names stay stable across runs.
        """
        with self.pool.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    if self.lock_timeout:
                        cur.execute(
                            sql.SQL("SET LOCAL lock_timeout = {}").format(
                                sql.Literal(int(self.lock_timeout * 1000))
                            )
                        )
                    cur.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(retired)))
                    cur.execute("SELECT to_regclass(%s) IS NOT NULL AS present", (live,))
                    live_present = cur.fetchone()["present"]
                    if live_present:
                        cur.execute(
                            sql.SQL("ALTER TABLE {} RENAME TO {}").format(
                                sql.Identifier(live), sql.Identifier(retired)
                            )
                        )
                    cur.execute(
                        sql.SQL("ALTER TABLE {} RENAME TO {}").format(
                            sql.Identifier(staging), sql.Identifier(live)
                        )
                    )
                    if live_present:
                        cur.execute(sql.SQL("DROP TABLE {}").format(sql.Identifier(retired)))
                    self._rename_promoted_indexes(cur, staging, live)

    def _rename_promoted_indexes(self, cur: psycopg.Cursor, staging: str, live: str) -> None:
        cur.execute(
            """
            SELECT i.relname AS index_name
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE n.nspname = current_schema() AND t.relname = %s
            """,
            (live,),
        )
        for row in cur.fetchall():
            name = row["index_name"]
            if not name.startswith(staging):
                continue
            new_name = live + name[len(staging):]
            cur.execute("SELECT to_regclass(%s) IS NULL AS free", (new_name,))
            if cur.fetchone()["free"]:
                cur.execute(
                    sql.SQL("ALTER INDEX {} RENAME TO {}").format(
                        sql.Identifier(name), sql.Identifier(new_name)
                    )
                )

    def count_rows(self, table: str) -> int:
        rows = self.pool.execute_query(
            sql.SQL("SELECT COUNT(*) AS total FROM {}").format(sql.Identifier(table))
        )
        return rows[0]["total"]
