"""
Pytest configuration and fixtures for geonames-refresh tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from pathlib import Path
from typing import Any, Generator, Iterable

import psycopg
import pytest
from psycopg import sql
from testcontainers.postgres import PostgresContainer

from geonames_refresh.core.models import ColumnInfo, IndexDefinition, InsertOutcome
from geonames_refresh.core.rules.table_config import GEONAMES_INPUT_COLUMNS
from geonames_refresh.warehouse.connection import DatabaseConnectionPool
from geonames_refresh.warehouse.storage import BulkLoadMapping, StorageClient

INIT_SQL_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "docker", "init-db.sql")


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATA HELPERS
# =======================

def geonames_line(geonameid: int, name: str = "Place", country_code: str = "US") -> str:
    """One 19-field geonames dump line (no trailing newline)."""
    fields = {
        "geonameid": str(geonameid),
        "name": name,
        "asciiname": name,
        "alternatenames": "",
        "latitude": "40.5",
        "longitude": "-74.25",
        "feature_class": "P",
        "feature_code": "PPL",
        "country_code": country_code,
        "cc2": "",
        "admin1_code": "NJ",
        "admin2_code": "",
        "admin3_code": "",
        "admin4_code": "",
        "population": "1200",
        "elevation": "",
        "dem": "12",
        "timezone": "America/New_York",
        "modification_date": "2024-01-15",
    }
    return "\t".join(fields[column] for column in GEONAMES_INPUT_COLUMNS)


def write_partition(directory: Path, file_name: str, first_id: int, count: int, country_code: str = "US") -> Path:
    path = directory / file_name
    path.write_text(
        "".join(geonames_line(first_id + i, f"Place {first_id + i}", country_code) + "\n" for i in range(count)),
        encoding="utf-8",
    )
    return path


# =======================
# IN-MEMORY STORAGE
# =======================

class InMemoryStorage(StorageClient):
    """
    Dict-backed StorageClient for unit tests.

    Failures are injected per method through ``fail_on`` (method name ->
    exception); ``refuse_row`` makes insert_rows refuse individual rows.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, Any]] = {}
        self.fail_on: dict[str, Exception] = {}
        self.refuse_row = None
        self.calls: list[str] = []
        self.recreated_indexes: list[IndexDefinition] = []

    def _call(self, method: str) -> None:
        self.calls.append(method)
        if method in self.fail_on:
            raise self.fail_on[method]

    def add_table(self, name: str, columns: list[str], rows: list[dict] | None = None,
                  indexes: list[str] | None = None) -> None:
        self.tables[name] = {
            "columns": [ColumnInfo(name=c, data_type="text") for c in columns],
            "rows": list(rows or []),
            "indexes": [
                IndexDefinition(name=i, definition=f"CREATE INDEX {i} ON {name} (...)")
                for i in (indexes or [])
            ],
        }

    def rows(self, table: str) -> list[dict]:
        return self.tables[table]["rows"]

    def table_exists(self, name: str) -> bool:
        self._call("table_exists")
        return name in self.tables

    def drop_table_if_exists(self, name: str) -> None:
        self._call("drop_table_if_exists")
        self.tables.pop(name, None)

    def create_table_like(self, source: str, target: str) -> None:
        self._call("create_table_like")
        self.tables[target] = {
            "columns": list(self.tables[source]["columns"]),
            "rows": [],
            "indexes": [
                IndexDefinition(name=target + i.name[len(source):], definition=i.definition)
                for i in self.tables[source]["indexes"]
            ],
        }

    def describe_columns(self, table: str) -> list[ColumnInfo]:
        self._call("describe_columns")
        return list(self.tables[table]["columns"])

    def secondary_indexes(self, table: str) -> list[IndexDefinition]:
        self._call("secondary_indexes")
        return list(self.tables[table]["indexes"])

    def drop_indexes(self, indexes: list[IndexDefinition]) -> None:
        self._call("drop_indexes")
        names = {i.name for i in indexes}
        for table in self.tables.values():
            table["indexes"] = [i for i in table["indexes"] if i.name not in names]

    def create_indexes(self, indexes: list[IndexDefinition]) -> None:
        self._call("create_indexes")
        self.recreated_indexes = list(indexes)

    def bulk_load_file(self, table, path, mapping: BulkLoadMapping, load_time=None, timeout=None) -> int:
        self._call("bulk_load_file")
        loaded = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.rstrip("\r\n")
                if not line:
                    continue
                row = dict(zip(mapping.input_columns, line.split(mapping.delimiter)))
                if mapping.load_time_column:
                    row[mapping.load_time_column] = load_time
                row.update({column: None for column in mapping.null_columns})
                loaded.append(row)
        self.tables[table]["rows"].extend(loaded)
        return len(loaded)

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        self._call("insert_row")
        self.tables[table]["rows"].append(dict(row))

    def insert_rows(self, table: str, rows: Iterable[dict[str, Any]], atomic: bool = True) -> InsertOutcome:
        self._call("insert_rows")
        outcome = InsertOutcome()
        before = list(self.tables[table]["rows"])
        for position, row in enumerate(rows):
            if self.refuse_row is not None and self.refuse_row(row):
                outcome.failed += 1
                outcome.errors.append(f"row {position}: refused")
                continue
            self.tables[table]["rows"].append(dict(row))
            outcome.inserted += 1
        if atomic and outcome.failed:
            self.tables[table]["rows"] = before
            outcome.inserted = 0
            return outcome
        outcome.committed = True
        return outcome

    def rename_table(self, old_name: str, new_name: str) -> None:
        self._call("rename_table")
        self.tables[new_name] = self.tables.pop(old_name)

    def swap_tables(self, staging: str, live: str, retired: str) -> None:
        self._call("swap_tables")
        self.tables.pop(retired, None)
        promoted = self.tables.pop(staging)
        promoted["indexes"] = [
            IndexDefinition(name=live + i.name[len(staging):], definition=i.definition)
            if i.name.startswith(staging) else i
            for i in promoted["indexes"]
        ]
        self.tables[live] = promoted

    def count_rows(self, table: str) -> int:
        self._call("count_rows")
        return len(self.tables[table]["rows"])


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """In-memory storage with empty live places and feature code tables"""
    storage = InMemoryStorage()
    storage.add_table(
        "geonames",
        [*GEONAMES_INPUT_COLUMNS, "created_at", "updated_at"],
        indexes=["geonames_country_code_idx"],
    )
    storage.add_table(
        "geonames_feature_codes",
        ["feature_class", "feature_code", "name", "description", "language_code", "created_at", "updated_at"],
    )
    return storage


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with the live geonames tables created
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_geonames",
        password="test_password",
        dbname="test_geonames",
        driver=None,
    ) as postgres:
        _run_init_script(postgres)
        yield postgres


def _run_init_script(postgres: PostgresContainer) -> None:
    with open(INIT_SQL_PATH) as f:
        init_sql = f.read()
    with psycopg.connect(postgres.get_connection_url()) as conn:
        with conn.cursor() as cur:
            cur.execute(init_sql)
        conn.commit()


@pytest.fixture(scope="function")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open connection pool against the test container

    Yields:
        DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_geonames",
        user="test_geonames",
        password="test_password",
    )
    pool.open()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(postgres_container, db_pool) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Drop every geonames table and re-create the live tables before each test

    Yields:
        DatabaseConnectionPool on a fresh schema
    """
    with db_pool.get_connection() as conn:
        rows = conn.execute(
            "SELECT tablename FROM pg_tables WHERE schemaname = current_schema() AND tablename LIKE 'geonames%'"
        ).fetchall()
        for row in rows:
            conn.execute(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(
                sql.Identifier(row["tablename"])
            ))
    _run_init_script(postgres_container)
    yield db_pool


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="function")
def storage_dir(tmp_path) -> Path:
    """
    Provide an empty storage directory for extracted geonames files

    Returns:
        Path to the storage directory
    """
    directory = tmp_path / "geonames"
    directory.mkdir()
    return directory


@pytest.fixture
def partition_writer():
    """
    Write geonames partition files

    Returns:
        write_partition(directory, file_name, first_id, count, country_code="US")
    """
    return write_partition


@pytest.fixture
def make_geonames_line():
    return geonames_line
