"""
Pytest configuration for tablemapper.

Provides fixtures for:
- An in-memory SQLite backend with statement profiling (unit tests)
- The example catalog, empty or seeded
- Settings and connection management for PostgreSQL integration tests
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest
from psycopg.rows import dict_row

from tablemapper.config import Settings, get_settings
from tablemapper.example import build_catalog, seed
from tablemapper.infrastructure import PostgresBackend, SqliteBackend
from tablemapper.infrastructure.db_factory import build_dsn
from tablemapper.model import Catalog


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Settings are cached per process; drop the cache around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def backend() -> Generator[SqliteBackend, None, None]:
    """
    In-memory SQLite backend with profiling on.

    ``backend.get_profile()`` lists every statement the test issued.
    """
    sqlite = SqliteBackend(":memory:", profiling=True)
    try:
        yield sqlite
    finally:
        sqlite.close()


@pytest.fixture
def catalog(backend: SqliteBackend) -> Catalog:
    """The example models, tables not yet created."""
    return build_catalog(backend)


@pytest.fixture
def seeded(catalog: Catalog, backend: SqliteBackend) -> Catalog:
    """
    The example catalog with the example data set inserted.

    The profile is cleared afterwards so tests count only their own statements.
    """
    seed(catalog)
    backend.clear_profile()
    return catalog


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_driver="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "tablemapper"),
        db_connect_retries=1,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def pg_backend(
    test_dsn: str, db_connection_available: bool
) -> Generator[PostgresBackend, None, None]:
    """
    PostgreSQL backend over a fresh schema-less connection.

    Skips tests if database is not available. Example tables are dropped
    before and after each test.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True, row_factory=dict_row)
    pg = PostgresBackend(conn, profiling=True)
    _drop_example_tables(pg)
    try:
        yield pg
    finally:
        _drop_example_tables(pg)
        pg.close()


def _drop_example_tables(pg: PostgresBackend) -> None:
    names = ("users", "areas", "nodes", "metas", "tags", "taggings")
    for name in names:
        pg.query(f"DROP TABLE IF EXISTS {name}")
        pg.query(f"DROP SEQUENCE IF EXISTS {name}__id")
