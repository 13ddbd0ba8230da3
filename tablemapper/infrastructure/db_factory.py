"""
Backend factory utilities for tablemapper.

Turns ``Settings`` into a ready ``SqlBackend``: a dedicated PostgreSQL
connection (with retry on transient failures), a pooled one scoped to a unit
of work, or an SQLite database. The PoolManager singleton owns the psycopg
pool and closes it on application exit.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tablemapper.config import Settings, get_settings
from tablemapper.errors import ConfigurationError
from tablemapper.infrastructure.backend import SqlBackend
from tablemapper.infrastructure.postgres import PostgresBackend
from tablemapper.infrastructure.sqlite import SqliteBackend
from tablemapper.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


class PoolManager:
    """
    Thread-safe singleton for the PostgreSQL connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._pool = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_pool(
        self,
        settings: Optional[Settings] = None,
        min_size: int = 1,
        max_size: int = 10,
    ) -> ConnectionPool:
        """
        Get or create the connection pool.

        Parameters
        ----------
        settings : Settings | None
            Connection settings; defaults to the cached application settings.
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.

        Returns
        -------
        ConnectionPool
            The managed pool; its connections are autocommit with dict rows.
        """
        with self._lock:
            if self._pool is None:
                self._pool = ConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=min_size,
                    max_size=max_size,
                    kwargs={"autocommit": True, "row_factory": dict_row},
                    open=True,
                )
            return self._pool

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._pool is not None:
                try:
                    self._pool.close()
                except psycopg.Error as exc:
                    log.warning("Pool close failed", extra={"error": str(exc)})
                finally:
                    self._pool = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def connect(dsn: str) -> Connection:
    """
    Open a dedicated autocommit connection with automatic retry.

    Retries with exponential backoff for transient connection errors;
    ``create_backend`` overrides the attempt count from settings.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn, autocommit=True, row_factory=dict_row)


def create_backend(
    settings: Optional[Settings] = None,
    profiling: Optional[bool] = None,
) -> SqlBackend:
    """
    Build the backend selected by ``settings.db_driver``.

    Parameters
    ----------
    settings : Settings | None
        Defaults to the cached application settings.
    profiling : bool | None
        Overrides ``settings.db_profiling`` when given.
    """
    settings = settings or get_settings()
    profiling = settings.db_profiling if profiling is None else profiling

    if settings.db_driver == "sqlite":
        return SqliteBackend(settings.sqlite_path, profiling=profiling)
    if settings.db_driver == "postgres":
        connector = connect.retry_with(
            stop=stop_after_attempt(max(1, settings.db_connect_retries))
        )
        log.info(
            "Connecting to PostgreSQL",
            extra={"host": settings.db_host, "db": settings.db_name},
        )
        return PostgresBackend(connector(build_dsn(settings)), profiling=profiling)
    raise ConfigurationError(f"Unknown DB_DRIVER '{settings.db_driver}'")


@contextmanager
def pooled_backend(
    settings: Optional[Settings] = None,
    profiling: bool = False,
) -> Generator[PostgresBackend, None, None]:
    """
    Check a connection out of the pool for one unit of work.

    Example
    -------
        with pooled_backend() as backend:
            catalog = Catalog(backend)
            catalog.get("users").fetch_all()
    """
    pool = PoolManager().get_pool(settings)
    with pool.connection() as conn:
        yield PostgresBackend(conn, profiling=profiling, owns_connection=False)


__all__ = [
    "PoolManager",
    "build_dsn",
    "connect",
    "create_backend",
    "pooled_backend",
]
