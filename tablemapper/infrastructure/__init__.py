"""
Infrastructure package for tablemapper.

Database adapters and the factory that builds them from settings.
"""

from tablemapper.infrastructure.backend import FetchMode, SqlBackend
from tablemapper.infrastructure.db_factory import create_backend, pooled_backend
from tablemapper.infrastructure.postgres import PostgresBackend
from tablemapper.infrastructure.sqlite import SqliteBackend

__all__ = [
    "FetchMode",
    "SqlBackend",
    "PostgresBackend",
    "SqliteBackend",
    "create_backend",
    "pooled_backend",
]
