"""
SQLite adapter.

Used for local development and the unit test-suite (an in-memory database
per backend). Sequences are emulated with one-column AUTOINCREMENT tables
named after the sequence.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List

from tablemapper.errors import QueryFailedError
from tablemapper.infrastructure.backend import SqlBackend
from tablemapper.utils.logging import get_logger

log = get_logger(__name__)


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> Dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


class SqliteBackend(SqlBackend):
    """Backend over a single ``sqlite3`` connection in autocommit mode."""

    type_map = {
        "bool": "INTEGER",
        "char": "CHAR({size})",
        "varchar": "VARCHAR({size})",
        "smallint": "SMALLINT",
        "int": "INTEGER",
        "bigint": "BIGINT",
        "float": "REAL",
        "numeric": "NUMERIC({size},{scope})",
        "date": "CHAR(10)",
        "time": "CHAR(8)",
        "timestamp": "CHAR(19)",
        "clob": "TEXT",
    }

    native_errors = (sqlite3.Error,)

    def __init__(self, path: str = ":memory:", profiling: bool = False) -> None:
        super().__init__(profiling=profiling)
        self.path = path
        self._conn = sqlite3.connect(path, isolation_level=None)
        self._conn.row_factory = _dict_factory
        log.debug("SQLite connection opened", extra={"path": path})

    def _execute(self, sql: str, params: Dict[str, Any]) -> sqlite3.Cursor:
        cursor = self._conn.cursor()
        cursor.execute(sql, params)
        return cursor

    def _placeholder(self, name: str) -> str:
        return f":{name}"

    def list_tables(self) -> List[str]:
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        return [row["name"] for row in rows]

    def next_sequence(self, name: str) -> int:
        try:
            cursor = self.query(f"INSERT INTO {name} (id) VALUES (NULL)")
        except QueryFailedError:
            self.query(f"CREATE TABLE {name} (id INTEGER PRIMARY KEY AUTOINCREMENT)")
            cursor = self.query(f"INSERT INTO {name} (id) VALUES (NULL)")
        return int(cursor.lastrowid)

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        # Nested blocks join the outer transaction.
        if self._conn.in_transaction:
            yield
            return
        self._conn.execute("BEGIN")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    def close(self) -> None:
        self._conn.close()


__all__ = ["SqliteBackend"]
