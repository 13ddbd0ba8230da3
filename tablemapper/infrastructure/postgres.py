"""
PostgreSQL adapter built on psycopg 3.

The backend wraps one autocommit connection (either dedicated or checked out
of a pool by ``db_factory.pooled_backend``). Rows come back as dicts via
``psycopg.rows.dict_row``; named binds become ``%(name)s`` placeholders.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Mapping, Set, Tuple

import psycopg
from psycopg import Connection

from tablemapper.infrastructure.backend import SqlBackend


class PostgresBackend(SqlBackend):
    """
    Backend over a psycopg connection.

    Parameters
    ----------
    connection : psycopg.Connection
        An open connection with ``autocommit=True`` and ``row_factory=dict_row``.
    profiling : bool
        Retain per-statement ProfileStats.
    owns_connection : bool
        Whether close() should close the connection (False for pooled ones).
    """

    type_map = {
        "bool": "SMALLINT",
        "char": "CHAR({size})",
        "varchar": "VARCHAR({size})",
        "smallint": "SMALLINT",
        "int": "INTEGER",
        "bigint": "BIGINT",
        "float": "DOUBLE PRECISION",
        "numeric": "NUMERIC({size},{scope})",
        "date": "CHAR(10)",
        "time": "CHAR(8)",
        "timestamp": "CHAR(19)",
        "clob": "TEXT",
    }

    native_errors = (psycopg.Error,)

    def __init__(
        self,
        connection: Connection,
        profiling: bool = False,
        owns_connection: bool = True,
    ) -> None:
        super().__init__(profiling=profiling)
        self._conn = connection
        self._owns_connection = owns_connection
        self._sequences: Set[str] = set()

    def _prepare(self, sql: str, bind: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
        # psycopg reads every '%' in the query text as a placeholder marker.
        return super()._prepare(sql.replace("%", "%%"), bind)

    def _execute(self, sql: str, params: Dict[str, Any]) -> psycopg.Cursor:
        cursor = self._conn.cursor()
        cursor.execute(sql, params)
        return cursor

    def _placeholder(self, name: str) -> str:
        return f"%({name})s"

    def list_tables(self) -> List[str]:
        rows = self.query(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema()"
        ).fetchall()
        return [row["table_name"] for row in rows]

    def next_sequence(self, name: str) -> int:
        if name not in self._sequences:
            self.query(f"CREATE SEQUENCE IF NOT EXISTS {name}")
            self._sequences.add(name)
        return int(self.query(f"SELECT nextval('{name}') AS id").fetchone()["id"])

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        with self._conn.transaction():
            yield

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()


__all__ = ["PostgresBackend"]
