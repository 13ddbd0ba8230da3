"""
Database-execution interface for tablemapper.

``SqlBackend`` is the contract every adapter implements and the only place
where SQL text meets a driver. It owns:

- assembling SELECT statements from the parts a ``Select`` accumulates,
- translating named ``:param`` binds into the driver's placeholder style
  (quoted literals are never touched),
- quoting literals for the single-value ``where(cond, value)`` convenience path,
- DDL for tables, indexes and sequences,
- wrapping driver failures into ``QueryFailedError``,
- per-statement profiling.

Concrete adapters live in ``postgres.py`` and ``sqlite.py``.
"""

from __future__ import annotations

import abc
import re
from contextlib import AbstractContextManager
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from tablemapper.errors import ConfigurationError, QueryFailedError
from tablemapper.utils.logging import get_logger
from tablemapper.utils.profiler import ProfileStats, profile_block

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.sql.columns import ColumnSpec, IndexSpec

log = get_logger(__name__)

# A quoted literal (skipped) or a named bind that is not part of a `::` cast.
_BIND_RE = re.compile(r"'(?:[^']|'')*'|(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")

WhereSpec = Union[None, str, Mapping[Any, Any], Iterable[str]]


class FetchMode(str, Enum):
    """Shape of the value a SELECT returns."""

    ALL = "all"
    ROW = "row"
    ONE = "one"
    RESULT = "result"
    ASSOC = "assoc"


def empty_parts() -> Dict[str, Any]:
    """The component parts of a select statement, all cleared."""
    return {
        "distinct": False,
        "cols": [],
        "from": [],
        "join": [],
        "where": [],
        "group": [],
        "having": [],
        "order": [],
        "limit": {"count": 0, "offset": 0},
    }


class SqlBackend(abc.ABC):
    """
    Base class for database adapters.

    Attributes
    ----------
    profiling : bool
        When True every statement's ProfileStats is retained (see get_profile()).
    """

    #: Native column type per declared column type; formatted with size/scope.
    type_map: ClassVar[Dict[str, str]] = {}

    #: Driver exceptions that become QueryFailedError.
    native_errors: ClassVar[Tuple[type, ...]] = ()

    def __init__(self, profiling: bool = False) -> None:
        self.profiling = profiling
        self._profile: List[ProfileStats] = []

    # -----------------------------------------------------------------
    # Driver hooks
    # -----------------------------------------------------------------

    @abc.abstractmethod
    def _execute(self, sql: str, params: Dict[str, Any]) -> Any:
        """Run one statement and return a cursor yielding dict rows."""

    @abc.abstractmethod
    def _placeholder(self, name: str) -> str:
        """The driver's placeholder for the named parameter."""

    @abc.abstractmethod
    def list_tables(self) -> List[str]:
        """Names of the tables that exist in the current schema."""

    @abc.abstractmethod
    def next_sequence(self, name: str) -> int:
        """Next value of the named sequence, creating it on first use."""

    @abc.abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Context manager that commits on success and rolls back on error."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""

    # -----------------------------------------------------------------
    # Statement execution
    # -----------------------------------------------------------------

    def _prepare(self, sql: str, bind: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Translate `:name` binds into driver placeholders."""
        params: Dict[str, Any] = {}

        def replace(match: re.Match) -> str:
            name = match.group(1)
            if name is None or name not in bind:
                return match.group(0)
            params[name] = bind[name]
            return self._placeholder(name)

        return _BIND_RE.sub(replace, sql), params

    def query(self, sql: str, bind: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Execute a statement with named binds.

        Parameters
        ----------
        sql : str
            Statement text; `:name` tokens are replaced by bound values.
        bind : Mapping[str, Any] | None
            Values for the named parameters.

        Returns
        -------
        Any
            A driver cursor yielding dict rows.

        Raises
        ------
        QueryFailedError
            If the driver rejects the statement.
        """
        statement, params = self._prepare(sql, bind or {})
        with profile_block(statement, params=params) as stats:
            if self.profiling:
                self._profile.append(stats)
            try:
                cursor = self._execute(statement, params)
            except self.native_errors as exc:
                log.debug(
                    "Statement failed",
                    extra={"sql": statement, "error": str(exc)},
                )
                raise QueryFailedError(str(exc).strip(), sql=statement) from exc
        log.debug(
            "Statement executed",
            extra={"sql": statement, "duration_ms": stats.duration_ms},
        )
        return cursor

    def select(
        self,
        mode: Union[str, FetchMode],
        parts: Mapping[str, Any],
        bind: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Build a SELECT from its parts, run it, and shape the result.

        Parameters
        ----------
        mode : str | FetchMode
            ``all`` (list of rows), ``row`` (first row or None), ``one`` (first
            column of the first row or None), ``result`` (the cursor) or
            ``assoc`` (first column value mapped to its row).
        parts : Mapping[str, Any]
            Select parts as produced by ``Select``.
        bind : Mapping[str, Any] | None
            Named parameter values.
        """
        mode = FetchMode(mode)
        cursor = self.query(self.build_select(parts), bind)

        if mode is FetchMode.RESULT:
            return cursor
        if mode is FetchMode.ALL:
            return list(cursor.fetchall())
        if mode is FetchMode.ROW:
            return cursor.fetchone()
        if mode is FetchMode.ONE:
            row = cursor.fetchone()
            if not row:
                return None
            return next(iter(row.values()))
        # FetchMode.ASSOC
        return {next(iter(row.values())): row for row in cursor.fetchall()}

    def build_select(self, parts: Mapping[str, Any]) -> str:
        """Assemble SELECT text from its parts."""
        sql = ["SELECT"]
        if parts.get("distinct"):
            sql.append("DISTINCT")
        sql.append(", ".join(parts.get("cols") or ["*"]))

        if parts.get("from"):
            sql.append("FROM " + ", ".join(parts["from"]))

        for join in parts.get("join") or []:
            kind = f"{join['type'].upper()} " if join.get("type") else ""
            sql.append(f"{kind}JOIN {join['name']} ON {join['cond']}")

        if parts.get("where"):
            sql.append("WHERE " + " ".join(parts["where"]))

        if parts.get("group"):
            sql.append("GROUP BY " + ", ".join(parts["group"]))

        if parts.get("having"):
            sql.append("HAVING " + " ".join(parts["having"]))

        if parts.get("order"):
            sql.append("ORDER BY " + ", ".join(parts["order"]))

        limit = parts.get("limit") or {}
        count = int(limit.get("count") or 0)
        offset = int(limit.get("offset") or 0)
        if count > 0:
            sql.append(f"LIMIT {count}")
            if offset > 0:
                sql.append(f"OFFSET {offset}")

        return " ".join(sql)

    # -----------------------------------------------------------------
    # Quoting
    # -----------------------------------------------------------------

    def quote(self, value: Any) -> str:
        """
        Quote a value into a SQL literal.

        Sequences become comma-separated lists of quoted values, None becomes
        NULL, booleans become '1'/'0'; everything else is quoted as a string
        and left to the database to coerce.
        """
        if isinstance(value, (list, tuple, set, frozenset)):
            return ", ".join(self.quote(item) for item in value)
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            value = 1 if value else 0
        return "'" + str(value).replace("'", "''") + "'"

    def quote_into(self, text: str, value: Any) -> str:
        """Quote a value and substitute it for the first `?` in the text."""
        return text.replace("?", self.quote(value), 1)

    def conditions(self, where: WhereSpec) -> List[str]:
        """
        Normalize a where-spec into a list of literal conditions.

        A string is one condition. In a mapping, an integer key means the
        value is a literal condition; a string key is a condition the value
        gets quoted into. Any other iterable is a list of literal conditions.
        """
        if not where:
            return []
        if isinstance(where, str):
            return [where]
        if isinstance(where, Mapping):
            conds = []
            for key, val in where.items():
                if isinstance(key, int):
                    conds.append(str(val))
                else:
                    conds.append(self.quote_into(key, val))
            return conds
        return [str(cond) for cond in where]

    def _where_sql(self, where: WhereSpec) -> str:
        conds = self.conditions(where)
        if not conds:
            return ""
        if len(conds) == 1:
            return f" WHERE {conds[0]}"
        return " WHERE " + " AND ".join(f"({cond})" for cond in conds)

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def insert(self, table: str, data: Mapping[str, Any]) -> int:
        """Insert one row; returns the affected row count."""
        cols = list(data)
        sql = (
            f"INSERT INTO {table} ({', '.join(cols)}) "
            f"VALUES ({', '.join(':' + col for col in cols)})"
        )
        return self.query(sql, data).rowcount

    def update(self, table: str, data: Mapping[str, Any], where: WhereSpec) -> int:
        """Update matching rows; returns the affected row count."""
        if not data:
            return 0
        sets = ", ".join(f"{col} = :{col}" for col in data)
        sql = f"UPDATE {table} SET {sets}{self._where_sql(where)}"
        return self.query(sql, data).rowcount

    def delete(self, table: str, where: WhereSpec) -> int:
        """Delete matching rows; returns the affected row count."""
        return self.query(f"DELETE FROM {table}{self._where_sql(where)}").rowcount

    # -----------------------------------------------------------------
    # Schema
    # -----------------------------------------------------------------

    def native_type(self, col: "ColumnSpec") -> str:
        """The native column type for a column spec."""
        try:
            template = self.type_map[col.type]
        except KeyError:
            raise ConfigurationError(
                f"Column '{col.name}' has unsupported type '{col.type}'"
            ) from None
        needs_size = "{size}" in template
        if needs_size and not col.size:
            raise ConfigurationError(f"Column '{col.name}' ({col.type}) needs a size")
        if "{scope}" in template and col.scope is None:
            raise ConfigurationError(f"Column '{col.name}' ({col.type}) needs a scope")
        return template.format(size=col.size, scope=col.scope)

    def column_definition(self, col: "ColumnSpec") -> str:
        sql = f"{col.name} {self.native_type(col)}"
        if col.required or col.primary:
            sql += " NOT NULL"
        return sql

    def create_table(self, name: str, cols: Mapping[str, "ColumnSpec"]) -> None:
        """Create a table from its column specs."""
        defs = [self.column_definition(col) for col in cols.values()]
        primary = [col.name for col in cols.values() if col.primary]
        if primary:
            defs.append(f"PRIMARY KEY ({', '.join(primary)})")
        self.query(f"CREATE TABLE {name} ({', '.join(defs)})")

    def create_index(self, table: str, name: str, index: "IndexSpec") -> None:
        """Create one index, named `<table>__<name>__idx`."""
        unique = "UNIQUE " if index.type == "unique" else ""
        cols = ", ".join(index.cols or [name])
        self.query(f"CREATE {unique}INDEX {table}__{name}__idx ON {table} ({cols})")

    def drop_table(self, name: str) -> None:
        self.query(f"DROP TABLE {name}")

    # -----------------------------------------------------------------
    # Profiling
    # -----------------------------------------------------------------

    def get_profile(self) -> List[ProfileStats]:
        """Statements run since profiling started (oldest first)."""
        return list(self._profile)

    def clear_profile(self) -> None:
        self._profile.clear()


__all__ = ["FetchMode", "SqlBackend", "WhereSpec", "empty_parts"]
