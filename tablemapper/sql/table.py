"""
Table schema and write-path validation.

A ``Table`` owns the normalized column and index specs for one database table,
creates the table (and its indexes) when it is missing, and validates/recasts
every row before INSERT or UPDATE so that invalid data never reaches the
database.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from tablemapper.errors import ConfigurationError, QueryFailedError, ValidationError
from tablemapper.infrastructure.backend import FetchMode, SqlBackend, WhereSpec
from tablemapper.sql import validators
from tablemapper.sql.columns import (
    AUTO_INDEXES,
    ColumnSpec,
    IndexSpec,
    auto_columns,
    build_column,
    build_index,
    now_iso,
)
from tablemapper.sql.select import ColsSpec, Select
from tablemapper.utils.logging import get_logger

log = get_logger(__name__)

_NUMBER_ERRORS = (TypeError, ValueError, ArithmeticError)


def _to_int(value: Any) -> int:
    if isinstance(value, (int, float, Decimal)):
        return int(value)
    return int(Decimal(str(value).strip()))


def is_empty(value: Any) -> bool:
    """None, the empty string and zero count as empty keys and stamps."""
    return value is None or value == "" or value == 0


class Table:
    """
    Schema, DDL and validated writes for one table.

    Parameters
    ----------
    backend : SqlBackend
        Database adapter used for reads, writes and DDL.
    name : str
        Table name; stored lower-cased.
    cols : Mapping[str, ColumnSpec | dict]
        Declared columns. ``id``, ``created`` and ``updated`` are added unless
        declared here.
    idx : Mapping[str, str | dict] | None
        Declared indexes, ``"unique"``/``"normal"`` or ``{"type", "cols"}``.
    paging : int
        Rows per page for paged selects.
    auto_create : bool
        Create the table and its indexes when missing.
    """

    def __init__(
        self,
        backend: SqlBackend,
        name: str,
        cols: Mapping[str, Union[ColumnSpec, Mapping[str, Any]]],
        idx: Optional[Mapping[str, Any]] = None,
        paging: int = 10,
        auto_create: bool = True,
    ) -> None:
        if not name:
            raise ConfigurationError("A table needs a name")
        self.backend = backend
        self.name = name.lower()
        self.paging = max(1, int(paging))
        self.cols: Dict[str, ColumnSpec] = {}
        self.idx: Dict[str, IndexSpec] = {}
        self._auto_setup(cols, idx or {})
        if auto_create:
            self._auto_create()

    # -----------------------------------------------------------------
    # Schema
    # -----------------------------------------------------------------

    def _auto_setup(self, cols: Mapping[str, Any], idx: Mapping[str, Any]) -> None:
        """Normalize column/index declarations and add the automatic ones."""
        declared_cols: Dict[str, Any] = {}
        declared_idx: Dict[str, Any] = {}
        for name, info in auto_columns().items():
            if name not in cols:
                declared_cols[name] = info
                declared_idx[name] = AUTO_INDEXES[name]
        declared_cols.update(cols)
        declared_idx.update(idx)

        self.cols = {name: build_column(name, info) for name, info in declared_cols.items()}
        self.idx = {name: build_index(name, info) for name, info in declared_idx.items()}

        for name, index in self.idx.items():
            unknown = [col for col in index.cols if col not in self.cols]
            if unknown:
                raise ConfigurationError(
                    f"Index '{name}' on '{self.name}' names unknown columns {unknown}"
                )

    def _auto_create(self) -> bool:
        """
        Create the table and its indexes if the table does not exist.

        Returns
        -------
        bool
            True when the table was created, False when it already existed.

        Raises
        ------
        QueryFailedError
            If any statement fails; a table whose indexes could not be created
            is dropped again first.
        """
        existing = {table.lower() for table in self.backend.list_tables()}
        if self.name in existing:
            return False

        self.backend.create_table(self.name, self.cols)
        for name, index in self.idx.items():
            try:
                self.backend.create_index(self.name, name, index)
            except QueryFailedError:
                log.warning(
                    "Index creation failed; dropping table",
                    extra={"table": self.name, "index": name},
                )
                self.backend.drop_table(self.name)
                raise

        log.info("Table created", extra={"table": self.name, "indexes": list(self.idx)})
        return True

    @property
    def primary_cols(self) -> List[str]:
        return [name for name, col in self.cols.items() if col.primary]

    @property
    def primary_col(self) -> str:
        primary = self.primary_cols
        if not primary:
            raise ConfigurationError(f"Table '{self.name}' has no primary key column")
        return primary[0]

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def new_select(self) -> Select:
        return Select(self.backend, paging=self.paging)

    def select(
        self,
        mode: Union[str, FetchMode] = FetchMode.RESULT,
        where: WhereSpec = None,
        order: ColsSpec = None,
        page: Optional[int] = None,
    ) -> Any:
        """Select all table columns with optional filters, order and page."""
        return (
            self.new_select()
            .from_(self.name, list(self.cols))
            .multi_where(where)
            .order(order)
            .limit_page(page)
            .fetch(mode)
        )

    def fetch(self, id: Any) -> Optional[Dict[str, Any]]:
        """One row by primary key, or None."""
        return self.select(FetchMode.ROW, {f"{self.primary_col} = ?": id})

    def fetch_all(
        self,
        where: WhereSpec = None,
        order: ColsSpec = None,
        page: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self.select(FetchMode.ALL, where, order, page)

    def count_pages(self, where: WhereSpec = None) -> Dict[str, int]:
        return (
            self.new_select()
            .from_(self.name)
            .multi_where(where)
            .count_pages(self.primary_col)
        )

    def fetch_default(self) -> Dict[str, Any]:
        """A row of column defaults (callbacks are invoked now)."""
        return {name: col.default.resolve() for name, col in self.cols.items()}

    def increment(self, col: str) -> Optional[int]:
        """Next value for an autoincrement column (sequence `<table>__<col>`)."""
        spec = self.cols.get(col)
        if spec is None or not spec.autoincrement:
            return None
        return self.backend.next_sequence(f"{self.name}__{col}")

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def insert(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Insert one row.

        Defaults are merged under ``data``, autoincrement columns get their
        next sequence value and ``created``/``updated`` are stamped when empty.

        Returns
        -------
        dict
            The row as written (recast).

        Raises
        ------
        ValidationError
            When any field fails validation; nothing is written.
        """
        row = {**self.fetch_default(), **dict(data)}

        for name, col in self.cols.items():
            if col.autoincrement and is_empty(row.get(name)):
                row[name] = self.increment(name)

        now = now_iso()
        for stamp in ("created", "updated"):
            if stamp in self.cols and not row.get(stamp):
                row[stamp] = now

        row = self._auto_valid(row)
        self.backend.insert(self.name, row)
        return row

    def update(self, data: Mapping[str, Any], where: WhereSpec) -> Dict[str, Any]:
        """
        Update matching rows.

        Primary-key columns are never written; they are returned unchanged.
        """
        row = dict(data)
        retain = {}
        for name in list(row):
            col = self.cols.get(name)
            if col is not None and col.primary:
                retain[name] = row.pop(name)

        if "updated" in self.cols and not row.get("updated"):
            row["updated"] = now_iso()

        row = self._auto_valid(row)
        self.backend.update(self.name, row, where)
        row.update(retain)
        return row

    def delete(self, where: WhereSpec) -> int:
        return self.backend.delete(self.name, where)

    def save(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert when the primary key is empty, else update by primary key."""
        pk = self.primary_col
        if is_empty(data.get(pk)):
            return self.insert(data)
        return self.update(data, {f"{pk} = ?": data[pk]})

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def _auto_valid(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Recast and validate a row.

        Unknown fields are dropped. Each known field is checked for blankness,
        recast to its column type with the type's range or format check, then
        run through the column's content rules.

        Raises
        ------
        ValidationError
            Carrying every failure for every field.
        """
        errors: Dict[str, List[str]] = {}
        clean: Dict[str, Any] = {}

        for field, value in data.items():
            col = self.cols.get(field)
            if col is None:
                continue

            if value is None:
                if col.required:
                    errors.setdefault(field, []).append(validators.MESSAGES["not_blank"])
                else:
                    clean[field] = None
                continue

            value, failure = self._recast(col, value)
            if failure:
                errors.setdefault(field, []).append(failure)

            for rule in col.valid:
                if not validators.check(rule.name, value, *rule.args):
                    errors.setdefault(field, []).append(
                        rule.message or validators.message_for(rule.name, rule.args)
                    )

            clean[field] = value

        if errors:
            raise ValidationError(errors, message=f"Invalid data for '{self.name}'")
        return clean

    def _recast(self, col: ColumnSpec, value: Any) -> tuple:
        """Recast one value to its column type; returns (value, failure or None)."""
        kind = col.type

        if kind == "bool":
            if isinstance(value, str):
                return (0 if value.strip() in ("", "0") else 1), None
            return (1 if value else 0), None

        if kind in ("char", "varchar"):
            value = str(value)
            if col.size is not None and len(value) > col.size:
                return value, validators.message_for("max_length", [col.size])
            return value, None

        if kind in validators.INT_RANGES:
            try:
                value = _to_int(value)
            except _NUMBER_ERRORS:
                return value, validators.NOT_A_NUMBER
            low, high = validators.INT_RANGES[kind]
            if not low <= value <= high:
                return value, validators.message_for("in_range", [low, high])
            return value, None

        if kind in ("float", "numeric"):
            try:
                value = float(value)
            except _NUMBER_ERRORS:
                return value, validators.NOT_A_NUMBER
            if kind == "numeric" and not validators.in_scope(value, col.size or 0, col.scope or 0):
                return value, validators.message_for("in_scope", [col.size, col.scope])
            return value, None

        if kind == "date":
            value = str(value)
            if not validators.iso_date(value):
                return value, validators.message_for("iso_date")
            return value, None

        if kind == "time":
            value = str(value)
            if len(value) == 5:
                value += ":00"
            if not validators.iso_time(value):
                return value, validators.message_for("iso_time")
            return value, None

        if kind == "timestamp":
            value = str(value)
            value = value[:10] + "T" + value[11:19]
            if not validators.iso_timestamp(value):
                return value, validators.message_for("iso_timestamp")
            return value, None

        # clob
        return str(value), None


__all__ = ["Table", "is_empty"]
