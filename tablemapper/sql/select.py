"""
SELECT query builder.

A ``Select`` accumulates the parts of one statement (sources and their
columns, joins, WHERE/HAVING chains, grouping, ordering, limits and named
binds) and hands them to its backend for execution. Column lists are kept per
source so that ``fetch`` can deconflict names across joined tables.

Usage:
    select = Select(backend, paging=10)
    rows = (
        select.from_("nodes", ["id", "subj"])
        .join("areas AS a", "nodes.area_id = a.id", ["name"])
        .where("a.name = ?", "Lorem")
        .order("subj")
        .limit_page(2)
        .fetch("all")
    )
"""

from __future__ import annotations

import copy
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from tablemapper.infrastructure.backend import FetchMode, SqlBackend, empty_parts

_NO_VALUE = object()

ColsSpec = Union[None, str, Iterable[str]]


def _split(spec: ColsSpec) -> List[str]:
    """A comma-separated string or a sequence, trimmed, blanks dropped."""
    if not spec:
        return []
    if isinstance(spec, str):
        spec = spec.split(",")
    return [str(item).strip() for item in spec if str(item).strip()]


def _alias_pos(text: str) -> int:
    return text.upper().find(" AS ")


class Select:
    """
    Builder for one SELECT statement.

    Parameters
    ----------
    backend : SqlBackend
        Executes the statement; clones share it.
    paging : int
        Rows per page for ``limit_page`` and ``count_pages``.
    """

    def __init__(self, backend: SqlBackend, paging: int = 10) -> None:
        self.backend = backend
        self.parts: Dict[str, Any] = empty_parts()
        self.bound: Dict[str, Any] = {}
        self.source_cols: Dict[str, List[str]] = {}
        self._paging = 10
        self.paging(paging)

    # -----------------------------------------------------------------
    # Sources and columns
    # -----------------------------------------------------------------

    def paging(self, rows: int) -> "Select":
        """Set rows per page (at least 1)."""
        self._paging = max(1, int(rows or 1))
        return self

    def get_paging(self) -> int:
        return self._paging

    def distinct(self, flag: bool = True) -> "Select":
        self.parts["distinct"] = bool(flag)
        return self

    def cols(self, spec: ColsSpec) -> "Select":
        """Add columns attached to no source; they are emitted verbatim."""
        self._source_cols("", spec)
        return self

    def from_(self, spec: Any, cols: ColsSpec = None) -> "Select":
        """
        Add a FROM source and the columns it contributes.

        Parameters
        ----------
        spec : str | Table
            Table name (optionally ``name AS alias``) or a Table object.
        cols : str | Sequence[str] | None
            Columns from this source; ``"*"`` with a Table means all its columns.
        """
        name, cols = self._resolve_source(spec, cols)
        self.parts["from"].append(name)
        self._source_cols(name, cols)
        return self

    def join(
        self,
        spec: Any,
        cond: str,
        cols: ColsSpec = None,
        type: Optional[str] = None,
    ) -> "Select":
        """Add a JOIN source (``type`` is e.g. ``"left"``) and its columns."""
        name, cols = self._resolve_source(spec, cols)
        self.parts["join"].append({"type": type, "name": name, "cond": cond})
        self._source_cols(name, cols)
        return self

    def _resolve_source(self, spec: Any, cols: ColsSpec) -> tuple:
        if isinstance(spec, str):
            return spec.strip(), cols
        # a Table: expand "*" to its declared columns
        if cols == "*":
            cols = list(spec.cols)
        return spec.name, cols

    def _source_cols(self, source: str, spec: ColsSpec) -> None:
        cols = _split(spec)
        if cols:
            self.source_cols.setdefault(source, []).extend(cols)

    # -----------------------------------------------------------------
    # WHERE / HAVING
    # -----------------------------------------------------------------

    def _chain(self, part: str, op: str, cond: str, value: Any) -> "Select":
        if not cond:
            return self
        if value is not _NO_VALUE:
            cond = self.backend.quote_into(cond, value)
        if self.parts[part]:
            cond = f"{op} {cond}"
        self.parts[part].append(cond)
        return self

    def _multi(self, part: str, spec: Union[Mapping[Any, Any], Sequence[str], None], op: str) -> "Select":
        op = "OR" if str(op).upper() == "OR" else "AND"
        if not spec:
            return self
        if isinstance(spec, str):
            spec = [spec]
        if isinstance(spec, Mapping):
            for key, val in spec.items():
                if isinstance(key, int):
                    # literal condition, nothing to quote
                    self._chain(part, op, val, _NO_VALUE)
                else:
                    self._chain(part, op, key, val)
        else:
            for cond in spec:
                self._chain(part, op, cond, _NO_VALUE)
        return self

    def where(self, cond: str, value: Any = _NO_VALUE) -> "Select":
        """
        Add a WHERE condition joined by AND.

        When ``value`` is given it is quoted and replaces the first ``?`` in
        ``cond``; for named binds use ``:name`` with ``bind()``.
        """
        return self._chain("where", "AND", cond, value)

    def or_where(self, cond: str, value: Any = _NO_VALUE) -> "Select":
        return self._chain("where", "OR", cond, value)

    def multi_where(self, spec: Union[Mapping[Any, Any], Sequence[str], None], op: str = "AND") -> "Select":
        """
        Add several WHERE conditions.

        In a mapping an int key marks a literal condition and a str key is a
        condition the value is quoted into, e.g.
        ``{0: "id > 5", "name = ?": "x"}``.
        """
        return self._multi("where", spec, op)

    def having(self, cond: str, value: Any = _NO_VALUE) -> "Select":
        return self._chain("having", "AND", cond, value)

    def or_having(self, cond: str, value: Any = _NO_VALUE) -> "Select":
        return self._chain("having", "OR", cond, value)

    def multi_having(self, spec: Union[Mapping[Any, Any], Sequence[str], None], op: str = "AND") -> "Select":
        return self._multi("having", spec, op)

    # -----------------------------------------------------------------
    # GROUP / ORDER / LIMIT
    # -----------------------------------------------------------------

    def group(self, spec: ColsSpec) -> "Select":
        self.parts["group"].extend(_split(spec))
        return self

    def order(self, spec: ColsSpec) -> "Select":
        """Add sort columns; each gets ``ASC`` unless it already ends in ASC/DESC."""
        for item in _split(spec):
            upper = item.upper()
            if not (upper.endswith(" ASC") or upper.endswith(" DESC")):
                item = f"{item} ASC"
            self.parts["order"].append(item)
        return self

    def limit(self, count: Optional[int] = 0, offset: Optional[int] = 0) -> "Select":
        self.parts["limit"] = {
            "count": max(0, int(count or 0)),
            "offset": max(0, int(offset or 0)),
        }
        return self

    def limit_page(self, page: Optional[int] = None) -> "Select":
        """Limit to a 1-indexed page; ``page <= 0`` (or None) clears the limit."""
        page = int(page or 0)
        if page > 0:
            return self.limit(self._paging, self._paging * (page - 1))
        return self.limit(0, 0)

    # -----------------------------------------------------------------
    # Binds and state
    # -----------------------------------------------------------------

    def bind(self, key: Any, value: Any = None) -> "Select":
        """Bind one named value, or merge a mapping (or an object's attributes)."""
        if isinstance(key, Mapping):
            self.bound.update(key)
        elif isinstance(key, str):
            self.bound[key] = value
        else:
            self.bound.update(vars(key))
        return self

    def unbind(self, keys: Union[None, str, Iterable[str]] = None) -> "Select":
        if not keys:
            self.bound = {}
            return self
        if isinstance(keys, str):
            keys = [keys]
        for key in keys:
            self.bound.pop(key, None)
        return self

    def clear(self, part: Optional[str] = None) -> "Select":
        """Reset one part (``"cols"`` clears every source's columns) or all of them."""
        fresh = empty_parts()
        if not part:
            self.parts = fresh
            self.source_cols = {}
        elif part == "cols":
            self.source_cols = {}
        elif part in fresh:
            self.parts[part] = fresh[part]
        return self

    def clone(self) -> "Select":
        """A deep copy of the query state that shares the same backend."""
        other = copy.copy(self)
        other.parts = copy.deepcopy(self.parts)
        other.bound = dict(self.bound)
        other.source_cols = {key: list(cols) for key, cols in self.source_cols.items()}
        return other

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def deconflict(self) -> List[str]:
        """
        Build the output column list from the per-source columns.

        The prefix is the alias after ``AS`` or else the source name. Columns
        that carry their own alias, or belong to no source, are used as-is;
        with one contributing source a column becomes ``prefix.col AS col``,
        with several ``prefix.col AS prefix__col``.
        """
        count = len(self.source_cols)
        cols: List[str] = []
        for source, source_cols in self.source_cols.items():
            pos = _alias_pos(source)
            prefix = source[pos + 4:].strip() if pos > 0 else source.strip()
            for col in source_cols:
                if _alias_pos(col) > 0 or prefix == "":
                    cols.append(col)
                elif col == "*":
                    cols.append(f"{prefix}.*")
                elif count == 1:
                    cols.append(f"{prefix}.{col} AS {col}")
                else:
                    cols.append(f"{prefix}.{col} AS {prefix}__{col}")
        return cols

    def build_parts(self) -> Dict[str, Any]:
        parts = copy.deepcopy(self.parts)
        parts["cols"] = self.deconflict()
        return parts

    def to_sql(self) -> str:
        """The statement ``fetch`` would run."""
        return self.backend.build_select(self.build_parts())

    def fetch(self, mode: Union[str, FetchMode] = FetchMode.RESULT) -> Any:
        """
        Deconflict columns and execute.

        Parameters
        ----------
        mode : str | FetchMode
            ``all``, ``row``, ``one``, ``result`` or ``assoc``.

        Raises
        ------
        QueryFailedError
            When the backend rejects the statement.
        """
        return self.backend.select(mode, self.build_parts(), self.bound)

    def count_pages(self, col: str = "id") -> Dict[str, int]:
        """
        Row count and page count for the current query.

        Runs on a clone with the columns replaced by ``COUNT(col)`` and no
        limit or order; the builder itself is not modified.
        """
        select = self.clone()
        select.clear("cols").clear("limit").clear("order")
        select.cols(f"COUNT({col})")
        count = int(select.fetch(FetchMode.ONE) or 0)
        pages = math.ceil(count / self._paging) if count > 0 else 0
        return {"count": count, "pages": pages}


__all__ = ["Select"]
