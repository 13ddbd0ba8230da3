"""
Table-backed entity types.

A ``Model`` subclass declares one entity: its table, columns, indexes,
relations, filters and accessors. An instance binds those declarations to a
backend (through a ``Catalog`` shared with the related models), owns the
``Table`` that validates its writes, and turns query rows into records and
collections.

Example
-------
>>> class Areas(Model):
...     table_cols = {"name": {"type": "varchar", "size": 127, "required": True}}
...     related = {"nodes": HasMany("nodes")}
>>> catalog = Catalog(backend, [Areas, Nodes])
>>> areas = catalog.get("areas")
>>> page = areas.fetch_all(order="name", page=1, eager="nodes")
"""

from __future__ import annotations

import json
import re
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

from tablemapper.config import get_settings
from tablemapper.errors import ConfigurationError, UnknownRelationError
from tablemapper.infrastructure.backend import FetchMode, SqlBackend, WhereSpec
from tablemapper.model.catalog import Catalog
from tablemapper.model.collection import Collection
from tablemapper.model.record import FieldAccessor, Record, RecordStatus
from tablemapper.model.related import RELATION_TYPES, Related, qualified_cols
from tablemapper.sql.select import ColsSpec, Select
from tablemapper.sql.table import Table, is_empty
from tablemapper.utils.logging import get_logger

log = get_logger(__name__)

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_ACCESSOR_KINDS = ("get", "set", "isset", "unset")

EagerSpec = Union[None, str, Iterable[str]]


def underscore(name: str) -> str:
    """`NodeTags` -> `node_tags`."""
    return _CAMEL_RE.sub("_", name).lower()


def singular(name: str) -> str:
    """Naive English singular for table names (`areas` -> `area`, `categories` -> `category`)."""
    if name.endswith("ies") and len(name) > 3:
        return name[:-3] + "y"
    if re.search(r"(s|x|z|ch|sh)es$", name):
        return name[:-2]
    if name.endswith("s") and not name.endswith("ss"):
        return name[:-1]
    return name


class Model:
    """
    Base class for entity types.

    Class attributes
    ----------------
    table_name : str | None
        Defaults to the underscored class name.
    table_cols : Mapping[str, dict | ColumnSpec]
        Declared columns (``id``, ``created``, ``updated`` are automatic).
    table_idx : Mapping[str, str | dict]
        Declared indexes.
    related : Mapping[str, Related | dict]
        Relation descriptors by field name; a dict needs a ``type`` key.
    filters : Mapping[str, rule | list]
        Extra rules checked by ``Record.filter()``.
    accessors : Mapping[str, FieldAccessor | dict]
        Custom per-field get/set/isset/unset functions. Record subclasses may
        also define ``_get_<field>``-style methods instead.
    calculate_cols : Sequence[str]
        Record fields that are never read from or written to the table.
    sequence_cols : Mapping[str, str] | Sequence[str]
        Columns filled from a named sequence on insert when empty.
    serialize_cols : Sequence[str]
        Columns stored as JSON text and loaded back as Python values.
    invalid_messages : Mapping[str, str]
        Replacement message per field for ``Record.filter()`` failures.
    order : str | Sequence[str] | None
        Default sort; defaults to the primary key.
    paging : int | None
        Rows per page; defaults to the ``DEFAULT_PAGING`` setting.
    record_class, collection_class : type
        Classes used to wrap rows.
    primary_col, foreign_col : str | None
        Primary key (defaults to the table's) and the conventional name other
        tables use to point here (defaults to ``<singular table>_id``).
    """

    table_name: ClassVar[Optional[str]] = None
    table_cols: ClassVar[Mapping[str, Any]] = {}
    table_idx: ClassVar[Mapping[str, Any]] = {}
    related: ClassVar[Mapping[str, Union[Related, Mapping[str, Any]]]] = {}
    filters: ClassVar[Mapping[str, Any]] = {}
    accessors: ClassVar[Mapping[str, Any]] = {}
    calculate_cols: ClassVar[Sequence[str]] = ()
    sequence_cols: ClassVar[Union[Mapping[str, str], Sequence[str]]] = ()
    serialize_cols: ClassVar[Sequence[str]] = ()
    invalid_messages: ClassVar[Mapping[str, str]] = {}
    order: ClassVar[Any] = None
    paging: ClassVar[Optional[int]] = None
    record_class: ClassVar[Type[Record]] = Record
    collection_class: ClassVar[Type[Collection]] = Collection
    primary_col: ClassVar[Optional[str]] = None
    foreign_col: ClassVar[Optional[str]] = None

    @classmethod
    def default_table_name(cls) -> str:
        return (cls.table_name or underscore(cls.__name__)).lower()

    def __init__(
        self,
        backend: SqlBackend,
        catalog: Optional[Catalog] = None,
        auto_create: bool = True,
    ) -> None:
        self.backend = backend
        self.table_name = self.default_table_name()
        self.model_name = self.table_name
        self.paging = max(1, int(self.paging or get_settings().default_paging))
        self.table = Table(
            backend,
            self.table_name,
            self.table_cols,
            self.table_idx,
            paging=self.paging,
            auto_create=auto_create,
        )
        self.table_cols = self.table.cols
        self.primary_col = self.primary_col or self.table.primary_col
        self.foreign_col = self.foreign_col or f"{singular(self.table_name)}_id"
        self.order = self.order or f"{self.table_name}.{self.primary_col}"

        if isinstance(self.sequence_cols, Mapping):
            self.sequence_cols = dict(self.sequence_cols)
        else:
            self.sequence_cols = {col: f"{self.table_name}__{col}" for col in self.sequence_cols}

        unknown = set(self.serialize_cols) - set(self.table_cols)
        if unknown:
            raise ConfigurationError(
                f"Model '{self.model_name}' serializes unknown columns {sorted(unknown)}"
            )
        self.serialize_cols = list(self.serialize_cols)

        self.field_names: List[str] = list(self.table_cols) + [
            col for col in self.calculate_cols if col not in self.table_cols
        ]
        self.related_names: List[str] = list(self.related)
        clash = set(self.field_names) & set(self.related_names)
        if clash:
            raise ConfigurationError(
                f"Model '{self.model_name}' uses {sorted(clash)} as both column and relation"
            )
        self.field_accessors: Dict[str, FieldAccessor] = self._build_accessors()
        self._bound: Dict[str, Related] = {}

        self.catalog = catalog if catalog is not None else Catalog(backend, auto_create=auto_create)
        self.catalog.adopt(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} '{self.model_name}'>"

    def _build_accessors(self) -> Dict[str, FieldAccessor]:
        """Merge declared accessors over `_<kind>_<field>` methods of the record class."""
        table: Dict[str, FieldAccessor] = {}
        for name in self.field_names + self.related_names:
            found: Dict[str, Any] = {}
            for kind in _ACCESSOR_KINDS:
                method = getattr(self.record_class, f"_{kind}_{name}", None)
                if method is not None:
                    found[kind] = method
            declared = self.accessors.get(name)
            if isinstance(declared, FieldAccessor):
                declared = {kind: getattr(declared, kind) for kind in _ACCESSOR_KINDS}
            for kind, func in dict(declared or {}).items():
                if kind not in _ACCESSOR_KINDS:
                    raise ConfigurationError(f"Unknown accessor kind '{kind}' for '{name}'")
                if func is not None:
                    found[kind] = func
            if found:
                table[name] = FieldAccessor(**found)
        unknown = set(self.accessors) - set(self.field_names) - set(self.related_names)
        if unknown:
            raise ConfigurationError(
                f"Model '{self.model_name}' declares accessors for unknown fields {sorted(unknown)}"
            )
        return table

    # -----------------------------------------------------------------
    # Relations
    # -----------------------------------------------------------------

    def get_related(self, name: str) -> Related:
        """
        The bound descriptor for one relation.

        Raises
        ------
        UnknownRelationError
            If the model declares no relation by that name.
        """
        bound = self._bound.get(name)
        if bound is not None:
            return bound
        try:
            spec = self.related[name]
        except KeyError:
            raise UnknownRelationError(
                f"Model '{self.model_name}' has no relation '{name}'"
            ) from None
        if isinstance(spec, Mapping):
            spec = dict(spec)
            kind = spec.pop("type", None)
            if kind not in RELATION_TYPES:
                raise ConfigurationError(f"Relation '{name}' has unknown type '{kind}'")
            spec = RELATION_TYPES[kind](**spec)
        bound = spec.bind(self, name)
        self._bound[name] = bound
        return bound

    def fetch_related(self, record: Record, name: str, page: Optional[int] = None) -> Any:
        """Lazy-load one relation for one record."""
        return self.get_related(name).fetch(record, page)

    def _eager(self, eager: EagerSpec) -> Tuple[List[Related], List[Related]]:
        if not eager:
            return [], []
        if isinstance(eager, str):
            eager = [name.strip() for name in eager.split(",") if name.strip()]
        relations = [self.get_related(name) for name in eager]
        return (
            [rel for rel in relations if not rel.to_many],
            [rel for rel in relations if rel.to_many],
        )

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def new_select(self) -> Select:
        return Select(self.backend, paging=self.paging)

    def _build_select(
        self,
        where: WhereSpec,
        order: ColsSpec,
        page: Optional[int],
        to_one: Sequence[Related],
        cols: ColsSpec,
        group: ColsSpec,
        having: WhereSpec,
        bind: Optional[Mapping[str, Any]],
    ) -> Select:
        cols = list(cols) if cols and not isinstance(cols, str) else cols
        cols = cols or list(self.table_cols)
        select = self.new_select()
        if to_one:
            if isinstance(cols, str):
                cols = [col.strip() for col in cols.split(",")]
            select.from_(self.table_name, qualified_cols(self.table_name, cols))
            for rel in to_one:
                rel.eager_join(select)
        else:
            select.from_(self.table_name, cols)
        select.multi_where(where).group(group).multi_having(having)
        select.order(order or self.order).limit_page(page)
        if bind:
            select.bind(bind)
        return select

    def fetch_all(
        self,
        where: WhereSpec = None,
        order: ColsSpec = None,
        page: Optional[int] = None,
        eager: EagerSpec = None,
        cols: ColsSpec = None,
        group: ColsSpec = None,
        having: WhereSpec = None,
        bind: Optional[Mapping[str, Any]] = None,
    ) -> Collection:
        """
        A collection of records.

        To-one relations named in ``eager`` are loaded by a LEFT JOIN in the
        main query; each to-many relation costs one more query for the whole
        result set. With ``page`` the collection also carries pager info,
        which costs one COUNT query.
        """
        to_one, to_many = self._eager(eager)
        select = self._build_select(where, order, page, to_one, cols, group, having, bind)
        coll = self.new_collection(select.fetch(FetchMode.ALL))
        for rel in to_many:
            rel.eager(coll)
        if page:
            info = select.count_pages(f"{self.table_name}.{self.primary_col}")
            coll.set_pager_info({**info, "page": page, "paging": self.paging})
        log.debug(
            "Fetched records",
            extra={"model": self.model_name, "rows": len(coll), "page": page},
        )
        return coll

    def fetch_assoc(
        self,
        where: WhereSpec = None,
        order: ColsSpec = None,
        page: Optional[int] = None,
        eager: EagerSpec = None,
        cols: ColsSpec = None,
        group: ColsSpec = None,
        having: WhereSpec = None,
        bind: Optional[Mapping[str, Any]] = None,
        key: Optional[str] = None,
    ) -> Collection:
        """
        Like ``fetch_all``, keyed by ``key`` (the primary key by default).

        Rows sharing a key collapse into one member: the last row wins, at the
        position of the first.
        """
        coll = self.fetch_all(where, order, page, eager, cols, group, having, bind)
        key = key or self.primary_col
        keyed = self.new_collection(list(coll), keys=[record.get_raw(key) for record in coll])
        keyed.set_pager_info(coll.get_pager_info())
        return keyed

    def fetch_one(
        self,
        where: WhereSpec = None,
        order: ColsSpec = None,
        eager: EagerSpec = None,
        cols: ColsSpec = None,
        group: ColsSpec = None,
        having: WhereSpec = None,
        bind: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Record]:
        """The first matching record, or None."""
        to_one, to_many = self._eager(eager)
        select = self._build_select(where, order, None, to_one, cols, group, having, bind)
        row = select.limit(1).fetch(FetchMode.ROW)
        if not row:
            return None
        record = self.new_record(row)
        for rel in to_many:
            rel.eager([record])
        return record

    def fetch(self, pk: Any, eager: EagerSpec = None) -> Optional[Record]:
        """One record by primary key, or None."""
        if is_empty(pk):
            return None
        return self.fetch_one({f"{self.table_name}.{self.primary_col} = ?": pk}, eager=eager)

    def fetch_new(self, data: Optional[Mapping[str, Any]] = None) -> Record:
        """A new record holding column defaults, then ``data``."""
        record = self.record_class(self)
        record.load(self.table.fetch_default())
        record.mark_clean()
        if data:
            record.load(data)
        record.set_status(RecordStatus.NEW)
        return record

    def count_pages(self, where: WhereSpec = None) -> Dict[str, int]:
        """``{"count": rows, "pages": pages}`` for the matching rows."""
        return self.table.count_pages(where)

    def new_record(self, row: Union[Record, Mapping[str, Any], None]) -> Record:
        """A clean record from row data."""
        if isinstance(row, Record):
            return row
        record = self.record_class(self)
        record.load(row)
        record.set_status(RecordStatus.CLEAN)
        record.mark_clean()
        return record

    def new_collection(
        self,
        rows: Iterable[Union[Record, Mapping[str, Any]]],
        keys: Optional[Iterable[Any]] = None,
    ) -> Collection:
        """A collection of clean records from row data."""
        return self.collection_class(self, [self.new_record(row) for row in rows], keys)

    # -----------------------------------------------------------------
    # Writes (called by Record.save / Record.delete)
    # -----------------------------------------------------------------

    def _column_data(self, record: Record, names: Iterable[str]) -> Dict[str, Any]:
        data = {name: record.get_raw(name) for name in names if name in self.table_cols}
        self.serialize(data)
        return data

    def serialize(self, data: Dict[str, Any]) -> None:
        """Encode the serialized columns present in ``data`` as JSON text, in place."""
        for col in self.serialize_cols:
            if data.get(col) is not None:
                data[col] = json.dumps(data[col])

    def unserialize(self, data: Dict[str, Any]) -> None:
        """
        Decode the serialized columns present in ``data``, in place.

        Only strings are decoded; a string that is not JSON is kept as given.
        """
        for col in self.serialize_cols:
            val = data.get(col)
            if isinstance(val, str):
                try:
                    data[col] = json.loads(val)
                except json.JSONDecodeError:
                    continue

    def insert(self, record: Record) -> None:
        """
        Filter a record, insert its column values and load back the written row.

        Raises
        ------
        ValidationError, QueryFailedError
            From the record's filters, the table or the backend; nothing is
            written.
        """
        record.filter()
        data = self._column_data(record, self.table_cols)
        for col, sequence in self.sequence_cols.items():
            if is_empty(data.get(col)):
                data[col] = self.backend.next_sequence(sequence)
        row = self.table.insert(data)
        record.load(row)
        record.mark_clean()

    def update(self, record: Record) -> None:
        """Filter a record and write its changed column values; the primary key is never written."""
        record.filter()
        changed = self._column_data(record, record.get_changed())
        changed.pop(self.primary_col, None)
        if not changed:
            return
        row = self.table.update(changed, {f"{self.primary_col} = ?": record.primary_val})
        record.load(row)
        record.mark_clean()

    def delete(self, record: Record) -> int:
        """Delete a record's row; a record without a primary key deletes nothing."""
        if is_empty(record.primary_val):
            return 0
        return self.table.delete({f"{self.primary_col} = ?": record.primary_val})

    def delete_where(self, where: WhereSpec) -> int:
        return self.table.delete(where)


__all__ = ["Model", "singular", "underscore"]
