"""
Relationship descriptors.

A model declares its relations as unbound descriptors::

    related = {
        "user": BelongsTo("users"),
        "nodes": HasMany("nodes", order="nodes.id"),
        "tags": HasManyThrough("tags", through="taggings"),
    }

``Model.get_related(name)`` binds a copy of the descriptor to the model on
first use, which resolves the native/foreign columns from the two models'
primary keys and conventional foreign-key names. A bound descriptor builds the
lazy-load select for one record, the empty value for a record with nothing
related, and the eager load for a whole result set (a LEFT JOIN for to-one
relations, one extra IN query per to-many relation).
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Union

from tablemapper.errors import ConfigurationError
from tablemapper.infrastructure.backend import FetchMode
from tablemapper.model.record import RecordStatus
from tablemapper.sql.select import ColsSpec, Select
from tablemapper.sql.table import is_empty

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.model.model import Model
    from tablemapper.model.record import Record, SaveResult

ModelRef = Union[str, type]

# Alias carrying the through-table key in eager has-many-through rows.
EAGER_KEY = "eager_native_key"


def qualified_cols(table: str, cols: Sequence[str]) -> List[str]:
    """Columns pre-aliased to their own names so joins do not prefix them."""
    return [f"{table}.{col} AS {col}" if col.isidentifier() else col for col in cols]


class Related:
    """
    Base descriptor.

    Parameters
    ----------
    foreign_model : str | type
        Catalog name (or Model subclass) of the related model.
    native_col, foreign_col : str | None
        Key columns; derived from the models when omitted.
    where : Mapping | Sequence[str] | None
        Extra conditions (``multi_where`` form) applied to every fetch.
    order : str | Sequence[str] | None
        Sort for to-many fetches; defaults to the foreign model's order.
    fetch : "one" | "all" | None
        Result shape; defaults per relation type.
    """

    type: ClassVar[str] = ""
    default_fetch: ClassVar[str] = "one"

    def __init__(
        self,
        foreign_model: ModelRef,
        native_col: Optional[str] = None,
        foreign_col: Optional[str] = None,
        where: Union[None, Mapping[Any, Any], Sequence[str]] = None,
        order: ColsSpec = None,
        fetch: Optional[str] = None,
    ) -> None:
        self.foreign_model = foreign_model
        self.native_col = native_col
        self.foreign_col = foreign_col
        self.where = where
        self.order = order
        self.fetch_mode = fetch or self.default_fetch
        if self.fetch_mode not in ("one", "all"):
            raise ConfigurationError(f"Relation fetch must be 'one' or 'all', not '{fetch}'")
        self.name: Optional[str] = None
        self.native: Optional["Model"] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.foreign_model!r}, name={self.name!r})"

    # -----------------------------------------------------------------
    # Binding
    # -----------------------------------------------------------------

    def bind(self, native: "Model", name: str) -> "Related":
        """A copy of this descriptor bound to a native model under a name."""
        bound = copy.copy(self)
        bound.native = native
        bound.name = name
        bound._fix_cols()
        return bound

    def _fix_cols(self) -> None:
        raise NotImplementedError

    @property
    def foreign(self) -> "Model":
        if self.native is None:
            raise ConfigurationError(f"{self!r} is not bound to a model")
        return self.native.catalog.get(self.foreign_model)

    @property
    def to_many(self) -> bool:
        return self.fetch_mode == "all"

    # -----------------------------------------------------------------
    # Lazy loading
    # -----------------------------------------------------------------

    def _refine(self, select: Select) -> Select:
        select.multi_where(self.where)
        if self.to_many:
            select.order(self.order or self.foreign.order)
        return select

    def new_select(self, record: "Record", page: Optional[int] = None) -> Select:
        """The select that lazily loads this relation for one record."""
        foreign = self.foreign
        select = foreign.new_select()
        select.from_(foreign.table_name, list(foreign.table_cols))
        select.where(
            f"{foreign.table_name}.{self.foreign_col} = ?",
            record.get_raw(self.native_col),
        )
        self._refine(select)
        return select.limit_page(page)

    def fetch(self, record: "Record", page: Optional[int] = None) -> Any:
        """The related value for one record (may run one query)."""
        if is_empty(record.get_raw(self.native_col)):
            return self.fetch_empty()
        select = self.new_select(record, page)
        if self.to_many:
            return self.foreign.new_collection(select.fetch(FetchMode.ALL))
        row = select.fetch(FetchMode.ROW)
        if not row:
            return self.fetch_empty()
        return self.foreign.new_record(row)

    def fetch_empty(self) -> Any:
        """The value for a record with nothing related."""
        if self.to_many:
            return self.foreign.new_collection([])
        return None

    def wrap(self, value: Any) -> Any:
        """
        Turn assigned or nested data into a record or collection.

        A dict without a primary key becomes a new record, one with a key a
        clean record.
        """
        if value is None or hasattr(value, "to_dict"):
            return value
        foreign = self.foreign
        if isinstance(value, Mapping):
            if is_empty(value.get(foreign.primary_col)):
                return foreign.fetch_new(value)
            return foreign.new_record(value)
        return foreign.collection_class(foreign, list(value))

    # -----------------------------------------------------------------
    # Eager loading
    # -----------------------------------------------------------------

    def eager_join(self, select: Select) -> Select:
        """Add a LEFT JOIN that loads this to-one relation as `<name>__<col>`."""
        if self.to_many:
            raise ConfigurationError(f"Relation '{self.name}' cannot be eager-joined")
        foreign = self.foreign
        select.join(
            f"{foreign.table_name} AS {self.name}",
            f"{self.name}.{self.foreign_col} = {self.native.table_name}.{self.native_col}",
            list(foreign.table_cols),
            type="left",
        )
        return select

    def eager_select(self, values: List[Any]) -> Select:
        foreign = self.foreign
        select = foreign.new_select()
        select.from_(foreign.table_name, list(foreign.table_cols))
        select.where(f"{foreign.table_name}.{self.foreign_col} IN (?)", values)
        return self._refine(select)

    def eager_key(self, row: Dict[str, Any]) -> Any:
        return row[self.foreign_col]

    def eager(self, records: Sequence["Record"]) -> None:
        """Load this to-many relation for every record with one query."""
        if not self.to_many:
            raise ConfigurationError(f"Relation '{self.name}' is eager-loaded by join")
        values = []
        for record in records:
            value = record.get_raw(self.native_col)
            if not is_empty(value) and value not in values:
                values.append(value)

        grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        if values:
            for row in self.eager_select(values).fetch(FetchMode.ALL):
                grouped[str(self.eager_key(row))].append(row)

        foreign = self.foreign
        for record in records:
            rows = grouped.get(str(record.get_raw(self.native_col)), [])
            record.related(self.name).set(foreign.new_collection(rows))

    # -----------------------------------------------------------------
    # Saving
    # -----------------------------------------------------------------

    def link(self, record: "Record", child: "Record") -> None:
        """Point a child record at its parent before saving it."""

    def save(self, record: "Record", value: Any) -> Union[None, "SaveResult", List["SaveResult"]]:
        """Save a loaded related value on behalf of its parent record."""
        if value is None:
            return None
        if self.to_many:
            for child in value:
                self.link(record, child)
            return value.save()
        if value.status is RecordStatus.NEW and not value.get_changed():
            # untouched placeholder
            return None
        self.link(record, value)
        return value.save()


class BelongsTo(Related):
    """The native row carries the foreign key (``nodes.area_id -> areas.id``)."""

    type = "belongs_to"

    def _fix_cols(self) -> None:
        foreign = self.foreign
        self.native_col = self.native_col or foreign.foreign_col
        self.foreign_col = self.foreign_col or foreign.primary_col


class HasOne(Related):
    """The foreign row carries the key (``metas.node_id -> nodes.id``)."""

    type = "has_one"

    def _fix_cols(self) -> None:
        self.native_col = self.native_col or self.native.primary_col
        self.foreign_col = self.foreign_col or self.native.foreign_col

    def fetch_empty(self) -> Any:
        if self.to_many:
            return super().fetch_empty()
        return self.foreign.fetch_new()

    def link(self, record: "Record", child: "Record") -> None:
        value = record.get_raw(self.native_col)
        if child.get_raw(self.foreign_col) != value:
            child.set(self.foreign_col, value)


class HasOneOrNull(HasOne):
    """Like HasOne, but nothing related means None instead of a new record."""

    type = "has_one_or_null"

    def fetch_empty(self) -> Any:
        if self.to_many:
            return super().fetch_empty()
        return None


class HasMany(HasOne):
    """Many foreign rows carry the key (``nodes.area_id -> areas.id``)."""

    type = "has_many"
    default_fetch = "all"


class HasManyThrough(Related):
    """
    Many foreign rows reached through a pivot model.

    ``nodes -> taggings(node_id, tag_id) -> tags``: ``through_native_col`` is
    the pivot column matching the native key, ``through_foreign_col`` the one
    matching the foreign key.
    """

    type = "has_many_through"
    default_fetch = "all"

    def __init__(
        self,
        foreign_model: ModelRef,
        through: ModelRef,
        through_native_col: Optional[str] = None,
        through_foreign_col: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(foreign_model, **kwargs)
        self.through = through
        self.through_native_col = through_native_col
        self.through_foreign_col = through_foreign_col

    def _fix_cols(self) -> None:
        foreign = self.foreign
        self.native_col = self.native_col or self.native.primary_col
        self.foreign_col = self.foreign_col or foreign.primary_col
        self.through_native_col = self.through_native_col or self.native.foreign_col
        self.through_foreign_col = self.through_foreign_col or foreign.foreign_col

    @property
    def through_model(self) -> "Model":
        return self.native.catalog.get(self.through)

    def _join_cond(self) -> str:
        through = self.through_model.table_name
        foreign = self.foreign.table_name
        return f"{through}.{self.through_foreign_col} = {foreign}.{self.foreign_col}"

    def new_select(self, record: "Record", page: Optional[int] = None) -> Select:
        foreign = self.foreign
        through = self.through_model.table_name
        select = foreign.new_select()
        select.from_(foreign.table_name, list(foreign.table_cols))
        select.join(through, self._join_cond())
        select.where(
            f"{through}.{self.through_native_col} = ?",
            record.get_raw(self.native_col),
        )
        self._refine(select)
        return select.limit_page(page)

    def eager_select(self, values: List[Any]) -> Select:
        foreign = self.foreign
        through = self.through_model.table_name
        select = foreign.new_select()
        select.from_(foreign.table_name, qualified_cols(foreign.table_name, list(foreign.table_cols)))
        select.join(
            through,
            self._join_cond(),
            [f"{through}.{self.through_native_col} AS {EAGER_KEY}"],
        )
        select.where(f"{through}.{self.through_native_col} IN (?)", values)
        return self._refine(select)

    def eager_key(self, row: Dict[str, Any]) -> Any:
        return row.pop(EAGER_KEY)


RELATION_TYPES = {
    cls.type: cls for cls in (BelongsTo, HasOne, HasOneOrNull, HasMany, HasManyThrough)
}


__all__ = [
    "BelongsTo",
    "EAGER_KEY",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "HasOneOrNull",
    "RELATION_TYPES",
    "Related",
    "qualified_cols",
]
