"""
Active record for a single row.

A ``Record`` holds the column values of one row plus one ``RelationSlot`` per
declared relation, tracks its lifecycle status, and runs the save/delete hook
sequence through its model. Fields are reachable as attributes
(``rec.handle``), items (``rec["handle"]``) or through ``get``/``set``; a
column whose name collides with a Record method is only reachable the latter
two ways.

Status machine::

    new   --set--> new            clean --set--> dirty
    new/dirty/invalid --save()--> inserted | updated | invalid
    any   --delete()--> deleted   (every later access raises DeletedRecordError)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Union

from tablemapper.errors import (
    DeletedRecordError,
    NoSuchFieldError,
    QueryFailedError,
    TableMapperError,
    ValidationError,
)
from tablemapper.model.filter import FilterChain
from tablemapper.sql.columns import Rule
from tablemapper.sql.table import is_empty
from tablemapper.utils.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.model.model import Model

log = get_logger(__name__)


class RecordStatus(str, Enum):
    NEW = "new"
    CLEAN = "clean"
    DIRTY = "dirty"
    INVALID = "invalid"
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"


class SlotState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


class RelationSlot:
    """
    Holder for one relation's value on one record.

    ``loaded()`` peeks and never queries; ``get_or_load()`` runs the relation
    fetch (a blocking query) the first time it is called on an unloaded slot.
    """

    def __init__(self, record: "Record", name: str, page: int = 0) -> None:
        self.record = record
        self.name = name
        self.page = page
        self.state = SlotState.UNLOADED
        self.value: Any = None

    def __repr__(self) -> str:
        return f"RelationSlot({self.name!r}, state={self.state.value}, page={self.page})"

    @property
    def is_loaded(self) -> bool:
        return self.state is SlotState.LOADED

    def loaded(self) -> Any:
        """The value if loaded, else None."""
        return self.value if self.is_loaded else None

    def set(self, value: Any) -> None:
        self.value = value
        self.state = SlotState.LOADED

    def reset(self) -> None:
        self.value = None
        self.state = SlotState.UNLOADED

    def get_or_load(self) -> Any:
        if not self.is_loaded:
            self.set(self.record.model.fetch_related(self.record, self.name, self.page))
        return self.value


@dataclass(frozen=True)
class FieldAccessor:
    """Custom per-field behaviour; each function receives the record first."""

    get: Optional[Callable[["Record"], Any]] = None
    set: Optional[Callable[["Record", Any], None]] = None
    isset: Optional[Callable[["Record"], bool]] = None
    unset: Optional[Callable[["Record"], None]] = None


@dataclass
class SaveResult:
    """
    Outcome of ``Record.save()``.

    Attributes
    ----------
    status : RecordStatus
        The record's status after the save.
    invalid : dict[str, list[str]]
        Field messages when validation or the database rejected the write.
    error : TableMapperError | None
        The ValidationError or QueryFailedError that stopped the save.
    related : dict
        Results of saving loaded related values, by relation name.
    """

    status: RecordStatus
    invalid: Dict[str, List[str]] = field(default_factory=dict)
    error: Optional[TableMapperError] = None
    related: Dict[str, Any] = field(default_factory=dict)

    def _related_results(self) -> List["SaveResult"]:
        results: List[SaveResult] = []
        for value in self.related.values():
            if isinstance(value, SaveResult):
                results.append(value)
            elif value:
                results.extend(value)
        return results

    @property
    def ok(self) -> bool:
        return self.error is None and all(result.ok for result in self._related_results())

    @property
    def kind(self) -> str:
        """``"ok"``, ``"invalid"`` (validation) or ``"failed"`` (database)."""
        if isinstance(self.error, ValidationError):
            return "invalid"
        if self.error is not None:
            return "failed"
        if not self.ok:
            return "failed"
        return "ok"

    @property
    def native_text(self) -> Optional[str]:
        if isinstance(self.error, QueryFailedError):
            return self.error.native_text
        return None

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_status(self) -> None:
        """Re-raise the error that stopped this save or a related save."""
        if self.error is not None:
            raise self.error
        for result in self._related_results():
            result.raise_for_status()


class Record:
    """
    One row of a model's table.

    Records are built by their model (``fetch_new``, ``new_record`` or any
    fetch) and should not be constructed directly.
    """

    def __init__(self, model: "Model") -> None:
        object.__setattr__(self, "_model", model)
        self._status = RecordStatus.NEW
        self._data: Dict[str, Any] = {name: None for name in model.field_names}
        self._clean: Dict[str, Any] = {}
        self._slots: Dict[str, RelationSlot] = {
            name: RelationSlot(self, name) for name in model.related_names
        }
        self._invalid: Dict[str, List[str]] = {}
        self._filters: Dict[str, List[Rule]] = {}
        self._save_exception: Optional[TableMapperError] = None
        self._saving = False

    # -----------------------------------------------------------------
    # Python protocol
    # -----------------------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        # only called when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __delattr__(self, name: str) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__delattr__(self, name)
        else:
            self.unset(name)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        self.unset(name)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        pk = self._data.get(self._model.primary_col)
        return f"<{type(self).__name__} {self._model.model_name}#{pk} {self._status.value}>"

    # -----------------------------------------------------------------
    # Field access
    # -----------------------------------------------------------------

    @property
    def model(self) -> "Model":
        return self._model

    def _check_deleted(self) -> None:
        if self._status is RecordStatus.DELETED:
            raise DeletedRecordError(f"{self._model.model_name} record has been deleted")

    def _require_field(self, name: str) -> None:
        if name not in self._data and name not in self._slots:
            raise NoSuchFieldError(self._model.model_name, name)

    def get(self, name: str) -> Any:
        """Field value; an unloaded relation is fetched on first read."""
        self._check_deleted()
        accessor = self._model.field_accessors.get(name)
        if accessor is not None and accessor.get is not None:
            return accessor.get(self)
        return self.get_raw(name)

    def get_raw(self, name: str) -> Any:
        """Field value without custom accessors."""
        slot = self._slots.get(name)
        if slot is not None:
            return slot.get_or_load()
        try:
            return self._data[name]
        except KeyError:
            raise NoSuchFieldError(self._model.model_name, name) from None

    def set(self, name: str, value: Any) -> None:
        self._check_deleted()
        self._require_field(name)
        if self._status is not RecordStatus.NEW:
            self._status = RecordStatus.DIRTY
        accessor = self._model.field_accessors.get(name)
        if accessor is not None and accessor.set is not None:
            accessor.set(self, value)
        else:
            self.set_raw(name, value)

    def set_raw(self, name: str, value: Any) -> None:
        """Store a value without custom accessors or status changes."""
        slot = self._slots.get(name)
        if slot is not None:
            slot.set(self._model.get_related(name).wrap(value))
        else:
            self._data[name] = value

    def unset(self, name: str) -> None:
        self._check_deleted()
        self._require_field(name)
        if self._status is not RecordStatus.NEW:
            self._status = RecordStatus.DIRTY
        accessor = self._model.field_accessors.get(name)
        if accessor is not None and accessor.unset is not None:
            accessor.unset(self)
        elif name in self._slots:
            self._slots[name].reset()
        else:
            self._data[name] = None

    def has(self, name: str) -> bool:
        """True when the field holds a value (an unloaded relation does not)."""
        self._check_deleted()
        accessor = self._model.field_accessors.get(name)
        if accessor is not None and accessor.isset is not None:
            return bool(accessor.isset(self))
        slot = self._slots.get(name)
        if slot is not None:
            return slot.loaded() is not None
        return self._data.get(name) is not None

    def related(self, name: str) -> RelationSlot:
        """The slot for one relation."""
        try:
            return self._slots[name]
        except KeyError:
            raise NoSuchFieldError(self._model.model_name, name) from None

    def load(self, data: Union["Record", Mapping[str, Any], None], cols: Optional[List[str]] = None) -> None:
        """
        Load row data into the record without touching its status.

        Serialized columns are decoded and values go through custom set
        accessors, so a fetched row reads the same as one assigned by hand.
        Keys of the form ``<relation>__<col>`` (from an eager JOIN) and nested
        dicts/lists under a relation name fill that relation's slot.
        """
        if isinstance(data, Record):
            data = data.to_dict()
        data = dict(data or {})
        if cols:
            data = {key: val for key, val in data.items() if key in cols}

        eager: Dict[str, Dict[str, Any]] = {}
        for key in list(data):
            rel, sep, col = key.partition("__")
            if sep and rel in self._slots:
                eager.setdefault(rel, {})[col] = data.pop(key)

        self._model.unserialize(data)
        status = self._status
        for key, val in data.items():
            accessor = self._model.field_accessors.get(key)
            if key in self._slots:
                if val is not None:
                    self.set_raw(key, val)
            elif accessor is not None and accessor.set is not None and val is not None:
                accessor.set(self, val)
            else:
                self._data[key] = val
        # set accessors may go through set(); loading never changes the status
        self._status = status

        for rel, row in eager.items():
            related = self._model.get_related(rel)
            if all(val is None for val in row.values()):
                self._slots[rel].set(related.fetch_empty())
            else:
                self._slots[rel].set(related.foreign.new_record(row))

    def to_dict(self) -> Dict[str, Any]:
        """
        Plain nested data for the record.

        Never fetches: an unloaded to-many relation is ``[]`` and an unloaded
        to-one relation is None.
        """
        self._check_deleted()
        data: Dict[str, Any] = {}
        for name in self._data:
            accessor = self._model.field_accessors.get(name)
            if accessor is not None and accessor.get is not None:
                data[name] = accessor.get(self)
            else:
                data[name] = self._data[name]
        for name, slot in self._slots.items():
            if not slot.is_loaded:
                data[name] = [] if self._model.get_related(name).to_many else None
            elif hasattr(slot.value, "to_dict"):
                data[name] = slot.value.to_dict()
            else:
                data[name] = slot.value
        return data

    # -----------------------------------------------------------------
    # Status and change tracking
    # -----------------------------------------------------------------

    @property
    def status(self) -> RecordStatus:
        return self._status

    def set_status(self, status: Union[str, RecordStatus]) -> None:
        self._status = RecordStatus(status)

    def get_save_exception(self) -> Optional[TableMapperError]:
        return self._save_exception

    @property
    def primary_col(self) -> str:
        return self._model.primary_col

    @property
    def primary_val(self) -> Any:
        return self._data.get(self._model.primary_col)

    def mark_clean(self) -> None:
        """Take a snapshot of the column values for change tracking."""
        self._clean = copy.deepcopy(self._data)

    def get_changed(self) -> List[str]:
        """Columns whose value differs from the last clean snapshot."""
        return [
            name
            for name, value in self._data.items()
            if name not in self._clean or self._clean[name] != value
        ]

    def is_changed(self, name: str) -> bool:
        return name in self.get_changed()

    # -----------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------

    def save(self, data: Optional[Mapping[str, Any]] = None) -> SaveResult:
        """
        Insert or update the record, then save loaded related values.

        Validation and database failures do not raise; they are reported in
        the returned SaveResult (and kept in ``get_invalid()`` and
        ``get_save_exception()``).

        Raises
        ------
        DeletedRecordError
            If the record has been deleted.
        """
        self._check_deleted()
        if self._saving:
            # reached again through a loaded relation cycle
            return SaveResult(self._status)
        self._save_exception = None
        self._invalid = {}
        if data:
            self.load(data)
            if self._status is not RecordStatus.NEW:
                self._status = RecordStatus.DIRTY

        self._saving = True
        try:
            self._save()
            related = self._save_related()
        except (ValidationError, QueryFailedError) as exc:
            self._save_exception = exc
            log.warning(
                "Record save failed",
                extra={
                    "model": self._model.model_name,
                    "status": self._status.value,
                    "error": str(exc),
                },
            )
            return SaveResult(self._status, self.get_invalid(), exc)
        finally:
            self._saving = False

        result = SaveResult(self._status, related=related)
        if not result.ok:
            log.warning(
                "Related save failed",
                extra={"model": self._model.model_name, "id": self.primary_val},
            )
        return result

    def save_in_transaction(self, data: Optional[Mapping[str, Any]] = None) -> SaveResult:
        """
        Like ``save()``, inside one backend transaction.

        Any failure (including in related saves) rolls the transaction back;
        this record's data is then restored to its pre-save values and its
        status becomes invalid.
        """
        before = (copy.deepcopy(self._data), copy.deepcopy(self._clean))
        result: Optional[SaveResult] = None
        try:
            with self._model.backend.transaction():
                result = self.save(data)
                result.raise_for_status()
        except (ValidationError, QueryFailedError) as exc:
            self._data, self._clean = before
            self._status = RecordStatus.INVALID
            if result is None:
                raise
            if not self._invalid:
                self.set_invalid("*", str(exc))
            result.status = self._status
            return result
        return result

    def _save(self) -> None:
        if self._status is RecordStatus.CLEAN:
            return
        self._pre_save()
        if is_empty(self.primary_val):
            self._insert()
        else:
            self._update()
        self._post_save()

    def _write(self, write: Callable[["Record"], None], done: RecordStatus) -> None:
        try:
            write(self)
        except QueryFailedError as exc:
            self._status = RecordStatus.INVALID
            self.set_invalid("*", exc.native_text)
            raise
        except ValidationError as exc:
            # filter() may already have recorded the same messages
            self._invalid = {}
            self.set_invalids(exc.invalid)
            raise
        self._status = done

    def _insert(self) -> None:
        self._pre_insert()
        self._write(self._model.insert, RecordStatus.INSERTED)
        self._post_insert()

    def _update(self) -> None:
        self._pre_update()
        self._write(self._model.update, RecordStatus.UPDATED)
        self._post_update()

    def _save_related(self) -> Dict[str, Any]:
        self._pre_save_related()
        results: Dict[str, Any] = {}
        for name, slot in self._slots.items():
            # only values already in memory; never lazy-load here
            if not slot.is_loaded or slot.value is None:
                continue
            result = self._model.get_related(name).save(self, slot.value)
            if result is not None:
                results[name] = result
        self._post_save_related()
        return results

    def delete(self) -> None:
        """Delete the row; the record is unusable afterwards."""
        self._check_deleted()
        self._pre_delete()
        self._model.delete(self)
        self._status = RecordStatus.DELETED
        self._post_delete()

    def refresh(self) -> None:
        """Reload column values from the database (relations are kept)."""
        self._check_deleted()
        if self._status is RecordStatus.NEW:
            return
        row = self._model.table.fetch(self.primary_val)
        if row is None:
            return
        self.load(row)
        self._status = RecordStatus.CLEAN
        self._invalid = {}
        self.mark_clean()

    # -----------------------------------------------------------------
    # Filtering and invalidation
    # -----------------------------------------------------------------

    def add_filter(self, col: str, rule: Any, *args: Any) -> None:
        """Add a validation rule for this record only."""
        self._require_field(col)
        self._filters.setdefault(col, []).append(Rule(name=rule, args=args))

    def filter(self) -> None:
        """
        Validate the record against the model's and this record's filters.

        Raises
        ------
        ValidationError
            Carrying every failing field; the record becomes invalid.
        """
        self._check_deleted()
        self._pre_filter()
        chain = FilterChain.for_record(self)
        if not chain.apply(self._data):
            invalid = chain.get_invalid()
            for key in invalid:
                override = self._model.invalid_messages.get(key)
                if override:
                    invalid[key] = [override]
            self._status = RecordStatus.INVALID
            self._invalid = invalid
            raise ValidationError(invalid, message=f"Invalid {self._model.model_name} record")
        self._post_filter()

    def get_filters(self) -> Dict[str, List[Rule]]:
        return {key: list(rules) for key, rules in self._filters.items()}

    def set_invalid(self, key: str, message: str) -> None:
        self._status = RecordStatus.INVALID
        self._invalid.setdefault(key, []).append(message)

    def set_invalids(self, invalid: Mapping[str, Union[str, List[str]]]) -> None:
        self._status = RecordStatus.INVALID
        for key, messages in invalid.items():
            if isinstance(messages, str):
                messages = [messages]
            self._invalid.setdefault(key, []).extend(messages)

    def get_invalid(self, key: Optional[str] = None) -> Any:
        """One field's messages, or the whole field -> messages map."""
        if key:
            return list(self._invalid.get(key, []))
        return {name: list(messages) for name, messages in self._invalid.items()}

    # -----------------------------------------------------------------
    # Related paging
    # -----------------------------------------------------------------

    def get_related_page(self, name: str) -> int:
        self._check_deleted()
        return self.related(name).page

    def set_related_page(self, name: str, page: int) -> None:
        """Choose the page a lazy load fetches; the slot is reset."""
        self._check_deleted()
        slot = self.related(name)
        slot.page = int(page)
        slot.reset()

    # -----------------------------------------------------------------
    # Hooks
    # -----------------------------------------------------------------

    def _pre_save(self) -> None:
        pass

    def _post_save(self) -> None:
        pass

    def _pre_insert(self) -> None:
        pass

    def _post_insert(self) -> None:
        pass

    def _pre_update(self) -> None:
        pass

    def _post_update(self) -> None:
        pass

    def _pre_save_related(self) -> None:
        pass

    def _post_save_related(self) -> None:
        pass

    def _pre_delete(self) -> None:
        pass

    def _post_delete(self) -> None:
        pass

    def _pre_filter(self) -> None:
        pass

    def _post_filter(self) -> None:
        pass


__all__ = [
    "FieldAccessor",
    "Record",
    "RecordStatus",
    "RelationSlot",
    "SaveResult",
    "SlotState",
]
