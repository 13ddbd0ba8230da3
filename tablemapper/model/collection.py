"""
Ordered, optionally keyed, set of records.

A ``Collection`` is a mutable sequence of records with a parallel list of keys.
``coll[i]`` addresses by position and ``coll.keyed[key]`` by key; both views
share the same two lists, so every insert, replace or delete through either
one keeps them consistent.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    MutableSequence,
    Optional,
    Union,
    overload,
)

from tablemapper.model.record import Record, RecordStatus, SaveResult
from tablemapper.sql.table import is_empty

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.model.model import Model


class KeyedView(MutableMapping):
    """Mapping view of a collection's keyed members."""

    def __init__(self, collection: "Collection") -> None:
        self._coll = collection

    def _index(self, key: Any) -> int:
        if key is None:
            raise KeyError(key)
        try:
            return self._coll._keys.index(key)
        except ValueError:
            raise KeyError(key) from None

    def __getitem__(self, key: Any) -> Record:
        return self._coll._records[self._index(key)]

    def __setitem__(self, key: Any, record: Union[Record, Mapping[str, Any]]) -> None:
        if key is None:
            raise KeyError("collection keys may not be None")
        record = self._coll._wrap(record)
        try:
            self._coll._records[self._index(key)] = record
        except KeyError:
            self._coll._records.append(record)
            self._coll._keys.append(key)

    def __delitem__(self, key: Any) -> None:
        index = self._index(key)
        del self._coll._records[index]
        del self._coll._keys[index]

    def __iter__(self) -> Iterator[Any]:
        return (key for key in self._coll._keys if key is not None)

    def __len__(self) -> int:
        return sum(1 for key in self._coll._keys if key is not None)


class Collection(MutableSequence):
    """
    Records of one model.

    Parameters
    ----------
    model : Model
        Owner of the records; dicts assigned into the collection become its
        records.
    records : Iterable[Record | dict] | None
        Initial members.
    keys : Iterable | None
        Keys parallel to ``records`` (None for unkeyed members).
    """

    def __init__(
        self,
        model: "Model",
        records: Optional[Iterable[Union[Record, Mapping[str, Any]]]] = None,
        keys: Optional[Iterable[Any]] = None,
    ) -> None:
        self.model = model
        self._records: List[Record] = [self._wrap(record) for record in records or []]
        if keys is None:
            self._keys: List[Any] = [None] * len(self._records)
        else:
            self._keys = list(keys)
            if len(self._keys) != len(self._records):
                raise ValueError("keys and records must have the same length")
            self._collapse_keys()
        self._pager: Dict[str, int] = {
            "count": len(self._records),
            "pages": 1 if self._records else 0,
            "page": 0,
            "paging": model.paging,
        }

    def _collapse_keys(self) -> None:
        """A repeated key keeps its first position and its last record."""
        first: Dict[Any, int] = {}
        records: List[Record] = []
        keys: List[Any] = []
        for key, record in zip(self._keys, self._records):
            if key is not None and key in first:
                records[first[key]] = record
                continue
            if key is not None:
                first[key] = len(records)
            records.append(record)
            keys.append(key)
        self._records, self._keys = records, keys

    def _wrap(self, record: Union[Record, Mapping[str, Any]]) -> Record:
        """Records pass through; a dict without a primary key becomes a new record."""
        if isinstance(record, Record):
            return record
        if is_empty(record.get(self.model.primary_col)):
            return self.model.fetch_new(record)
        return self.model.new_record(record)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.model.model_name} x{len(self)}>"

    # -----------------------------------------------------------------
    # Sequence protocol
    # -----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    @overload
    def __getitem__(self, index: int) -> Record: ...

    @overload
    def __getitem__(self, index: slice) -> List[Record]: ...

    def __getitem__(self, index):
        return self._records[index]

    def __setitem__(self, index: Union[int, slice], record: Any) -> None:
        if isinstance(index, slice):
            # members moved within the slice keep their keys, new ones get None
            old = {id(rec): key for rec, key in zip(self._records[index], self._keys[index])}
            records = [self._wrap(item) for item in record]
            keys = [old.pop(id(rec), None) for rec in records]
            self._records[index] = records
            self._keys[index] = keys
            return
        self._records[index] = self._wrap(record)

    def __delitem__(self, index: Union[int, slice]) -> None:
        del self._records[index]
        del self._keys[index]

    def insert(self, index: int, record: Union[Record, Mapping[str, Any]]) -> None:
        self._records.insert(index, self._wrap(record))
        self._keys.insert(index, None)

    def reverse(self) -> None:
        self._records.reverse()
        self._keys.reverse()

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._records))

    @property
    def keyed(self) -> KeyedView:
        return KeyedView(self)

    def keys(self) -> List[Any]:
        """Member keys in positional order (None for unkeyed members)."""
        return list(self._keys)

    # -----------------------------------------------------------------
    # Persistence and export
    # -----------------------------------------------------------------

    def save(self) -> List[SaveResult]:
        """
        Save every member.

        Each member's failure is reported in its own SaveResult and does not
        stop the others; deleted members are skipped.
        """
        results = []
        for record in self._records:
            if record.status is RecordStatus.DELETED:
                results.append(SaveResult(RecordStatus.DELETED))
                continue
            results.append(record.save())
        return results

    def to_dict(self) -> List[Dict[str, Any]]:
        """Member data in order; never lazy-loads relations."""
        return [record.to_dict() for record in self._records]

    def get_pager_info(self) -> Dict[str, int]:
        return dict(self._pager)

    def set_pager_info(self, info: Mapping[str, Any]) -> None:
        for key, val in info.items():
            self._pager[key] = int(val or 0)


__all__ = ["Collection", "KeyedView"]
