"""Active-record layer: models, records, collections and relations."""

from tablemapper.model.catalog import Catalog
from tablemapper.model.collection import Collection
from tablemapper.model.filter import FilterChain
from tablemapper.model.model import Model
from tablemapper.model.record import FieldAccessor, Record, RecordStatus, RelationSlot, SaveResult
from tablemapper.model.related import (
    BelongsTo,
    HasMany,
    HasManyThrough,
    HasOne,
    HasOneOrNull,
    Related,
)

__all__ = [
    "BelongsTo",
    "Catalog",
    "Collection",
    "FieldAccessor",
    "FilterChain",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "HasOneOrNull",
    "Model",
    "Record",
    "RecordStatus",
    "RelationSlot",
    "SaveResult",
    "Related",
]
