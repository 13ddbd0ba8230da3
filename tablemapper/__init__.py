"""
tablemapper - relational data mapping for Python applications.

This package provides the data-mapping core of a web application:

- A SELECT query builder with column deconfliction and paging
- Table schemas that auto-create themselves and validate every write
- Active records and collections with lazy and eager relations
- Has-one, belongs-to, has-many and has-many-through descriptors

Statements run through a backend adapter (PostgreSQL via psycopg, or SQLite)
chosen from settings.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from tablemapper.config import Settings, get_settings
from tablemapper.errors import (
    ConfigurationError,
    DeletedRecordError,
    NoSuchFieldError,
    QueryFailedError,
    TableMapperError,
    UnknownRelationError,
    ValidationError,
)
from tablemapper.infrastructure import (
    FetchMode,
    PostgresBackend,
    SqlBackend,
    SqliteBackend,
    create_backend,
)
from tablemapper.model import (
    BelongsTo,
    Catalog,
    Collection,
    FieldAccessor,
    HasMany,
    HasManyThrough,
    HasOne,
    HasOneOrNull,
    Model,
    Record,
    RecordStatus,
    SaveResult,
)
from tablemapper.sql import ColumnSpec, DefaultSpec, IndexSpec, Rule, Select, Table
from tablemapper.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "ConfigurationError",
    "DeletedRecordError",
    "NoSuchFieldError",
    "QueryFailedError",
    "TableMapperError",
    "UnknownRelationError",
    "ValidationError",
    # Backends
    "FetchMode",
    "PostgresBackend",
    "SqlBackend",
    "SqliteBackend",
    "create_backend",
    # Query building and schema
    "ColumnSpec",
    "DefaultSpec",
    "IndexSpec",
    "Rule",
    "Select",
    "Table",
    # Records
    "BelongsTo",
    "Catalog",
    "Collection",
    "FieldAccessor",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "HasOneOrNull",
    "Model",
    "Record",
    "RecordStatus",
    "SaveResult",
    # Logging
    "configure_logging",
    "get_logger",
]
