"""
Exception hierarchy for tablemapper.

Every error raised by the data-mapping core derives from TableMapperError so
callers can catch the whole family at one boundary. Errors carry structured
attributes (field messages, SQL text, backend diagnostics) instead of codes.
"""

from __future__ import annotations

from typing import Dict, List, Optional


class TableMapperError(Exception):
    """Base class for all tablemapper errors."""


class ConfigurationError(TableMapperError):
    """Raised when a model, table or backend is declared inconsistently."""


class ValidationError(TableMapperError):
    """
    Aggregate validation failure.

    Always describes a whole batch of fields, never a single field in isolation.

    Attributes
    ----------
    invalid : dict[str, list[str]]
        Field name mapped to the list of failure messages for that field.
    """

    def __init__(self, invalid: Dict[str, List[str]], message: str = "Invalid data") -> None:
        self.invalid = {key: list(messages) for key, messages in invalid.items()}
        fields = ", ".join(sorted(self.invalid))
        super().__init__(f"{message}: {fields}" if fields else message)


class QueryFailedError(TableMapperError):
    """
    A statement failed at the database.

    Attributes
    ----------
    sql : str | None
        The statement that was sent to the backend.
    native_text : str
        The backend's own diagnostic text.
    """

    def __init__(self, native_text: str, sql: Optional[str] = None) -> None:
        self.sql = sql
        self.native_text = native_text
        super().__init__(native_text)


class DeletedRecordError(TableMapperError):
    """Raised by any record accessor or mutator once the record is deleted."""


class NoSuchFieldError(TableMapperError, AttributeError):
    """Raised when a record is asked for a field it does not have."""

    def __init__(self, model_name: str, field: str) -> None:
        self.model_name = model_name
        self.field = field
        super().__init__(f"'{model_name}' records have no field '{field}'")

    def __str__(self) -> str:
        return self.args[0]


class UnknownRelationError(ConfigurationError):
    """Raised when a model is asked for a relation it does not declare."""


__all__ = [
    "TableMapperError",
    "ConfigurationError",
    "ValidationError",
    "QueryFailedError",
    "DeletedRecordError",
    "NoSuchFieldError",
    "UnknownRelationError",
]
