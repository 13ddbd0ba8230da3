"""
Content validators and the type checks used by ``Table._auto_valid``.

Every validator takes the (already recast) value first and returns a bool.
Rules on a column refer to validators by name; ``resolve`` turns a name (or a
callable) into the function to call and ``message_for`` supplies the default
failure text.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Optional, Union

from tablemapper.errors import ConfigurationError

INT_RANGES = {
    "smallint": (-(2**15), 2**15 - 1),
    "int": (-(2**31), 2**31 - 1),
    "bigint": (-(2**63), 2**63 - 1),
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z0-9-]{2,}$")
_WORD_RE = re.compile(r"^\w+$")
_ALNUM_RE = re.compile(r"^[A-Za-z0-9]+$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_ISO_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")


def not_blank(value: Any) -> bool:
    if value is None:
        return False
    return str(value).strip() != ""


def max_length(value: Any, size: int) -> bool:
    return len(str(value)) <= size


def min_length(value: Any, size: int) -> bool:
    return len(str(value)) >= size


def in_range(value: Any, low: Any, high: Any) -> bool:
    try:
        return low <= value <= high
    except TypeError:
        return False


def in_scope(value: Any, size: int, scope: int) -> bool:
    """
    True when the number fits a NUMERIC(size, scope) column.

    At most ``scope`` digits after the decimal point and ``size - scope``
    digits before it.
    """
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False
    if not number.is_finite():
        return False
    _, digits, exponent = number.normalize().as_tuple()
    decimals = max(0, -exponent)
    integers = max(0, len(digits) + exponent)
    if number == 0:
        integers = 0
    return decimals <= scope and integers <= size - scope


def in_list(value: Any, options: Iterable[Any]) -> bool:
    return value in list(options)


def regex(value: Any, pattern: str) -> bool:
    return re.search(pattern, str(value)) is not None


def email(value: Any) -> bool:
    return _EMAIL_RE.match(str(value)) is not None


def word(value: Any) -> bool:
    return _WORD_RE.match(str(value)) is not None


def alnum(value: Any) -> bool:
    return _ALNUM_RE.match(str(value)) is not None


def integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return re.match(r"^[+-]?\d+$", str(value).strip()) is not None


def iso_date(value: Any) -> bool:
    text = str(value)
    if not _ISO_DATE_RE.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def iso_time(value: Any) -> bool:
    text = str(value)
    if not _ISO_TIME_RE.match(text):
        return False
    try:
        time.fromisoformat(text)
    except ValueError:
        return False
    return True


def iso_timestamp(value: Any) -> bool:
    text = str(value)
    if not _ISO_TIMESTAMP_RE.match(text):
        return False
    try:
        datetime.strptime(text, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return False
    return True


VALIDATORS: Dict[str, Callable[..., bool]] = {
    "not_blank": not_blank,
    "max_length": max_length,
    "min_length": min_length,
    "in_range": in_range,
    "in_scope": in_scope,
    "in_list": in_list,
    "regex": regex,
    "email": email,
    "word": word,
    "alnum": alnum,
    "integer": integer,
    "iso_date": iso_date,
    "iso_time": iso_time,
    "iso_timestamp": iso_timestamp,
}

MESSAGES: Dict[str, str] = {
    "not_blank": "may not be blank",
    "max_length": "max length {0}",
    "min_length": "min length {0}",
    "in_range": "must be between {0} and {1}",
    "in_scope": "must have at most {0} digits with {1} decimal places",
    "in_list": "not an allowed value",
    "regex": "does not match the expected format",
    "email": "must be an email address",
    "word": "may only contain letters, digits and underscores",
    "alnum": "may only contain letters and digits",
    "integer": "must be an integer",
    "iso_date": "must be an ISO 8601 date (YYYY-MM-DD)",
    "iso_time": "must be an ISO 8601 time (HH:MM:SS)",
    "iso_timestamp": "must be an ISO 8601 timestamp (YYYY-MM-DDTHH:MM:SS)",
}

NOT_A_NUMBER = "must be a number"


def register(name: str, func: Callable[..., bool], message: Optional[str] = None) -> None:
    """Register a named validator for use in column and filter rules."""
    VALIDATORS[name] = func
    if message:
        MESSAGES[name] = message


def resolve(name: Union[str, Callable[..., bool]]) -> Callable[..., bool]:
    if callable(name):
        return name
    try:
        return VALIDATORS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown validator '{name}'") from None


def message_for(name: Union[str, Callable[..., bool]], args: Iterable[Any] = ()) -> str:
    if callable(name):
        return "is invalid"
    template = MESSAGES.get(name, "is invalid")
    return template.format(*args)


def check(name: Union[str, Callable[..., bool]], value: Any, *args: Any) -> bool:
    """Run one validator by name (or callable)."""
    return bool(resolve(name)(value, *args))


__all__ = [
    "INT_RANGES",
    "MESSAGES",
    "NOT_A_NUMBER",
    "VALIDATORS",
    "check",
    "message_for",
    "register",
    "resolve",
    "alnum",
    "email",
    "in_list",
    "in_range",
    "in_scope",
    "integer",
    "iso_date",
    "iso_time",
    "iso_timestamp",
    "max_length",
    "min_length",
    "not_blank",
    "regex",
    "word",
]
