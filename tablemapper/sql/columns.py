"""
Column, index and default-value specs.

Declarations on a model are loose (plain dicts, bare scalars, rule names);
these pydantic models normalize them into one fully populated form before the
table reads or writes anything.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as SchemaError, field_validator

from tablemapper.errors import ConfigurationError

ColumnType = Literal[
    "bool",
    "char",
    "varchar",
    "smallint",
    "int",
    "bigint",
    "float",
    "numeric",
    "date",
    "time",
    "timestamp",
    "clob",
]

ISO_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def now_iso() -> str:
    """Current local time as `YYYY-MM-DDTHH:MM:SS`."""
    return datetime.now().strftime(ISO_TIMESTAMP_FORMAT)


class DefaultSpec(BaseModel):
    """A column default: a literal value, or a callback invoked per row."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: Literal["literal", "callback"] = "literal"
    value: Any = None
    func: Optional[Callable[..., Any]] = None
    args: Tuple[Any, ...] = ()

    @classmethod
    def literal(cls, value: Any) -> "DefaultSpec":
        return cls(kind="literal", value=value)

    @classmethod
    def callback(cls, func: Callable[..., Any], *args: Any) -> "DefaultSpec":
        return cls(kind="callback", func=func, args=args)

    def resolve(self) -> Any:
        if self.kind == "callback":
            if self.func is None:
                raise ConfigurationError("Callback default without a function")
            return self.func(*self.args)
        return self.value


class Rule(BaseModel):
    """
    One content-validation rule.

    ``name`` is a registered validator name (see ``tablemapper.sql.validators``)
    or any callable taking the value followed by ``args``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: Union[str, Callable[..., bool]]
    args: Tuple[Any, ...] = ()
    message: Optional[str] = None


def _coerce_rule(item: Any) -> Any:
    if isinstance(item, (Rule, dict)):
        return item
    if isinstance(item, tuple):
        return {"name": item[0], "args": tuple(item[1:])}
    return {"name": item}


def coerce_rules(value: Any) -> List[Any]:
    """Normalize a single rule, a rule tuple or a list of them into a list."""
    if value is None:
        return []
    if isinstance(value, (str, tuple, dict, Rule)) or callable(value):
        value = [value]
    return [_coerce_rule(item) for item in value]


def build_rules(value: Any) -> List[Rule]:
    """Rules from a loose declaration (name, callable, tuple, dict or list)."""
    return [item if isinstance(item, Rule) else Rule(**item) for item in coerce_rules(value)]


class ColumnSpec(BaseModel):
    """Full metadata for one column."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    type: ColumnType
    size: Optional[int] = None
    scope: Optional[int] = None
    required: bool = False
    primary: bool = False
    autoincrement: bool = False
    default: DefaultSpec = Field(default_factory=DefaultSpec)
    valid: List[Rule] = Field(default_factory=list)

    @field_validator("default", mode="before")
    @classmethod
    def _literal_default(cls, value: Any) -> Any:
        if isinstance(value, DefaultSpec):
            return value
        if isinstance(value, dict) and "kind" in value:
            return value
        return {"kind": "literal", "value": value}

    @field_validator("valid", mode="before")
    @classmethod
    def _rule_list(cls, value: Any) -> Any:
        return coerce_rules(value)


class IndexSpec(BaseModel):
    """An index: its kind and the columns it covers (default: the index name)."""

    type: Literal["unique", "normal"] = "normal"
    cols: List[str] = Field(default_factory=list)


def build_column(name: str, info: Union[ColumnSpec, Mapping[str, Any]]) -> ColumnSpec:
    """
    Build a ColumnSpec from a loose declaration.

    Raises
    ------
    ConfigurationError
        If the declaration is incomplete or malformed.
    """
    if isinstance(info, ColumnSpec):
        return info.model_copy(update={"name": name})
    try:
        return ColumnSpec(**{**dict(info), "name": name})
    except SchemaError as exc:
        raise ConfigurationError(f"Column '{name}' is malformed: {exc}") from exc


def build_index(name: str, info: Union[str, IndexSpec, Mapping[str, Any]]) -> IndexSpec:
    """Build an IndexSpec from `"unique"`, `"normal"` or a mapping."""
    if isinstance(info, IndexSpec):
        return info
    if isinstance(info, str):
        info = {"type": info}
    try:
        spec = IndexSpec(**dict(info))
    except SchemaError as exc:
        raise ConfigurationError(f"Index '{name}' is malformed: {exc}") from exc
    if not spec.cols:
        spec = spec.model_copy(update={"cols": [name]})
    return spec


def auto_columns() -> Dict[str, Dict[str, Any]]:
    """The columns every table carries unless it declares them itself."""
    return {
        "id": {
            "type": "int",
            "primary": True,
            "required": True,
            "autoincrement": True,
        },
        "created": {"type": "timestamp", "default": DefaultSpec.callback(now_iso)},
        "updated": {"type": "timestamp", "default": DefaultSpec.callback(now_iso)},
    }


AUTO_INDEXES = {"id": "unique", "created": "normal", "updated": "normal"}


__all__ = [
    "AUTO_INDEXES",
    "ColumnSpec",
    "ColumnType",
    "DefaultSpec",
    "ISO_TIMESTAMP_FORMAT",
    "IndexSpec",
    "Rule",
    "auto_columns",
    "build_column",
    "build_index",
    "build_rules",
    "coerce_rules",
    "now_iso",
]
