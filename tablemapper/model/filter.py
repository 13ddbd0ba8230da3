"""
Record-level validation chain.

``FilterChain`` collects rules per field plus a required flag per field and
applies them to a record's column values. Unlike the table's write-path
checks, the chain runs on demand (``Record.filter()``) and only with the rules
the model and the record declare.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping

from tablemapper.sql import validators
from tablemapper.sql.columns import Rule, build_rules

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.model.record import Record


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class FilterChain:
    """Rules and required flags per field."""

    def __init__(self) -> None:
        self._rules: Dict[str, List[Rule]] = {}
        self._require: Dict[str, bool] = {}
        self._invalid: Dict[str, List[str]] = {}

    @classmethod
    def for_record(cls, record: "Record") -> "FilterChain":
        """
        The chain for one record.

        Model filters come first, then the record's own ``add_filter`` rules.
        Primary, autoincrement and sequence columns are never required; other
        columns follow their column spec.
        """
        model = record.model
        chain = cls()
        for col, rules in model.filters.items():
            chain.add_rules(col, build_rules(rules))
        for col, rules in record.get_filters().items():
            chain.add_rules(col, rules)
        for name, col in model.table_cols.items():
            if col.primary or col.autoincrement or name in model.sequence_cols:
                chain.set_require(name, False)
            else:
                chain.set_require(name, col.required)
        return chain

    def add_rules(self, col: str, rules: Iterable[Rule]) -> None:
        self._rules.setdefault(col, []).extend(rules)

    def set_require(self, col: str, flag: bool) -> None:
        self._require[col] = bool(flag)

    def apply(self, data: Mapping[str, Any]) -> bool:
        """Check every field; True when nothing failed."""
        self._invalid = {}
        for col in dict.fromkeys([*self._require, *self._rules]):
            value = data.get(col)
            if _blank(value):
                if self._require.get(col, False):
                    self._invalid.setdefault(col, []).append(validators.MESSAGES["not_blank"])
                continue
            for rule in self._rules.get(col, []):
                if not validators.check(rule.name, value, *rule.args):
                    self._invalid.setdefault(col, []).append(
                        rule.message or validators.message_for(rule.name, rule.args)
                    )
        return not self._invalid

    def get_invalid(self) -> Dict[str, List[str]]:
        return {col: list(messages) for col, messages in self._invalid.items()}


__all__ = ["FilterChain"]
