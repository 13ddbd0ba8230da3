"""
SQL package for tablemapper.

The SELECT builder, column specs, validators and the Table schema/validator.
"""

from tablemapper.sql.columns import ColumnSpec, DefaultSpec, IndexSpec, Rule
from tablemapper.sql.select import Select
from tablemapper.sql.table import Table

__all__ = [
    "ColumnSpec",
    "DefaultSpec",
    "IndexSpec",
    "Rule",
    "Select",
    "Table",
]
