"""
Utilities package for tablemapper.

Exports shared helpers for logging and statement profiling.
Keep this package lightweight and free of data-mapping logic.
"""

from tablemapper.utils.logging import configure_logging, get_logger
from tablemapper.utils.profiler import ProfileStats, profile_block, profile_function

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
    "profile_function",
]
