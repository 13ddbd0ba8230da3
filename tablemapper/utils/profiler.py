"""
Statement profiling utilities for tablemapper.

Backends wrap every statement they run in ``profile_block`` and, when
profiling is switched on, keep the resulting ``ProfileStats`` so callers can
inspect what was sent to the database and how long it took. The test-suite
uses the profile length to prove that eager loading issues a fixed number of
queries.

Usage examples:
    from tablemapper.utils.profiler import profile_block

    with profile_block("SELECT 1") as stats:
        cursor.execute("SELECT 1")

    print(stats.label, stats.duration_ms)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ProfileStats:
    """
    Container for one timed block.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    failed: bool = field(default=False)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return round(self.duration_seconds * 1000.0, 3)


@contextlib.contextmanager
def profile_block(label: str, **extra: Any) -> Generator[ProfileStats, None, None]:
    """
    Context manager to time a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block (backends pass the SQL).
    **extra
        Arbitrary values stored on the stats (e.g., bound parameters).

    Notes
    -----
    An exception escaping the block marks the stats as failed and is re-raised
    unchanged.
    """
    stats = ProfileStats(label=label, extra=dict(extra))
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    except BaseException:
        stats.failed = True
        raise
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts


def profile_function(
    label: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., tuple[T, ProfileStats]]]:
    """
    Decorator that times a function call and returns ``(result, stats)``.

    Example
    -------
        @profile_function("fetch-page")
        def load_page():
            return model.fetch_all(page=2)

        collection, stats = load_page()
    """

    def decorator(func: Callable[..., T]) -> Callable[..., tuple[T, ProfileStats]]:
        def wrapper(*args: Any, **kwargs: Any) -> tuple[T, ProfileStats]:
            tag = label or func.__name__
            with profile_block(tag) as stats:
                result = func(*args, **kwargs)
            return result, stats

        return wrapper

    return decorator


__all__ = ["ProfileStats", "profile_block", "profile_function"]
