"""
Pure aggregation formulas shared by every progress and grade statistic.

Rounding is half-up (2.5 -> 3), matching what the dashboards have always
shown; Python's built-in ``round`` rounds half to even and must not be used
here.
"""
import math
from typing import Any, Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")

PLACEHOLDER = "Tidak diketahui"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_percent(value: float) -> int:
    return max(0, min(100, int(value)))


def percentage(done: int, total: int) -> int:
    """
    Share of ``done`` over ``total`` as a whole percent in [0, 100].

    A zero (or negative) total yields 0 rather than raising.
    """
    if total <= 0:
        return 0
    return clamp_percent(round_half_up(done / total * 100))


def average(values: Iterable[Optional[float]]) -> int:
    """Rounded mean of the non-null values; 0 when nothing is left."""
    present = [v for v in values if v is not None]
    if not present:
        return 0
    return round_half_up(sum(present) / len(present))


def overall_progress(tugas_percent: float, materi_percent: float) -> int:
    return round_half_up((clamp_percent(tugas_percent) + clamp_percent(materi_percent)) / 2)


def unique_by_id(items: Iterable[T], key: Callable[[T], Any] = None) -> List[T]:
    """Drops repeated ids, keeping the first occurrence and the input order."""
    if key is None:
        key = _default_id
    seen = set()
    result = []
    for item in items:
        item_id = key(item)
        if item_id in seen:
            continue
        seen.add(item_id)
        result.append(item)
    return result


def _default_id(item):
    if isinstance(item, dict):
        return item["id"]
    return item.id


def label(value: Optional[str]) -> str:
    return value if value else PLACEHOLDER
