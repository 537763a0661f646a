"""Inclusive intervals over ordered, steppable domains.

Bounds are plain Python values (``int``, ``float`` or ``datetime``); the step
size ("precision") is supplied by the caller and is ``int``/``float`` or
``timedelta`` accordingly.  Two intervals whose gap is at most one step are
treated as touching and therefore mergeable.

Functions:

* ``next_start`` / ``prev_end``: one step forward from an end, one step back
  from a start.
* ``enlarge``: the neighbour search window around an interval.
* ``as_interval``: normalize a bare value to a degenerate interval.
* ``midpoint`` / ``magnitude``: span arithmetic for the compaction pass.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any


@dataclass(frozen=True, slots=True)
class Interval:
    """Inclusive ``[lower, upper]`` range."""

    lower: Any
    upper: Any

    @classmethod
    def point(cls, value: Any) -> Interval:
        return cls(value, value)

    def contains(self, item: Any) -> bool:
        """True when *item* (scalar or Interval) lies entirely inside."""
        if isinstance(item, Interval):
            return self.lower <= item.lower and item.upper <= self.upper
        return self.lower <= item <= self.upper

    def overlaps(self, other: Interval) -> bool:
        return self.lower <= other.upper and other.lower <= self.upper

    def touches(self, other: Interval, precision: Any) -> bool:
        """Overlapping, or separated by a gap of at most *precision*."""
        if self.overlaps(other):
            return True
        if self.upper < other.lower:
            return other.lower - self.upper <= precision
        return self.lower - other.upper <= precision

    def length(self, precision: Any) -> Any:
        return self.upper - self.lower + precision

    def __str__(self) -> str:
        return f"{self.lower}..{self.upper}"


def next_start(value: Any, precision: Any) -> Any:
    """First position after *value* (or after an interval's upper bound)."""
    if value is None:
        return None
    if isinstance(value, Interval):
        return value.upper + precision
    return value + precision


def prev_end(value: Any, precision: Any) -> Any:
    """Last position before *value* (or before an interval's lower bound)."""
    if value is None:
        return None
    if isinstance(value, Interval):
        return value.lower - precision
    return value - precision


def enlarge(value: Any, precision: Any) -> Interval | None:
    """Window whose intersecting records overlap or touch *value*."""
    interval = as_interval(value)
    if interval is None:
        return None
    return Interval(prev_end(interval, precision), next_start(interval, precision))


def as_interval(value: Any) -> Interval | None:
    if value is None or isinstance(value, Interval):
        return value
    return Interval.point(value)


def midpoint(lower: Any, upper: Any) -> Any:
    span = upper - lower
    if isinstance(span, int):
        return lower + span // 2
    return lower + span / 2


def magnitude(delta: Any) -> int | float:
    """Comparable size of a domain difference (seconds for timedeltas).

    Integers stay integers so BIGINT-sized spans compare exactly.
    """
    if isinstance(delta, timedelta):
        return delta.total_seconds()
    if isinstance(delta, int):
        return delta
    return float(delta)
