"""Removing a value or sub-range from one record's interval."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rangeset.intervals import as_interval, next_start, prev_end
from rangeset.merge import save
from rangeset.records import IntervalRecord
from rangeset.store import RangeStore

log = logging.getLogger(__name__)


class DropOutcome(str, Enum):
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    TRIMMED = "trimmed"
    SPLIT = "split"


@dataclass(slots=True)
class DropResult:
    """Outcome of ``drop_range``.

    ``records`` holds the interval-holders left behind: the original record
    (one entry, also for ``REMOVED`` where its interval is now empty) or the
    original plus the new right-hand half for ``SPLIT``.
    """

    outcome: DropOutcome
    records: tuple[IntervalRecord, ...]
    destroyed: bool = False

    @property
    def record(self) -> IntervalRecord:
        return self.records[0]


def drop_range(store: RangeStore, record: IntervalRecord, value: Any) -> DropResult:
    """Remove *value* (scalar or Interval) from *record*'s interval.

    Persisted records are written back (or deleted) immediately; unsaved
    records are only changed in memory.
    """
    removal = as_interval(value)
    current = record.interval
    if removal is None or current is None:
        return DropResult(DropOutcome.UNCHANGED, (record,))
    if not (
        removal.contains(current.upper)
        or removal.contains(current.lower)
        or current.contains(removal)
    ):
        return DropResult(DropOutcome.UNCHANGED, (record,))

    cfg = store.config
    if removal.contains(current):
        record.set_interval(None)
        if not record.persisted:
            return DropResult(DropOutcome.REMOVED, (record,))
        store.delete(record.id)
        log.debug("%s: row %s exhausted by %s", cfg.table, record.id, removal)
        return DropResult(DropOutcome.REMOVED, (record,), destroyed=True)

    cut_from = max(removal.lower, current.lower)
    cut_to = min(removal.upper, current.upper)

    if cut_from > current.lower and cut_to < current.upper:
        other = record.clone()
        other.lower = next_start(cut_to, cfg.precision)
        record.upper = prev_end(cut_from, cfg.precision)
        if record.persisted:
            with store.transaction():
                save(store, record)
                save(store, other)
        log.debug("%s: %s split into %s and %s", cfg.table, current, record.interval, other.interval)
        return DropResult(DropOutcome.SPLIT, (record, other))

    if cut_from > current.lower:
        record.upper = prev_end(cut_from, cfg.precision)
    else:
        record.lower = next_start(cut_to, cfg.precision)
    if record.persisted:
        save(store, record)
    return DropResult(DropOutcome.TRIMMED, (record,))
