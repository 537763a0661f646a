"""Merge-on-save for range set records.

Before a record is written, every row in the same scope that overlaps or
touches its interval is folded into a single surviving row:

1. rows intersecting ``enlarge(interval)`` are loaded (the record itself and
   rows without an interval are ignored);
2. their hull ``big`` is classified against the record's interval;
3. either the record swallows them all (``SUBSUMES``), or one matched row
   survives with the merged bounds and the record takes over its state.

The four legitimate shapes are exhaustive for well-formed data; anything
else is reported as ``DataCorruptionError`` and needs ``combine()``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rangeset.intervals import Interval, enlarge, next_start, prev_end
from rangeset.predicates import and_conditions, range_condition, scope_condition
from rangeset.records import IntervalRecord
from rangeset.store import RangeStore

log = logging.getLogger(__name__)


class DataCorruptionError(RuntimeError):
    """Raised when matched rows fit none of the merge shapes."""

    def __init__(self, table: str, candidate: Interval, matched: Interval) -> None:
        self.table = table
        self.candidate = candidate
        self.matched = matched
        super().__init__(
            f"Inconsistent ranges in {table}: matched rows span {matched}, "
            f"saved range is {candidate}. Run combine() to repair the table."
        )


class MergeShape(str, Enum):
    NONE = "none"  # no neighbours
    SUBSUMES = "subsumes"  # candidate covers every match
    FILLS_GAP = "fills_gap"  # matches already cover the candidate
    AUGMENT_RIGHT = "augment_right"
    AUGMENT_LEFT = "augment_left"
    INCONSISTENT = "inconsistent"


@dataclass(slots=True)
class MergeResult:
    shape: MergeShape
    survivor: IntervalRecord | None = None
    destroyed: int = 0

    @property
    def folded(self) -> bool:
        """True when the saved record now lives on as the survivor row."""
        return self.survivor is not None


def classify(candidate: Interval, big: Interval, precision: Any) -> MergeShape:
    """Relate a candidate interval to the hull of its matched neighbours."""
    if candidate.contains(big):
        return MergeShape.SUBSUMES
    if big.contains(candidate):
        return MergeShape.FILLS_GAP
    if (
        big.lower <= candidate.lower <= next_start(big, precision)
        and big.upper < candidate.upper
    ):
        return MergeShape.AUGMENT_RIGHT
    if (
        candidate.lower < big.lower
        and prev_end(big, precision) <= candidate.upper <= big.upper
    ):
        return MergeShape.AUGMENT_LEFT
    return MergeShape.INCONSISTENT


def merged_bounds(shape: MergeShape, candidate: Interval, big: Interval) -> Interval:
    if shape is MergeShape.SUBSUMES:
        return candidate
    if shape is MergeShape.FILLS_GAP:
        return big
    if shape is MergeShape.AUGMENT_RIGHT:
        return Interval(big.lower, candidate.upper)
    if shape is MergeShape.AUGMENT_LEFT:
        return Interval(candidate.lower, big.upper)
    raise ValueError(f"No merged bounds for shape {shape.value}")


def find_neighbours(store: RangeStore, record: IntervalRecord) -> list[IntervalRecord]:
    """Rows in the record's scope that overlap or touch its interval."""
    cfg = store.config
    window = enlarge(record.interval, cfg.precision)
    where = and_conditions(
        range_condition(cfg, window),
        scope_condition(cfg, record.scope_values(cfg)),
    )
    return [
        row
        for row in store.find(where)
        if row.id != record.id and row.interval is not None
    ]


def try_merge(store: RangeStore, record: IntervalRecord) -> MergeResult:
    """Fold overlapping/adjacent rows into one; see module docstring."""
    cfg = store.config
    record.mirror_bounds()
    candidate = record.interval
    if candidate is None:
        return MergeResult(MergeShape.NONE)

    others = find_neighbours(store, record)
    if not others:
        return MergeResult(MergeShape.NONE)

    big = Interval(min(row.lower for row in others), max(row.upper for row in others))
    shape = classify(candidate, big, cfg.precision)
    if shape is MergeShape.INCONSISTENT:
        raise DataCorruptionError(cfg.table, candidate, big)

    if shape is MergeShape.SUBSUMES:
        store.delete_ids(row.id for row in others)
        log.debug("%s: %s subsumes %d row(s)", cfg.table, candidate, len(others))
        return MergeResult(shape, destroyed=len(others))

    survivor, rest = others[0], others[1:]
    bounds = merged_bounds(shape, candidate, big)
    doomed = [row.id for row in rest]
    if record.persisted:
        doomed.append(record.id)
    store.delete_ids(doomed)
    if survivor.interval != bounds:
        survivor.set_interval(bounds)
        store.update(
            survivor.id,
            {cfg.from_column: bounds.lower, cfg.to_column: bounds.upper},
        )
    record.load(survivor)
    log.debug(
        "%s: %s merged into row %s as %s (%s)",
        cfg.table, candidate, survivor.id, bounds, shape.value,
    )
    return MergeResult(shape, survivor=survivor, destroyed=len(doomed))


def save(store: RangeStore, record: IntervalRecord) -> IntervalRecord:
    """Merge *record* with its neighbours, then persist whatever remains."""
    with store.transaction():
        result = try_merge(store, record)
        if result.folded:
            return record
        if record.persisted:
            store.write(record)
        else:
            record.id = store.insert(record)
    return record
