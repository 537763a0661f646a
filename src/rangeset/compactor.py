"""Repair pass restoring the range set invariants across a whole table.

Intended for tables that were bulk-loaded or migrated without going through
``merge.save``.  For each scope:

1. **Overlap pass**: rows that genuinely overlap another row are re-saved,
   which lets the merge engine fold the overlapping neighbours in.  Repeated
   until the self-join finds nothing, so chains of overlaps converge.
2. **Gap-closing pass**: the scope's ``[MIN(from), MAX(to)]`` span is
   checked with one aggregate query.  Summed lengths below the hull length
   prove a hole; otherwise the span's rows are walked in ``from`` order and
   collapse to a single row in one transaction when no gap exceeds the
   precision.  Spans with a hole are bisected and both halves are checked
   the same way.  Without a length expression every row of the span is
   re-saved instead (full scan).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from rangeset.intervals import Interval, magnitude, midpoint, prev_end
from rangeset.merge import save
from rangeset.predicates import Condition, and_conditions, range_condition, scope_condition
from rangeset.store import RangeStore

log = logging.getLogger(__name__)

_ROUNDING = 1e-9


@dataclass(slots=True)
class CombineReport:
    """Counters describing what one ``combine`` call changed."""

    table: str
    scopes: int = 0
    overlap_passes: int = 0
    overlap_resaves: int = 0
    spans_checked: int = 0
    spans_bisected: int = 0
    spans_collapsed: int = 0
    full_scan_spans: int = 0
    rows_deleted: int = 0
    rows_before: int = 0
    rows_after: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def combine(store: RangeStore, *, check_overlap: bool = True) -> CombineReport:
    """Merge overlapping and adjacent rows in every scope of the table."""
    report = CombineReport(table=store.config.table, rows_before=store.count())
    for scope in store.distinct_scopes():
        report.scopes += 1
        combine_scope(store, scope, check_overlap=check_overlap, report=report)
    report.rows_after = store.count()
    log.info(
        "%s: combined %d scope(s), %d -> %d rows",
        report.table, report.scopes, report.rows_before, report.rows_after,
    )
    return report


def combine_scope(
    store: RangeStore,
    scope: Mapping[str, Any] | None,
    *,
    check_overlap: bool = True,
    report: CombineReport | None = None,
) -> CombineReport:
    if report is None:
        report = CombineReport(table=store.config.table)
    if check_overlap:
        resolve_overlaps(store, scope, report)
    scope_where = scope_condition(store.config, scope)
    min_from, max_to = store.bounds(scope_where)
    if min_from is None or max_to is None:
        return report
    split_combine(store, scope_where, min_from, max_to, report)
    return report


def resolve_overlaps(
    store: RangeStore,
    scope: Mapping[str, Any] | None,
    report: CombineReport,
) -> None:
    # Every productive re-save deletes at least one row, so this terminates.
    while True:
        collisions = store.overlapping_ids(scope)
        if not collisions:
            return
        report.overlap_passes += 1
        log.debug(
            "%s: overlap pass %d, %d colliding row(s)",
            report.table, report.overlap_passes, len(collisions),
        )
        for record_id in collisions:
            record = store.get(record_id)
            if record is None or record.interval is None:
                continue
            save(store, record)
            report.overlap_resaves += 1


def split_combine(
    store: RangeStore,
    scope_where: Condition,
    min_from: Any,
    max_from: Any,
    report: CombineReport,
) -> None:
    """Divide-and-conquer gap closing over ``[min_from, max_from]``."""
    cfg = store.config
    step = magnitude(cfg.precision)
    pending = [(min_from, max_from)]
    while pending:
        lo, hi = pending.pop()
        if lo > prev_end(hi, cfg.precision):
            continue
        where = and_conditions(range_condition(cfg, Interval(lo, hi)), scope_where)
        report.spans_checked += 1

        if not store.supports_length_aggregate:
            _resave_span(store, where, report)
            continue

        agg = store.aggregate(where)
        if agg is None:
            continue
        # Adjacent rows sum to at least the hull length; any real gap below it.
        want = magnitude(agg.max_to - agg.min_from + cfg.precision)
        have = magnitude(agg.total_length)
        if not _exceeds(want, have) and _collapse_span(store, where, report):
            continue

        if magnitude(hi - lo) <= step:
            continue
        mid = midpoint(lo, hi)
        report.spans_bisected += 1
        # left half first: it may grow into the right one
        pending.append((mid, hi))
        pending.append((lo, mid))


def _exceeds(a: Any, b: Any) -> bool:
    """``a > b``, exact for integers and allowing float rounding otherwise."""
    if isinstance(a, int) and isinstance(b, int):
        return a > b
    return a - b > _ROUNDING * max(1.0, abs(a), abs(b))


def _collapse_span(store: RangeStore, where: Condition, report: CombineReport) -> bool:
    """Fold the span's rows into one; False if they are not all adjacent."""
    cfg = store.config
    step = magnitude(cfg.precision)
    rows = store.find(where)
    if len(rows) <= 1:
        return True
    reach = rows[0].upper
    for row in rows[1:]:
        if _exceeds(magnitude(row.lower - reach), step):
            return False
        reach = max(reach, row.upper)
    span = Interval(min(r.lower for r in rows), max(r.upper for r in rows))
    winner = max(rows, key=lambda r: r.upper)
    losers = [r.id for r in rows if r.id != winner.id]
    with store.transaction():
        store.delete_ids(losers)
        store.update(winner.id, {cfg.from_column: span.lower, cfg.to_column: span.upper})
    report.spans_collapsed += 1
    report.rows_deleted += len(losers)
    log.debug("%s: collapsed %d row(s) into row %s as %s", cfg.table, len(rows), winner.id, span)
    return True


def _resave_span(store: RangeStore, where: Condition, report: CombineReport) -> None:
    # No length aggregate: let the merge engine coalesce row by row.
    report.full_scan_spans += 1
    before = store.count(where)
    for row in store.find(where):
        record = store.get(row.id)
        if record is None:
            continue
        save(store, record)
    report.rows_deleted += max(before - store.count(where), 0)
