"""Model-level entry point for a range set table.

``RangeSet`` bundles a store (and its configuration) with the merge, split
and repair engines::

    config = RangeSetConfig(table="frames", on="time", scope=("movie",),
                            domain="timestamp")
    store = RangeStore("frames.duckdb", config, create_if_missing=True)
    frames = RangeSet(store)
    frames.create(Interval(t0, t1), movie="Very Scary Movie")
    frames.create(Interval(t1, t2), movie="Very Scary Movie")   # merged
    frames.for_range(t1, movie="Very Scary Movie")              # one row

Conditions mappings passed to ``find``/``count``/``destroy_all`` may use the
``on`` name as a key; its value is a scalar, an ``Interval`` or ``None``
(rows without an interval).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from rangeset.compactor import CombineReport, combine
from rangeset.config import RangeSetConfig
from rangeset.merge import save
from rangeset.predicates import and_conditions, conditions_for, range_condition
from rangeset.records import IntervalRecord
from rangeset.split import DropResult, drop_range
from rangeset.store import RangeStore

log = logging.getLogger(__name__)


class RangeSet:
    """Range-aware CRUD over one table."""

    def __init__(self, store: RangeStore) -> None:
        self._store = store

    @property
    def store(self) -> RangeStore:
        return self._store

    @property
    def config(self) -> RangeSetConfig:
        return self._store.config

    # ─── Building and saving ──────────────────────────────────────

    def new(self, value: Any = None, **attributes: Any) -> IntervalRecord:
        """Unsaved record; every configured column starts out as None."""
        unknown = set(attributes) - set(self.config.columns)
        if unknown:
            raise KeyError(f"Unknown columns for {self.config.table}: {sorted(unknown)}")
        record = IntervalRecord(
            attributes={name: attributes.get(name) for name in self.config.columns},
        )
        record.set_interval(value)
        return record

    def create(self, value: Any = None, **attributes: Any) -> IntervalRecord:
        return self.save(self.new(value, **attributes))

    def save(self, record: IntervalRecord) -> IntervalRecord:
        return save(self._store, record)

    def drop_range(self, record: IntervalRecord, value: Any) -> DropResult:
        return drop_range(self._store, record, value)

    def destroy(self, record: IntervalRecord) -> None:
        if record.persisted:
            self._store.delete(record.id)

    # ─── Finding ──────────────────────────────────────────────────

    def find(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        order_by: str = "from",
        descending: bool = False,
        limit: int | None = None,
    ) -> list[IntervalRecord]:
        return self._store.find(
            conditions_for(self.config, where),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    def for_range(self, constraint: Any, **where: Any) -> list[IntervalRecord]:
        """Rows whose interval contains/overlaps *constraint*, plus equality filters."""
        return self._store.find(
            and_conditions(
                range_condition(self.config, constraint),
                conditions_for(self.config, where),
            )
        )

    def get(self, record_id: Any) -> IntervalRecord | None:
        return self._store.get(record_id)

    def reload(self, record: IntervalRecord) -> IntervalRecord:
        fresh = self._store.get(record.id) if record.persisted else None
        if fresh is None:
            raise LookupError(f"{self.config.table} row {record.id!r} no longer exists")
        record.load(fresh)
        return record

    def count(self, where: Mapping[str, Any] | None = None) -> int:
        return self._store.count(conditions_for(self.config, where))

    def first(self, where: Mapping[str, Any] | None = None) -> IntervalRecord | None:
        rows = self.find(where, limit=1)
        return rows[0] if rows else None

    def last(self, where: Mapping[str, Any] | None = None) -> IntervalRecord | None:
        rows = self.find(where, descending=True, limit=1)
        return rows[0] if rows else None

    # ─── Bulk operations ──────────────────────────────────────────

    def destroy_all(self, where: Mapping[str, Any] | None = None) -> int:
        """Delete matching rows, or drop the given range from each of them.

        When *where* carries the range key, matching rows only lose the
        requested range (trimmed or split).  Returns the number of rows
        touched.
        """
        rows = self.find(where)
        if where and where.get(self.config.on) is not None:
            removal = where[self.config.on]
            with self._store.transaction():
                for record in rows:
                    self.drop_range(record, removal)
            log.debug("%s: dropped %s from %d row(s)", self.config.table, removal, len(rows))
            return len(rows)
        with self._store.transaction():
            self._store.delete_ids(record.id for record in rows)
        return len(rows)

    def delete_all(self) -> int:
        return self._store.delete_where()

    def combine(self, *, check_overlap: bool = True) -> CombineReport:
        """Repair overlapping/adjacent rows left by bulk loads or migrations."""
        return combine(self._store, check_overlap=check_overlap)
