"""In-memory representation of one persisted interval row."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from rangeset.config import RangeSetConfig
from rangeset.intervals import Interval


@dataclass(slots=True)
class IntervalRecord:
    """One row: store identity, inclusive bounds and the remaining columns.

    ``attributes`` holds scope values and any extra columns keyed by column
    name.  ``lower``/``upper`` are both ``None`` when the record carries no
    interval.
    """

    lower: Any = None
    upper: Any = None
    attributes: dict[str, Any] = field(default_factory=dict)
    id: Any = None

    @property
    def interval(self) -> Interval | None:
        if self.lower is None or self.upper is None:
            return None
        return Interval(self.lower, self.upper)

    @property
    def persisted(self) -> bool:
        return self.id is not None

    def set_interval(self, value: Any) -> None:
        """Assign an Interval, a bare value (both bounds) or None (clear)."""
        if isinstance(value, Interval):
            self.lower, self.upper = value.lower, value.upper
        else:
            self.lower = self.upper = value

    def mirror_bounds(self) -> None:
        """Copy a lone bound onto the missing one."""
        if self.lower is None and self.upper is not None:
            self.lower = self.upper
        elif self.upper is None and self.lower is not None:
            self.upper = self.lower

    def scope_values(self, config: RangeSetConfig) -> dict[str, Any]:
        return {name: self.attributes.get(name) for name in config.scope}

    def clone(self) -> IntervalRecord:
        """Unsaved copy carrying every attribute of this record."""
        return IntervalRecord(
            lower=self.lower,
            upper=self.upper,
            attributes=copy.deepcopy(self.attributes),
        )

    def load(self, other: IntervalRecord) -> None:
        """Take over *other*'s identity and state."""
        self.id = other.id
        self.lower = other.lower
        self.upper = other.upper
        self.attributes = copy.deepcopy(other.attributes)

    def to_row(self, config: RangeSetConfig) -> dict[str, Any]:
        unknown = set(self.attributes) - set(config.columns)
        if unknown:
            raise KeyError(f"Unknown columns for {config.table}: {sorted(unknown)}")
        row = {config.from_column: self.lower, config.to_column: self.upper}
        row.update(self.attributes)
        return row

    @classmethod
    def from_row(cls, config: RangeSetConfig, row: dict[str, Any]) -> IntervalRecord:
        attributes = {
            key: value
            for key, value in row.items()
            if key not in (config.id_column, config.from_column, config.to_column)
        }
        return cls(
            lower=row.get(config.from_column),
            upper=row.get(config.to_column),
            attributes=attributes,
            id=row.get(config.id_column),
        )
