"""Per-model range set configuration.

A ``RangeSetConfig`` describes one table of interval records: which columns
hold the bounds, which columns partition the rows into independent scopes,
the adjacency step ("precision") and how the store may measure interval
length in SQL.  Configurations are immutable and passed explicitly to the
store; nothing is kept in module-level state.

JSON configuration files (used by the scripts) look like::

    {
      "table": "frames",
      "on": "time",
      "scope": ["movie_name"],
      "precision": 1,
      "domain": "timestamp",
      "columns": {"movie_name": "VARCHAR"}
    }
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

_orjson: Any
try:
    import orjson
    _orjson = orjson
except ImportError:
    _orjson = None


DOMAIN_SQL_TYPES: dict[str, str] = {
    "integer": "BIGINT",
    "double": "DOUBLE",
    "timestamp": "TIMESTAMP",
}

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RangeSetConfigError(ValueError):
    """Raised when a range set configuration is incomplete or invalid."""


def quote_ident(name: str) -> str:
    """Double-quote an already validated SQL identifier."""
    return f'"{name}"'


@dataclass(frozen=True, slots=True)
class RangeSetConfig:
    """Column layout, scoping and precision for one range set table."""

    table: str
    on: str
    scope: tuple[str, ...] = ()
    precision: Any = 1
    domain: str = "integer"
    from_column: str = ""
    to_column: str = ""
    id_column: str = "id"
    columns: dict[str, str] = field(default_factory=dict)
    aggregate_length: bool = True
    length_expr: str | None = None

    def __post_init__(self) -> None:
        if not self.on:
            raise RangeSetConfigError("You need to specify 'on'")
        if isinstance(self.scope, str):
            object.__setattr__(self, "scope", (self.scope,))
        else:
            object.__setattr__(self, "scope", tuple(self.scope))
        if not self.from_column:
            object.__setattr__(self, "from_column", f"from_{self.on}")
        if not self.to_column:
            object.__setattr__(self, "to_column", f"to_{self.on}")
        if self.domain not in DOMAIN_SQL_TYPES:
            raise RangeSetConfigError(
                f"Unknown domain {self.domain!r}; expected one of {sorted(DOMAIN_SQL_TYPES)}"
            )
        if self.domain == "timestamp" and not isinstance(self.precision, timedelta):
            object.__setattr__(self, "precision", timedelta(seconds=self.precision))
        if self.precision_magnitude <= 0:
            raise RangeSetConfigError(f"precision must be positive, got {self.precision!r}")

        columns = dict(self.columns)
        for name in self.scope:
            columns.setdefault(name, "VARCHAR")
        object.__setattr__(self, "columns", columns)

        names = [self.table, self.on, self.from_column, self.to_column, self.id_column]
        for name in [*names, *columns]:
            if not _IDENT_RE.match(name):
                raise RangeSetConfigError(f"Not a plain SQL identifier: {name!r}")
        reserved = {self.from_column, self.to_column, self.id_column}
        clash = reserved.intersection(columns)
        if clash:
            raise RangeSetConfigError(f"Attribute columns clash with range columns: {sorted(clash)}")

    # ─── Derived values ───────────────────────────────────────────

    @property
    def precision_magnitude(self) -> float:
        if isinstance(self.precision, timedelta):
            return self.precision.total_seconds()
        return float(self.precision)

    @property
    def bound_sql_type(self) -> str:
        return DOMAIN_SQL_TYPES[self.domain]

    @property
    def attribute_columns(self) -> tuple[str, ...]:
        return tuple(self.columns)

    def length_sql(self) -> str | None:
        """SQL expression measuring one row's length, or None (no fast path)."""
        if not self.aggregate_length:
            return None
        if self.length_expr:
            return self.length_expr
        lo = quote_ident(self.from_column)
        hi = quote_ident(self.to_column)
        if self.domain == "timestamp":
            return f"(epoch({hi}) - epoch({lo}) + {self.precision_magnitude!r})"
        return f"({hi} - {lo} + {self.precision!r})"

    def parse_value(self, text: str) -> Any:
        """Convert a command-line string into a bound value for this domain."""
        raw = text.strip()
        if self.domain == "integer":
            return int(raw)
        if self.domain == "double":
            return float(raw)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).replace(tzinfo=None)

    # ─── Construction ─────────────────────────────────────────────

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> RangeSetConfig:
        known = {
            "table", "on", "scope", "precision", "domain", "from_column",
            "to_column", "id_column", "columns", "aggregate_length", "length_expr",
        }
        unknown = set(data) - known
        if unknown:
            raise RangeSetConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        if "table" not in data or "on" not in data:
            raise RangeSetConfigError("Configuration requires 'table' and 'on'")
        return cls(**data)


def load_config(path: Path) -> RangeSetConfig:
    """Load a JSON configuration file (orjson with stdlib fallback)."""
    raw = path.read_bytes()
    data = _orjson.loads(raw) if _orjson is not None else json.loads(raw)
    if not isinstance(data, dict):
        raise RangeSetConfigError(f"Configuration in {path} must be a JSON object")
    return RangeSetConfig.from_mapping(data)
