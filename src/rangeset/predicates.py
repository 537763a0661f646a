"""Translate range constraints and scopes into SQL predicates.

Every builder returns ``(sql_fragment, params)`` where *sql_fragment* is a
parenthesised boolean expression and *params* are the positional ``?`` bind
values, so fragments compose with ``and_conditions``.

Range constraints:

* a bare value      → rows whose interval contains it;
* an ``Interval``   → rows whose interval overlaps it;
* ``None``          → rows without an interval.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rangeset.config import RangeSetConfig, quote_ident
from rangeset.intervals import Interval

Condition = tuple[str, list[Any]]

TRUE_CONDITION: Condition = ("(1=1)", [])


def range_condition(config: RangeSetConfig, constraint: Any) -> Condition:
    lo = quote_ident(config.from_column)
    hi = quote_ident(config.to_column)
    if isinstance(constraint, Interval):
        return (
            f"(({lo} BETWEEN ? AND ?) OR (? BETWEEN {lo} AND {hi}))",
            [constraint.lower, constraint.upper, constraint.lower],
        )
    if constraint is not None:
        return (f"(? BETWEEN {lo} AND {hi})", [constraint])
    return (f"({lo} IS NULL AND {hi} IS NULL)", [])


def equality_condition(column: str, value: Any) -> Condition:
    col = quote_ident(column)
    if value is None:
        return (f"({col} IS NULL)", [])
    return (f"({col} = ?)", [value])


def scope_condition(config: RangeSetConfig, scope: Mapping[str, Any] | None) -> Condition:
    """Equality on every configured scope column; vacuously true when unscoped."""
    if not config.scope:
        return TRUE_CONDITION
    values = scope or {}
    return and_conditions(
        *(equality_condition(name, values.get(name)) for name in config.scope)
    )


def and_conditions(*parts: Condition) -> Condition:
    fragments: list[str] = []
    params: list[Any] = []
    for sql, part_params in parts:
        if sql == TRUE_CONDITION[0]:
            continue
        fragments.append(sql)
        params.extend(part_params)
    if not fragments:
        return TRUE_CONDITION
    return ("(" + " AND ".join(fragments) + ")", params)


def conditions_for(config: RangeSetConfig, where: Mapping[str, Any] | None) -> Condition:
    """Rewrite a conditions mapping; the ``on`` key becomes a range predicate."""
    if not where:
        return TRUE_CONDITION
    parts: list[Condition] = []
    for key, value in where.items():
        if key == config.on:
            parts.append(range_condition(config, value))
        elif key in config.columns or key == config.id_column:
            parts.append(equality_condition(key, value))
        else:
            raise KeyError(f"Unknown column for {config.table}: {key!r}")
    return and_conditions(*parts)
