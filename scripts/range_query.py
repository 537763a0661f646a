#!/usr/bin/env python3
"""Inspect or edit a range set table from the command line.

Prints the matching rows as JSON.  ``--insert`` saves the given value/range
through the merge engine first; ``--drop`` removes it from every matching
row (trimming or splitting them).

Usage:
    python3 scripts/range_query.py --db ranges.duckdb --config blocks.json --value 42
    python3 scripts/range_query.py --db ranges.duckdb --config blocks.json \\
      --from 10 --to 20 --scope device_id=7
    python3 scripts/range_query.py --db ranges.duckdb --config blocks.json \\
      --from 10 --to 20 --scope device_id=7 --insert
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

import duckdb

from rangeset.config import RangeSetConfig, RangeSetConfigError, load_config
from rangeset.intervals import Interval
from rangeset.merge import DataCorruptionError
from rangeset.range_set import RangeSet
from rangeset.records import IntervalRecord
from rangeset.store import RangeStore

try:
    import orjson

    def dump_json(obj: Any, *, indent: bool) -> bytes:
        option = orjson.OPT_INDENT_2 if indent else 0
        return orjson.dumps(obj, option=option, default=str)
except ImportError:

    def dump_json(obj: Any, *, indent: bool) -> bytes:
        text = json.dumps(obj, indent=2 if indent else None, default=str)
        return text.encode("utf-8")


def _parse_scope(pairs: list[str]) -> dict[str, str]:
    scope: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"--scope expects key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        scope[key.strip()] = value.strip()
    return scope


def _constraint(args: argparse.Namespace, config: RangeSetConfig) -> Any:
    if args.value is not None:
        return config.parse_value(args.value)
    if args.from_value is not None or args.to_value is not None:
        lower = config.parse_value(args.from_value or args.to_value)
        upper = config.parse_value(args.to_value or args.from_value)
        return Interval(lower, upper)
    return None


def _record_json(record: IntervalRecord, config: RangeSetConfig) -> dict[str, Any]:
    return {
        config.id_column: record.id,
        config.from_column: record.lower,
        config.to_column: record.upper,
        **record.attributes,
    }


def _fail(exc: Exception, code: int) -> int:
    status = "corrupted" if isinstance(exc, DataCorruptionError) else "error"
    os.write(1, dump_json({"status": status, "error": str(exc)}, indent=False) + b"\n")
    return code


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Query or edit a range set table.")
    parser.add_argument("--db", required=True, help="Path to the DuckDB database.")
    parser.add_argument("--config", required=True, help="Path to the range set JSON config.")
    parser.add_argument("--value", default=None, help="Single value to look up.")
    parser.add_argument("--from", dest="from_value", default=None, help="Range start.")
    parser.add_argument("--to", dest="to_value", default=None, help="Range end.")
    parser.add_argument(
        "--scope",
        action="append",
        default=[],
        help="Scope/attribute filter as key=value (repeatable).",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--insert", action="store_true", help="Save the range before querying.")
    action.add_argument("--drop", action="store_true", help="Remove the range from matching rows.")
    parser.add_argument(
        "--create-if-missing",
        action="store_true",
        help="Create the database file when it does not exist.",
    )
    parser.add_argument("--compact", action="store_true", help="Emit compact JSON (single line).")
    args = parser.parse_args(argv)

    scope = _parse_scope(args.scope)
    try:
        config = load_config(Path(args.config))
        store = RangeStore(args.db, config, create_if_missing=args.create_if_missing)
    except (FileNotFoundError, RangeSetConfigError, duckdb.Error) as exc:
        return _fail(exc, 1)
    try:
        ranges = RangeSet(store)
        constraint = _constraint(args, config)
        if (args.insert or args.drop) and constraint is None:
            raise SystemExit("--insert/--drop need --value or --from/--to")
        if args.insert:
            ranges.create(constraint, **scope)
        elif args.drop:
            ranges.destroy_all({config.on: constraint, **scope})

        if constraint is None:
            rows = ranges.find(scope or None)
        else:
            rows = ranges.for_range(constraint, **scope)
        payload = {
            "table": config.table,
            "count": len(rows),
            "rows": [_record_json(row, config) for row in rows],
        }
    except DataCorruptionError as exc:
        return _fail(exc, 2)
    except (KeyError, ValueError, duckdb.Error) as exc:
        return _fail(exc, 1)
    finally:
        store.close()

    os.write(1, dump_json(payload, indent=not args.compact) + b"\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
