#!/usr/bin/env python3
"""Repair a range set table: merge overlapping and adjacent rows.

Run after bulk loads or migrations that wrote rows without going through
the merge engine.  Prints a JSON report of what changed.

Usage:
    python3 scripts/combine_ranges.py --db ranges.duckdb --config frames.json

    # Skip the overlap self-join (gap closing only)
    python3 scripts/combine_ranges.py --db ranges.duckdb --config frames.json \\
      --no-overlap-check
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import duckdb

from rangeset.config import RangeSetConfigError, load_config
from rangeset.merge import DataCorruptionError
from rangeset.range_set import RangeSet
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


log = logging.getLogger("combine_ranges")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Merge overlapping/adjacent ranges in place.")
    parser.add_argument("--db", required=True, help="Path to the DuckDB database.")
    parser.add_argument("--config", required=True, help="Path to the range set JSON config.")
    parser.add_argument(
        "--no-overlap-check",
        action="store_true",
        help="Skip the overlap pass and only close gaps.",
    )
    parser.add_argument("--compact", action="store_true", help="Emit compact JSON (single line).")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    started = datetime.now(UTC)
    try:
        config = load_config(Path(args.config))
        store = RangeStore(args.db, config)
    except (FileNotFoundError, RangeSetConfigError, duckdb.Error) as exc:
        log.error("%s", exc)
        os.write(1, dump_json({"status": "error", "error": str(exc)}, indent=False) + b"\n")
        return 1

    try:
        report = RangeSet(store).combine(check_overlap=not args.no_overlap_check)
    except DataCorruptionError as exc:
        log.error("%s", exc)
        payload = {
            "status": "corrupted",
            "table": exc.table,
            "error": str(exc),
            "candidate": [exc.candidate.lower, exc.candidate.upper],
            "matched": [exc.matched.lower, exc.matched.upper],
        }
        os.write(1, dump_json(payload, indent=not args.compact) + b"\n")
        return 2
    except duckdb.Error as exc:
        log.error("%s", exc)
        os.write(1, dump_json({"status": "error", "error": str(exc)}, indent=False) + b"\n")
        return 1
    finally:
        store.close()

    payload = {
        "status": "ok",
        "generated_at": started.isoformat(),
        "db_path": args.db,
        "check_overlap": not args.no_overlap_check,
        "report": report.to_dict(),
    }
    os.write(1, dump_json(payload, indent=not args.compact) + b"\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
