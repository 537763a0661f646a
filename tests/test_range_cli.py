"""Tests for the combine_ranges.py and range_query.py scripts."""
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

from rangeset.config import load_config
from rangeset.intervals import Interval
from rangeset.records import IntervalRecord
from rangeset.store import RangeStore

ROOT = Path(__file__).resolve().parents[1]


def _run(script: str, args: list[str]) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(ROOT / "src")
    return subprocess.run(
        [sys.executable, str(ROOT / "scripts" / script), *args],
        cwd=str(ROOT),
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "blocks.json"
    path.write_text(json.dumps({"table": "blocks", "on": "block", "scope": ["device_id"]}))
    return path


def _seed(db: Path, config_path: Path, rows: list[tuple[int, int, str]]) -> None:
    store = RangeStore(db, load_config(config_path), create_if_missing=True)
    for lower, upper, device in rows:
        store.insert(IntervalRecord(lower=lower, upper=upper, attributes={"device_id": device}))
    store.close()


def _intervals(db: Path, config_path: Path) -> list[tuple[str, Interval | None]]:
    store = RangeStore(db, load_config(config_path))
    try:
        return [(r.attributes["device_id"], r.interval) for r in store.find()]
    finally:
        store.close()


# ───────────────────── combine_ranges.py ─────────────────────────────


def test_combine_ranges_repairs_table(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    config = _write_config(tmp_path)
    _seed(db, config, [
        (1, 5, "sda"), (2, 6, "sda"), (7, 9, "sda"), (1, 2, "sdb"), (4, 5, "sdb"),
    ])

    proc = _run("combine_ranges.py", ["--db", str(db), "--config", str(config), "--compact"])
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["status"] == "ok"
    assert payload["check_overlap"] is True
    assert payload["report"]["table"] == "blocks"
    assert payload["report"]["scopes"] == 2
    assert payload["report"]["rows_before"] == 5
    assert payload["report"]["rows_after"] == 3

    assert sorted(_intervals(db, config), key=lambda p: (p[0], p[1].lower)) == [
        ("sda", Interval(1, 9)),
        ("sdb", Interval(1, 2)),
        ("sdb", Interval(4, 5)),
    ]


def test_combine_ranges_missing_database(tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    proc = _run(
        "combine_ranges.py",
        ["--db", str(tmp_path / "missing.duckdb"), "--config", str(config)],
    )
    assert proc.returncode == 1
    payload = json.loads(proc.stdout)
    assert payload["status"] == "error"
    assert "missing.duckdb" in payload["error"]


def test_combine_ranges_bad_config(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    config = _write_config(tmp_path)
    _seed(db, config, [(1, 2, "sda")])
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"table": "blocks"}))
    proc = _run("combine_ranges.py", ["--db", str(db), "--config", str(bad)])
    assert proc.returncode == 1
    assert json.loads(proc.stdout)["status"] == "error"


# ───────────────────── range_query.py ────────────────────────────────


def test_range_query_insert_merges(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    config = _write_config(tmp_path)
    base = ["--db", str(db), "--config", str(config), "--scope", "device_id=sda", "--compact"]

    first = _run("range_query.py", [*base, "--from", "10", "--to", "20", "--insert",
                                    "--create-if-missing"])
    assert first.returncode == 0, first.stderr
    second = _run("range_query.py", [*base, "--from", "21", "--to", "30", "--insert"])
    assert second.returncode == 0, second.stderr

    payload = json.loads(second.stdout)
    assert payload["table"] == "blocks"
    assert payload["count"] == 1
    row = payload["rows"][0]
    assert (row["from_block"], row["to_block"], row["device_id"]) == (10, 30, "sda")


def test_range_query_drop_and_lookup(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    config = _write_config(tmp_path)
    _seed(db, config, [(1, 10, "sda"), (1, 10, "sdb")])

    dropped = _run(
        "range_query.py",
        ["--db", str(db), "--config", str(config), "--value", "5", "--scope", "device_id=sda",
         "--drop"],
    )
    assert dropped.returncode == 0, dropped.stderr
    assert json.loads(dropped.stdout)["count"] == 0

    listing = _run("range_query.py", ["--db", str(db), "--config", str(config), "--compact"])
    payload = json.loads(listing.stdout)
    assert payload["count"] == 3
    assert [
        (row["device_id"], row["from_block"], row["to_block"]) for row in payload["rows"]
    ] == [("sda", 1, 4), ("sdb", 1, 10), ("sda", 6, 10)]


def test_combine_ranges_unreadable_database(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    db.write_bytes(b"this is not a duckdb database\n" * 256)
    config = _write_config(tmp_path)
    proc = _run("combine_ranges.py", ["--db", str(db), "--config", str(config)])
    assert proc.returncode == 1
    assert json.loads(proc.stdout)["status"] == "error"
    assert "Traceback" not in proc.stderr


def test_range_query_bad_config(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"table": "blocks", "colour": "red"}))
    proc = _run(
        "range_query.py",
        ["--db", str(tmp_path / "ranges.duckdb"), "--config", str(bad), "--create-if-missing"],
    )
    assert proc.returncode == 1
    payload = json.loads(proc.stdout)
    assert payload["status"] == "error"
    assert "colour" in payload["error"]


def test_range_query_unknown_scope_column(tmp_path: Path) -> None:
    db = tmp_path / "ranges.duckdb"
    config = _write_config(tmp_path)
    _seed(db, config, [(1, 2, "sda")])
    proc = _run(
        "range_query.py",
        ["--db", str(db), "--config", str(config), "--value", "1", "--scope", "pool=a"],
    )
    assert proc.returncode == 1
    assert json.loads(proc.stdout)["status"] == "error"
