"""DuckDB record store for range set tables.

One row per interval.  The store knows nothing about merging; it offers the
primitives the engines need:

* predicate find / get / count
* insert (id assigned from a sequence), update, delete, delete_where
* span aggregates: ``MIN(from)``, ``MAX(to)`` and ``SUM(length)``
* a self-join listing overlapping rows inside one scope
* re-entrant transactions (only the outermost level talks to DuckDB)

Several configurations may share one database file: ``for_config`` returns a
sibling store on the same connection and transaction state.
"""
from __future__ import annotations

import contextlib
import copy
import importlib
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rangeset.config import RangeSetConfig, quote_ident
from rangeset.predicates import TRUE_CONDITION, Condition, scope_condition
from rangeset.records import IntervalRecord

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")


SCHEMA_VERSION = "1.0.0"

_SCHEMA_VERSION_DDL = """
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
)
"""


def _to_dict(cols: list[str], row: tuple[Any, ...]) -> dict[str, Any]:
    """Zip column names with a row tuple into a dict (strict length check)."""
    return dict(zip(cols, row, strict=True))


@dataclass(frozen=True, slots=True)
class SpanAggregate:
    """Aggregate over the rows matching a span predicate."""

    total_length: Any
    min_from: Any
    max_to: Any


class _Session:
    """Connection plus transaction depth, shared by sibling stores."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn
        self.depth = 0


class RangeStore:
    """Read/write interface to one range set table in a DuckDB database."""

    def __init__(
        self,
        db_path: Path | str,
        config: RangeSetConfig,
        *,
        create_if_missing: bool = False,
    ) -> None:
        in_memory = str(db_path) == ":memory:"
        self._db_path = Path(db_path) if not in_memory else None
        if self._db_path is not None and not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Range database not found: {self._db_path}")

        self._session = _Session(_duckdb_mod.connect(str(db_path)))
        self._config = config
        self.ensure_table()

    @property
    def config(self) -> RangeSetConfig:
        return self._config

    @property
    def _conn(self) -> Any:
        return self._session.conn

    @property
    def supports_length_aggregate(self) -> bool:
        return self._config.length_sql() is not None

    def for_config(self, config: RangeSetConfig) -> RangeStore:
        """Store for another table on the same connection."""
        sibling = copy.copy(self)
        sibling._config = config
        sibling.ensure_table()
        return sibling

    # ─── Schema ───────────────────────────────────────────────────

    def ensure_table(self) -> None:
        """Create the id sequence and table if they don't exist."""
        cfg = self._config
        seq = f"{cfg.table}_{cfg.id_column}_seq"
        columns = [
            f"{quote_ident(cfg.id_column)} BIGINT PRIMARY KEY DEFAULT nextval('{seq}')",
            f"{quote_ident(cfg.from_column)} {cfg.bound_sql_type}",
            f"{quote_ident(cfg.to_column)} {cfg.bound_sql_type}",
        ]
        columns.extend(f"{quote_ident(name)} {sql_type}" for name, sql_type in cfg.columns.items())
        self._conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {quote_ident(seq)}")
        self._conn.execute(
            f"CREATE TABLE IF NOT EXISTS {quote_ident(cfg.table)} (\n    "
            + ",\n    ".join(columns)
            + "\n)"
        )
        self._conn.execute(_SCHEMA_VERSION_DDL)
        self._conn.execute(
            "INSERT OR REPLACE INTO _schema_version (table_name, version) VALUES (?, ?)",
            [cfg.table, SCHEMA_VERSION],
        )

    # ─── Transactions ─────────────────────────────────────────────

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Atomic block; nested blocks join the outermost transaction."""
        session = self._session
        if session.depth:
            session.depth += 1
            try:
                yield
            finally:
                session.depth -= 1
            return

        self._conn.execute("BEGIN TRANSACTION")
        session.depth = 1
        try:
            yield
            self._conn.execute("COMMIT")
        except Exception:
            with contextlib.suppress(Exception):
                self._conn.execute("ROLLBACK")
            raise
        finally:
            session.depth = 0

    # ─── Reads ────────────────────────────────────────────────────

    def _order_clause(self, order_by: str, descending: bool) -> str:
        cfg = self._config
        allowed = {
            "from": cfg.from_column,
            "to": cfg.to_column,
            "id": cfg.id_column,
        }
        sort_col = quote_ident(allowed.get(order_by, cfg.from_column))
        sort_order = "DESC" if descending else "ASC"
        return f"ORDER BY {sort_col} {sort_order}, {quote_ident(cfg.id_column)} {sort_order}"

    def find(
        self,
        where: Condition = TRUE_CONDITION,
        *,
        order_by: str = "from",
        descending: bool = False,
        limit: int | None = None,
    ) -> list[IntervalRecord]:
        sql, params = where
        query = (
            f"SELECT * FROM {quote_ident(self._config.table)} WHERE {sql} "
            f"{self._order_clause(order_by, descending)}"
        )
        params = list(params)
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(query, params).fetchall()
        cols = [d[0] for d in self._conn.description]
        return [IntervalRecord.from_row(self._config, _to_dict(cols, row)) for row in rows]

    def get(self, record_id: Any) -> IntervalRecord | None:
        rows = self.find(
            (f"({quote_ident(self._config.id_column)} = ?)", [record_id]),
        )
        return rows[0] if rows else None

    def count(self, where: Condition = TRUE_CONDITION) -> int:
        sql, params = where
        row = self._conn.execute(
            f"SELECT COUNT(*) FROM {quote_ident(self._config.table)} WHERE {sql}",
            params,
        ).fetchone()
        return int(row[0]) if row else 0

    def bounds(self, where: Condition = TRUE_CONDITION) -> tuple[Any, Any]:
        """``(MIN(from), MAX(to))`` over the matching rows."""
        cfg = self._config
        sql, params = where
        row = self._conn.execute(
            f"SELECT MIN({quote_ident(cfg.from_column)}), MAX({quote_ident(cfg.to_column)}) "
            f"FROM {quote_ident(cfg.table)} WHERE {sql}",
            params,
        ).fetchone()
        if not row:
            return (None, None)
        return (row[0], row[1])

    def aggregate(self, where: Condition = TRUE_CONDITION) -> SpanAggregate | None:
        """Length sum and bounds of the matching rows.

        Returns None when no length expression is configured or nothing matches.
        """
        length_sql = self._config.length_sql()
        if length_sql is None:
            return None
        cfg = self._config
        sql, params = where
        row = self._conn.execute(
            f"SELECT SUM({length_sql}) AS actually_have, "
            f"MIN({quote_ident(cfg.from_column)}) AS range_begin, "
            f"MAX({quote_ident(cfg.to_column)}) AS range_end "
            f"FROM {quote_ident(cfg.table)} WHERE {sql}",
            params,
        ).fetchone()
        if not row or any(value is None for value in row):
            return None
        return SpanAggregate(total_length=row[0], min_from=row[1], max_to=row[2])

    def overlapping_ids(self, scope: Mapping[str, Any] | None = None) -> list[Any]:
        """Ids of the left-hand rows of overlapping pairs within one scope.

        A pair ``(l, r)`` overlaps when ``l.from < r.from <= l.to``; rows that
        start at the same position are paired by id so duplicates are caught.
        """
        cfg = self._config
        cid = quote_ident(cfg.id_column)
        cfrom = quote_ident(cfg.from_column)
        cto = quote_ident(cfg.to_column)
        sql, params = scope_condition(cfg, scope)
        rows = self._conn.execute(
            f"""
            WITH scoped AS (
                SELECT {cid}, {cfrom}, {cto} FROM {quote_ident(cfg.table)}
                WHERE {sql} AND {cfrom} IS NOT NULL AND {cto} IS NOT NULL
            )
            SELECT l.{cid} AS lft_id, MIN(l.{cfrom}) AS lft_from
            FROM scoped AS l JOIN scoped AS rgt
              ON l.{cid} <> rgt.{cid}
             AND (l.{cfrom} < rgt.{cfrom}
                  OR (l.{cfrom} = rgt.{cfrom} AND l.{cid} < rgt.{cid}))
             AND l.{cto} >= rgt.{cfrom}
            GROUP BY l.{cid}
            ORDER BY lft_from, lft_id
            """,
            params,
        ).fetchall()
        return [row[0] for row in rows]

    def distinct_scopes(self) -> list[dict[str, Any]]:
        """Every distinct combination of scope values present in the table."""
        cfg = self._config
        if not cfg.scope:
            return [{}]
        cols = ", ".join(quote_ident(name) for name in cfg.scope)
        rows = self._conn.execute(
            f"SELECT DISTINCT {cols} FROM {quote_ident(cfg.table)} ORDER BY {cols}"
        ).fetchall()
        return [_to_dict(list(cfg.scope), row) for row in rows]

    # ─── Writes ───────────────────────────────────────────────────

    def insert(self, record: IntervalRecord) -> Any:
        """Insert *record* as a new row (no merging) and return its id."""
        cfg = self._config
        row = record.to_row(cfg)
        cols = ", ".join(quote_ident(name) for name in row)
        placeholders = ", ".join("?" for _ in row)
        result = self._conn.execute(
            f"INSERT INTO {quote_ident(cfg.table)} ({cols}) VALUES ({placeholders}) "
            f"RETURNING {quote_ident(cfg.id_column)}",
            list(row.values()),
        ).fetchone()
        return result[0] if result else None

    def update(self, record_id: Any, values: Mapping[str, Any]) -> None:
        if not values:
            return
        cfg = self._config
        sets = ", ".join(f"{quote_ident(name)} = ?" for name in values)
        self._conn.execute(
            f"UPDATE {quote_ident(cfg.table)} SET {sets} WHERE {quote_ident(cfg.id_column)} = ?",
            [*values.values(), record_id],
        )

    def write(self, record: IntervalRecord) -> None:
        """Overwrite the persisted row of *record* with its in-memory state."""
        self.update(record.id, record.to_row(self._config))

    def delete(self, record_id: Any) -> None:
        self.delete_ids([record_id])

    def delete_ids(self, record_ids: Iterable[Any]) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        cfg = self._config
        placeholders = ", ".join("?" for _ in ids)
        self._conn.execute(
            f"DELETE FROM {quote_ident(cfg.table)} "
            f"WHERE {quote_ident(cfg.id_column)} IN ({placeholders})",
            ids,
        )
        return len(ids)

    def delete_where(self, where: Condition = TRUE_CONDITION) -> int:
        sql, params = where
        with self.transaction():
            count = self.count(where)
            self._conn.execute(
                f"DELETE FROM {quote_ident(self._config.table)} WHERE {sql}", params
            )
        return count

    # ─── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._session.conn:
            self._session.conn.close()
            self._session.conn = None
