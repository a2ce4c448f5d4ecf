"""
SQLite storage for journal trades.

Schema:
    trades(id, trade_date, symbol, market, side, pnl, emotional_state,
           strategy_id, entry_time, exit_time, updated_at)

``emotional_state`` holds a JSON array of upper-case tags.  Every function
here takes an open ``sqlite3.Connection`` so callers own connection
lifetime (the API opens one per request, the record source one per fetch).
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from engine.criteria import FilterCriteria, SortSpec
from engine.records import TradeRecord, parse_emotions
from utils.query import build_order_clause, build_where_clause

SCHEMA = """
CREATE TABLE IF NOT EXISTS trades (
    id              INTEGER PRIMARY KEY,
    trade_date      TEXT,
    symbol          TEXT NOT NULL,
    market          TEXT,
    side            TEXT,
    pnl             REAL,
    emotional_state TEXT NOT NULL DEFAULT '[]',
    strategy_id     TEXT,
    entry_time      TEXT,
    exit_time       TEXT,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trades_date ON trades(trade_date);
CREATE INDEX IF NOT EXISTS idx_trades_symbol ON trades(symbol);
"""

_COLUMNS = ("id", "trade_date", "symbol", "market", "side", "pnl",
            "emotional_state", "strategy_id", "entry_time", "exit_time")


def connect(db_path: Path | str, read_only: bool = False) -> sqlite3.Connection:
    """Open *db_path* with ``sqlite3.Row`` rows; read-only opens fail if it is missing."""
    if read_only:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True,
                               check_same_thread=False, timeout=10)
    else:
        conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)
    conn.commit()


def criteria_filters(criteria: FilterCriteria) -> dict[str, Any]:
    """Map FilterCriteria onto ``build_where_clause`` keyword arguments."""
    d = criteria.to_dict()
    return {
        "date_from": d.get("date_from"),
        "date_to": d.get("date_to"),
        "symbols": d.get("symbols"),
        "markets": d.get("markets"),
        "sides": d.get("sides"),
        "emotions": d.get("emotions"),
        "strategy": d.get("strategy"),
        "pnl_min": d.get("pnl_min"),
        "pnl_max": d.get("pnl_max"),
        "outcome": d.get("outcome"),
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def upsert_trades(conn: sqlite3.Connection, rows: Iterable[Mapping[str, Any] | TradeRecord]) -> int:
    """Insert or replace trades; returns how many rows were written.

    Rows are normalized through TradeRecord so stored values match what the
    in-memory engine would see.
    """
    stamp = _now()
    values = []
    for row in rows:
        record = row if isinstance(row, TradeRecord) else TradeRecord.from_mapping(row)
        d = record.to_dict()
        d["emotional_state"] = json.dumps(list(parse_emotions(d.pop("emotions"))))
        values.append(tuple(d[c] for c in _COLUMNS) + (stamp,))
    placeholders = ",".join("?" * (len(_COLUMNS) + 1))
    conn.executemany(
        f"INSERT OR REPLACE INTO trades ({', '.join(_COLUMNS)}, updated_at) "
        f"VALUES ({placeholders})",
        values,
    )
    conn.commit()
    return len(values)


def delete_trade(conn: sqlite3.Connection, trade_id: int) -> bool:
    cur = conn.execute("DELETE FROM trades WHERE id = ?", (trade_id,))
    conn.commit()
    return cur.rowcount > 0


def count_trades(conn: sqlite3.Connection, criteria: FilterCriteria) -> int:
    where, params = build_where_clause(**criteria_filters(criteria))
    return conn.execute(f"SELECT COUNT(*) FROM trades {where}", params).fetchone()[0]


def select_trades(conn: sqlite3.Connection, criteria: FilterCriteria, sort: SortSpec,
                  limit: int | None = None, offset: int = 0) -> list[TradeRecord]:
    """Matching trades in *sort* order, optionally one window of them."""
    where, params = build_where_clause(**criteria_filters(criteria))
    order = build_order_clause(sort.field.value, sort.direction.value)
    sql = f"SELECT {', '.join(_COLUMNS)} FROM trades {where} {order}"
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params = params + [limit, offset]
    return [TradeRecord.from_mapping(dict(r)) for r in conn.execute(sql, params).fetchall()]


def get_trade(conn: sqlite3.Connection, trade_id: int) -> TradeRecord | None:
    row = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM trades WHERE id = ?", (trade_id,)
    ).fetchone()
    return TradeRecord.from_mapping(dict(row)) if row else None


def dataset_version(conn: sqlite3.Connection, label: str = "sqlite") -> str:
    """Identity of the table contents; changes after any write."""
    count, latest = conn.execute("SELECT COUNT(*), MAX(updated_at) FROM trades").fetchone()
    return f"{label}:{count}:{latest or '-'}"
