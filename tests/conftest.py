"""
Pytest fixtures for the trade journal tests.

Provides a small deterministic trade set (as raw rows, a RecordSet and a
SQLite database), a controllable fake record source for orchestrator tests,
and an isolated engine config.
"""

import asyncio
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from engine import sqlite_store  # noqa: E402
from engine.errors import FetchError  # noqa: E402
from engine.filtering import apply  # noqa: E402
from engine.records import RecordSet  # noqa: E402
from engine.sources import RecordPage  # noqa: E402


# Eight trades covering every market, both sides, missing P&L, the three
# emotion encodings and a hold time that wraps past midnight.
SAMPLE_ROWS = [
    {"id": 1, "trade_date": "2024-01-02", "symbol": "BTC", "market": "crypto", "side": "Buy",
     "pnl": 150.0, "emotional_state": ["FOMO", "CONFIDENT"], "strategy_id": "s1",
     "entry_time": "09:30", "exit_time": "10:15"},
    {"id": 2, "trade_date": "2024-01-03", "symbol": "ETH", "market": "crypto", "side": "Sell",
     "pnl": -80.0, "emotional_state": '["REVENGE"]', "strategy_id": "s1",
     "entry_time": "23:30", "exit_time": "00:30"},
    {"id": 3, "trade_date": "2024-01-05", "symbol": "AAPL", "market": "stock", "side": "Buy",
     "pnl": 200.0, "emotional_state": "PATIENCE", "strategy_id": "s2",
     "entry_time": "14:00", "exit_time": "15:30"},
    {"id": 4, "trade_date": "2024-01-08", "symbol": "BTC", "market": "crypto", "side": "Sell",
     "pnl": -40.0, "emotional_state": ["FOMO"], "strategy_id": None},
    {"id": 5, "trade_date": "2024-01-10", "symbol": "EURUSD", "market": "forex", "side": "Buy",
     "pnl": 0.0, "emotional_state": [], "strategy_id": None},
    {"id": 6, "trade_date": "2024-01-12", "symbol": "ES", "market": "futures", "side": "Sell",
     "pnl": 300.0, "emotional_state": ["DISCIPLINE", "fomo"], "strategy_id": "s2"},
    {"id": 7, "trade_date": "2024-02-01", "symbol": "ETH", "market": "crypto", "side": "Buy",
     "pnl": None, "emotional_state": ["TILT", "bogus"], "strategy_id": None},
    {"id": 8, "trade_date": "2024-02-03", "symbol": "TSLA", "market": "stock", "side": "Sell",
     "pnl": -120.0, "emotional_state": ["ANXIOUS"], "strategy_id": None},
]

# FilterCriteria keyword sets that must survive both the query string and
# saved-filter storage unchanged: reserved URL characters in symbols and
# strategies, and bounds whose text form is easy to get wrong.
ROUND_TRIP_CRITERIA = [
    {},
    {"symbols": ["^GSPC", "ES=F", "EUR/USD", "BRK.B"]},
    {"symbols": ["BTC-USD"], "markets": ["crypto", "forex"], "sides": ["Buy", "Sell"]},
    {"strategy": "acct:swing-2"},
    {"strategy": "2024:Q1.breakout_v3"},
    {"pnl_min": -0.0},
    {"pnl_min": 1e-7, "pnl_max": 1e22},
    {"pnl_min": 0.1 + 0.2},
    {"pnl_min": -1.5e300, "pnl_max": -2.5},
    {"pnl_max": 123456.789},
    {"date_from": date(2024, 2, 29), "date_to": date(2024, 2, 29)},
    {"date_from": date(1999, 12, 31)},
    {"emotions": ["FOMO", "NEUTRAL", "REGRET"], "outcome": "profitable"},
    {"date_from": date(2024, 1, 1), "date_to": date(2024, 12, 31), "symbols": ["ES=F"],
     "markets": ["futures"], "sides": ["Sell"], "emotions": ["TILT"], "strategy": "s:1",
     "pnl_min": -0.5, "pnl_max": 0.5, "outcome": "lossable"},
]


@pytest.fixture()
def sample_rows():
    return [dict(r) for r in SAMPLE_ROWS]


@pytest.fixture()
def record_set(sample_rows):
    return RecordSet.from_rows(sample_rows, set_id="sample")


@pytest.fixture()
def trades_db(tmp_path, sample_rows):
    """SQLite file with the trades schema and the sample rows loaded."""
    db_path = tmp_path / "journal.sqlite"
    conn = sqlite_store.connect(db_path)
    sqlite_store.ensure_schema(conn)
    sqlite_store.upsert_trades(conn, sample_rows)
    conn.close()
    return db_path


@pytest.fixture()
def empty_db(tmp_path):
    db_path = tmp_path / "empty.sqlite"
    conn = sqlite_store.connect(db_path)
    sqlite_store.ensure_schema(conn)
    conn.close()
    return db_path


@pytest.fixture()
def engine_env(monkeypatch, tmp_path):
    """Pin engine settings so tests do not depend on the caller's environment."""
    monkeypatch.setenv("JOURNAL_TEXT_DEBOUNCE_MS", "300")
    monkeypatch.setenv("JOURNAL_DISCRETE_DEBOUNCE_MS", "150")
    monkeypatch.setenv("JOURNAL_CACHE_SIZE", "16")
    monkeypatch.setenv("JOURNAL_STORAGE_PATH", str(tmp_path / "storage.json"))


class ControlledSource:
    """Record source whose responses are released by the test.

    Each ``fetch_page`` call is recorded in ``calls`` and blocks until the
    test calls ``release(n)`` for that call (or ``auto`` is set).  Setting
    ``fail_next`` makes the next call raise FetchError.
    """

    def __init__(self, record_set, auto=True):
        self.record_set = record_set
        self.auto = auto
        self.calls = []
        self.matching_calls = 0
        self.fail_next = False
        self._gates = []

    async def fetch_page(self, criteria, sort, page):
        index = len(self.calls)
        self.calls.append((criteria, sort, page))
        gate = asyncio.Event()
        self._gates.append(gate)
        if self.auto:
            gate.set()
        await gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise FetchError(f"call {index} failed")
        indices = apply(self.record_set.records, criteria, sort)
        start = (page.page - 1) * page.page_size
        window = indices[start:start + page.page_size]
        return RecordPage(tuple(self.record_set[i] for i in window), len(indices),
                          self.record_set.identity)

    async def fetch_matching(self, criteria, sort):
        self.matching_calls += 1
        return [self.record_set[i] for i in apply(self.record_set.records, criteria, sort)]

    def release(self, index):
        self._gates[index].set()


@pytest.fixture()
def controlled_source(record_set):
    return ControlledSource(record_set)
