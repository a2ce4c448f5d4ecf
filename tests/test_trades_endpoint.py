"""
Tests for the /api/v1/trades endpoints (api/routes/trades.py).

Runs against a temporary SQLite database holding the conftest sample
trades.  Malformed query parameters are reported under ``warnings`` and
never produce a 4xx.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient  # noqa: E402

from api.app import create_app  # noqa: E402
from engine import sqlite_store  # noqa: E402


@pytest.fixture()
def app(trades_db):
    return create_app(db_path=trades_db)


@pytest.fixture()
def client(app):
    return TestClient(app)


def _ids(resp):
    return [item["id"] for item in resp.json()["items"]]


class TestListTrades:
    def test_default_listing(self, client):
        resp = client.get("/api/v1/trades")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 8
        assert data["page"] == 1
        assert data["page_size"] == 25
        assert data["page_count"] == 1
        assert data["has_next"] is False
        assert data["query"] == ""
        assert data["active_filters"] == 0
        assert data["warnings"] == []
        assert _ids(resp) == [8, 7, 6, 5, 4, 3, 2, 1]

    def test_symbols_and_side(self, client):
        resp = client.get("/api/v1/trades?symbols=BTC,ETH&side=Buy")
        data = resp.json()
        assert _ids(resp) == [7, 1]
        assert data["total"] == 2
        assert data["query"] == "symbols=BTC,ETH&side=Buy"
        assert data["active_filters"] == 2

    def test_query_is_canonicalized(self, client):
        resp = client.get("/api/v1/trades?side=buy&symbols=eth,btc&utm_source=mail")
        assert resp.json()["query"] == "symbols=BTC,ETH&side=Buy"

    def test_sort(self, client):
        resp = client.get("/api/v1/trades?sort=pnl:desc")
        assert _ids(resp) == [6, 3, 1, 5, 7, 4, 2, 8]
        assert resp.json()["query"] == "sort=pnl:desc"

    def test_emotions(self, client):
        assert _ids(client.get("/api/v1/trades?emotions=FOMO")) == [6, 4, 1]

    def test_page_past_end_is_clamped(self, client):
        resp = client.get("/api/v1/trades?page=5")
        data = resp.json()
        assert resp.status_code == 200
        assert data["page"] == 1
        assert data["query"] == ""
        assert len(data["items"]) == 8

    def test_empty_result(self, client):
        data = client.get("/api/v1/trades?symbols=ZZZ&page=5").json()
        assert data["items"] == []
        assert data["total"] == 0
        assert data["page_count"] == 1
        assert (data["page"], data["start_index"], data["end_index"]) == (1, 0, 0)
        assert data["query"] == "symbols=ZZZ"

    def test_malformed_parameter_is_a_warning(self, client):
        resp = client.get("/api/v1/trades?pnlMin=abc&symbols=btc")
        assert resp.status_code == 200
        data = resp.json()
        assert _ids(resp) == [4, 1]
        assert [(w["field"], w["reason"]) for w in data["warnings"]] == [("pnl_min", "not_a_number")]
        assert data["warnings"][0]["value"] == "abc"

    def test_disallowed_page_size_falls_back(self, client):
        data = client.get("/api/v1/trades?pageSize=30").json()
        assert data["page_size"] == 25
        assert data["warnings"][0]["field"] == "page_size"

    def test_item_shape(self, client):
        item = client.get("/api/v1/trades?symbols=ETH&side=Sell").json()["items"][0]
        assert item["id"] == 2
        assert item["emotions"] == ["REVENGE"]
        assert item["market"] == "crypto"
        assert item["pnl"] == -80.0
        assert item["entry_time"] == "23:30"

    def test_dataset_version_reported(self, client, trades_db):
        data = client.get("/api/v1/trades").json()
        assert data["dataset_version"].startswith("sqlite:8:")


class TestTradeStats:
    def test_all_trades(self, client):
        resp = client.get("/api/v1/trades/stats")
        assert resp.status_code == 200
        stats = resp.json()["statistics"]
        assert stats["trade_count"] == 8
        assert stats["total_pnl"] == pytest.approx(410.0)
        assert stats["win_rate"] == pytest.approx(37.5)
        assert stats["side_counts"] == {"Buy": 4, "Sell": 4}
        assert stats["emotions"][0]["label"] == "FOMO"

    def test_filtered(self, client):
        stats = client.get("/api/v1/trades/stats?side=Buy").json()["statistics"]
        assert stats["trade_count"] == 4
        assert stats["total_pnl"] == pytest.approx(350.0)
        assert stats["win_rate"] == pytest.approx(50.0)
        assert stats["profit_factor"] == 999.0

    def test_pagination_params_ignored(self, client):
        data = client.get("/api/v1/trades/stats?side=Buy&page=3&pageSize=50").json()
        assert data["query"] == "side=Buy"
        assert data["statistics"]["trade_count"] == 4

    def test_repeated_query_served_from_cache(self, app, client):
        client.get("/api/v1/trades/stats?side=Sell")
        client.get("/api/v1/trades/stats?side=Sell")
        stats = app.state.memoizer.cache_stats()
        assert stats["hits"] == 1
        assert stats["size"] == 1

    def test_write_invalidates_cached_statistics(self, app, client, trades_db):
        first = client.get("/api/v1/trades/stats").json()["statistics"]
        conn = sqlite_store.connect(trades_db)
        try:
            sqlite_store.upsert_trades(conn, [{"id": 9, "trade_date": "2024-03-01",
                                               "symbol": "NVDA", "side": "Buy", "pnl": 90}])
        finally:
            conn.close()
        second = client.get("/api/v1/trades/stats").json()["statistics"]
        assert second["trade_count"] == first["trade_count"] + 1
        assert app.state.memoizer.cache_stats()["size"] == 1


class TestGetTrade:
    def test_found(self, client):
        resp = client.get("/api/v1/trades/3")
        assert resp.status_code == 200
        assert resp.json()["symbol"] == "AAPL"

    def test_not_found(self, client):
        resp = client.get("/api/v1/trades/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Request failed", "detail": "Trade 999 not found",
                               "status_code": 404}


class TestMissingDatabase:
    def test_list_returns_503(self, tmp_path):
        client = TestClient(create_app(db_path=tmp_path / "missing.sqlite"))
        resp = client.get("/api/v1/trades")
        assert resp.status_code == 503
        assert "init-db" in resp.json()["detail"]
