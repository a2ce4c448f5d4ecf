"""
Tests for engine/sources.py record sources.

The HTTP source is exercised against a fake session manager so no network
access is needed.
"""
import asyncio
import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from engine.aggregation import AggregationMemoizer  # noqa: E402
from engine.criteria import DEFAULT_SORT, FilterCriteria, PageState, SortSpec  # noqa: E402
from engine.errors import FetchError  # noqa: E402
from engine.sources import HttpRecordSource, InMemoryRecordSource, SqliteRecordSource  # noqa: E402


class FakeSessions:
    """Stands in for SessionManager: records URLs and replays queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.urls = []

    def get_json(self, url):
        self.urls.append(url)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _http_error(status):
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


def _items(start, count):
    return [{"id": i, "trade_date": "2024-01-01", "symbol": "BTC", "side": "Buy", "pnl": 1.0}
            for i in range(start, start + count)]


class TestInMemoryRecordSource:
    def test_fetch_page(self, record_set):
        source = InMemoryRecordSource(record_set)
        page = asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert [r.id for r in page.records] == [8, 7, 6, 5, 4, 3, 2, 1]
        assert page.total_count == 8
        assert page.dataset_version == "sample:0"

    def test_fetch_matching(self, record_set):
        source = InMemoryRecordSource(record_set)
        records = asyncio.run(source.fetch_matching(FilterCriteria(sides=["Sell"]),
                                                    SortSpec("pnl", "desc")))
        assert [r.id for r in records] == [6, 4, 2, 8]

    def test_page_and_statistics_share_one_computation(self, record_set):
        memo = AggregationMemoizer()
        source = InMemoryRecordSource(record_set, memo)

        async def scenario():
            await source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState())
            await source.fetch_matching(FilterCriteria(), DEFAULT_SORT)

        asyncio.run(scenario())
        assert memo.computations == 1

    def test_version_follows_mutations(self, record_set):
        source = InMemoryRecordSource(record_set)
        record_set.delete(1)
        page = asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert page.total_count == 7
        assert page.dataset_version == "sample:1"


class TestSqliteRecordSource:
    def test_fetch_page(self, trades_db):
        source = SqliteRecordSource(trades_db)
        page = asyncio.run(source.fetch_page(
            FilterCriteria(symbols=["BTC", "ETH"], sides=["Buy"]), DEFAULT_SORT, PageState()))
        assert [r.id for r in page.records] == [7, 1]
        assert page.total_count == 2
        assert page.dataset_version.startswith(f"sqlite:{trades_db}:8:")

    def test_fetch_matching(self, trades_db):
        source = SqliteRecordSource(trades_db)
        records = asyncio.run(source.fetch_matching(FilterCriteria(emotions=["FOMO"]),
                                                    SortSpec("date", "asc")))
        assert [r.id for r in records] == [1, 4, 6]

    def test_missing_database_raises_fetch_error(self, tmp_path):
        source = SqliteRecordSource(tmp_path / "missing.sqlite")
        with pytest.raises(FetchError):
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))

    def test_missing_table_raises_fetch_error(self, tmp_path):
        db = tmp_path / "blank.sqlite"
        db.touch()
        source = SqliteRecordSource(db)
        with pytest.raises(FetchError):
            asyncio.run(source.fetch_matching(FilterCriteria(), DEFAULT_SORT))


class TestHttpRecordSource:
    def test_request_url_uses_canonical_query(self):
        sessions = FakeSessions({"items": [], "total": 0, "dataset_version": "v1"})
        source = HttpRecordSource("http://journal.test/", session_manager=sessions)
        asyncio.run(source.fetch_page(FilterCriteria(sides=["Buy"]), DEFAULT_SORT, PageState()))
        assert sessions.urls == ["http://journal.test/api/v1/trades?side=Buy"]

    def test_default_query_has_no_question_mark(self):
        sessions = FakeSessions({"items": [], "total": 0})
        source = HttpRecordSource("http://journal.test", session_manager=sessions)
        page = asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert sessions.urls == ["http://journal.test/api/v1/trades"]
        assert page.dataset_version == "http:http://journal.test:0"

    def test_parses_items(self):
        body = {"items": _items(1, 2), "total": 2, "dataset_version": "sqlite:2:x"}
        source = HttpRecordSource("http://journal.test", session_manager=FakeSessions(body))
        page = asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert [r.id for r in page.records] == [1, 2]
        assert page.total_count == 2
        assert page.dataset_version == "sqlite:2:x"

    def test_fetch_matching_walks_every_page(self):
        sessions = FakeSessions(
            {"items": _items(1, 100), "total": 150, "dataset_version": "v"},
            {"items": _items(101, 50), "total": 150, "dataset_version": "v"},
        )
        source = HttpRecordSource("http://journal.test", session_manager=sessions)
        records = asyncio.run(source.fetch_matching(FilterCriteria(), DEFAULT_SORT))
        assert len(records) == 150
        assert sessions.urls == [
            "http://journal.test/api/v1/trades?pageSize=100",
            "http://journal.test/api/v1/trades?page=2&pageSize=100",
        ]

    def test_client_error_not_retryable(self):
        source = HttpRecordSource("http://journal.test", session_manager=FakeSessions(_http_error(404)))
        with pytest.raises(FetchError) as exc:
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert exc.value.retryable is False

    def test_server_error_retryable(self):
        source = HttpRecordSource("http://journal.test", session_manager=FakeSessions(_http_error(503)))
        with pytest.raises(FetchError) as exc:
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert exc.value.retryable is True

    def test_connection_error(self):
        sessions = FakeSessions(requests.ConnectionError("refused"))
        source = HttpRecordSource("http://journal.test", session_manager=sessions)
        with pytest.raises(FetchError) as exc:
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert exc.value.retryable is True

    def test_unexpected_payload(self):
        source = HttpRecordSource("http://journal.test",
                                  session_manager=FakeSessions({"error": "nope"}))
        with pytest.raises(FetchError) as exc:
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
        assert exc.value.retryable is False

    def test_malformed_item(self):
        body = {"items": [{"symbol": "BTC"}], "total": 1}
        source = HttpRecordSource("http://journal.test", session_manager=FakeSessions(body))
        with pytest.raises(FetchError):
            asyncio.run(source.fetch_page(FilterCriteria(), DEFAULT_SORT, PageState()))
