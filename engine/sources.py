"""
External record sources the orchestrator fetches from.

Every source answers two questions for a validated (criteria, sort):

* ``fetch_page(criteria, sort, page)``: one page of matching trades plus
  the total matching count and the dataset version it was read from.
* ``fetch_matching(criteria, sort)``: every matching trade, used to compute
  statistics when the memoizer has none cached for that dataset version.

Any failure is raised as ``FetchError``.  Blocking I/O (SQLite, HTTP) runs
in a worker thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import requests

from engine import sqlite_store
from engine.aggregation import AggregationMemoizer
from engine.criteria import FilterCriteria, PageState, SortSpec
from engine.errors import FetchError
from engine.records import RecordSet, TradeRecord
from engine.url_sync import encode
from utils.http import SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordPage:
    records: tuple[TradeRecord, ...]
    total_count: int
    dataset_version: str


class RecordSource(Protocol):
    async def fetch_page(self, criteria: FilterCriteria, sort: SortSpec,
                         page: PageState) -> RecordPage: ...

    async def fetch_matching(self, criteria: FilterCriteria,
                             sort: SortSpec) -> list[TradeRecord]: ...


def _offset(page: PageState) -> int:
    return (page.page - 1) * page.page_size


class InMemoryRecordSource:
    """Serves a local RecordSet, reusing the memoizer's filtered index list."""

    def __init__(self, record_set: RecordSet, memoizer: AggregationMemoizer | None = None) -> None:
        self.record_set = record_set
        self.memoizer = memoizer or AggregationMemoizer()

    async def fetch_page(self, criteria: FilterCriteria, sort: SortSpec,
                         page: PageState) -> RecordPage:
        indices = self.memoizer.filtered_indices(self.record_set, criteria, sort)
        start = _offset(page)
        window = indices[start:start + page.page_size]
        return RecordPage(
            records=tuple(self.record_set[i] for i in window),
            total_count=len(indices),
            dataset_version=self.record_set.identity,
        )

    async def fetch_matching(self, criteria: FilterCriteria, sort: SortSpec) -> list[TradeRecord]:
        indices = self.memoizer.filtered_indices(self.record_set, criteria, sort)
        return [self.record_set[i] for i in indices]


class SqliteRecordSource:
    """Reads trades from a SQLite database file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def _read_page(self, criteria: FilterCriteria, sort: SortSpec, page: PageState) -> RecordPage:
        conn = sqlite_store.connect(self.db_path, read_only=True)
        try:
            total = sqlite_store.count_trades(conn, criteria)
            records = sqlite_store.select_trades(conn, criteria, sort,
                                                 limit=page.page_size, offset=_offset(page))
            version = sqlite_store.dataset_version(conn, f"sqlite:{self.db_path}")
        finally:
            conn.close()
        return RecordPage(tuple(records), total, version)

    def _read_matching(self, criteria: FilterCriteria, sort: SortSpec) -> list[TradeRecord]:
        conn = sqlite_store.connect(self.db_path, read_only=True)
        try:
            return sqlite_store.select_trades(conn, criteria, sort)
        finally:
            conn.close()

    async def fetch_page(self, criteria: FilterCriteria, sort: SortSpec,
                         page: PageState) -> RecordPage:
        try:
            return await asyncio.to_thread(self._read_page, criteria, sort, page)
        except sqlite3.Error as exc:
            raise FetchError(f"trade query failed: {exc}") from exc

    async def fetch_matching(self, criteria: FilterCriteria, sort: SortSpec) -> list[TradeRecord]:
        try:
            return await asyncio.to_thread(self._read_matching, criteria, sort)
        except sqlite3.Error as exc:
            raise FetchError(f"trade query failed: {exc}") from exc


class HttpRecordSource:
    """Reads trades from a running trade journal API (``GET /api/v1/trades``)."""

    MAX_PAGE_SIZE = 100

    def __init__(self, base_url: str, session_manager: SessionManager | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.sessions = session_manager or SessionManager()

    def _url(self, criteria: FilterCriteria, sort: SortSpec, page: PageState) -> str:
        query = encode(criteria, sort, page)
        return f"{self.base_url}/api/v1/trades" + (f"?{query}" if query else "")

    def _get(self, url: str) -> dict:
        logger.debug("GET %s", url)
        try:
            body = self.sessions.get_json(url)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(f"GET {url} returned {status}",
                             retryable=status is None or status >= 500) from exc
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"GET {url} returned invalid JSON") from exc
        if not isinstance(body, dict) or "items" not in body or "total" not in body:
            raise FetchError(f"GET {url} returned an unexpected payload", retryable=False)
        return body

    def _read_page(self, criteria: FilterCriteria, sort: SortSpec, page: PageState) -> RecordPage:
        body = self._get(self._url(criteria, sort, page))
        try:
            records = tuple(TradeRecord.from_mapping(item) for item in body["items"])
            total = int(body["total"])
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"malformed trade payload: {exc}", retryable=False) from exc
        version = str(body.get("dataset_version") or f"http:{self.base_url}:{total}")
        return RecordPage(records, total, version)

    def _read_matching(self, criteria: FilterCriteria, sort: SortSpec) -> list[TradeRecord]:
        out: list[TradeRecord] = []
        page = PageState(page=1, page_size=self.MAX_PAGE_SIZE)
        while True:
            result = self._read_page(criteria, sort, page)
            out.extend(result.records)
            if not result.records or len(out) >= result.total_count:
                return out
            page = page.with_page(page.page + 1)

    async def fetch_page(self, criteria: FilterCriteria, sort: SortSpec,
                         page: PageState) -> RecordPage:
        return await asyncio.to_thread(self._read_page, criteria, sort, page)

    async def fetch_matching(self, criteria: FilterCriteria, sort: SortSpec) -> list[TradeRecord]:
        return await asyncio.to_thread(self._read_matching, criteria, sort)
