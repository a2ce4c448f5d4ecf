"""
Bidirectional mapping between QueryState and the address-bar query string.

Encoding is canonical: parameters appear in a fixed order, list values are
sorted and comma-joined under one name, absent fields (and the default sort
and page) are left out entirely.  Equal states therefore always encode to
byte-identical strings, which keeps cache keys stable and avoids writing
duplicate history entries.

Decoding runs every value through ``engine.validator`` and ignores parameter
names it does not know, so links produced by older builds still open.

Query parameters::

    from, to          ISO dates (inclusive)
    symbols           comma-separated tickers
    markets           comma-separated market categories
    side              comma-separated Buy/Sell
    emotions          comma-separated emotion tags
    strategy          strategy identifier
    pnlMin, pnlMax    numeric P&L bounds
    outcome           profitable | lossable
    sort              field:direction
    page, pageSize    pagination
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import parse_qsl, quote

from engine.criteria import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    FilterCriteria,
    PageState,
    QueryState,
    SortSpec,
)
from engine.validator import Validated, validate_criteria, validate_page, validate_sort
from utils.strings import format_number

logger = logging.getLogger(__name__)

# Query parameter name -> FilterCriteria field, in canonical output order.
CRITERIA_PARAMS: tuple[tuple[str, str], ...] = (
    ("from", "date_from"),
    ("to", "date_to"),
    ("symbols", "symbols"),
    ("markets", "markets"),
    ("side", "sides"),
    ("emotions", "emotions"),
    ("strategy", "strategy"),
    ("pnlMin", "pnl_min"),
    ("pnlMax", "pnl_max"),
    ("outcome", "outcome"),
)
SORT_PARAM = "sort"
PAGE_PARAM = "page"
PAGE_SIZE_PARAM = "pageSize"

KNOWN_PARAMS = frozenset(
    [name for name, _ in CRITERIA_PARAMS] + [SORT_PARAM, PAGE_PARAM, PAGE_SIZE_PARAM]
)

_SAFE_CHARS = ",:"


def _encode_value(value) -> str:
    if isinstance(value, frozenset):
        return ",".join(sorted(str(v) for v in value))
    if isinstance(value, float):
        return format_number(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def encode(criteria: FilterCriteria, sort: SortSpec | None = None,
           page: PageState | None = None) -> str:
    """Return the canonical query string (without a leading ``?``).

    Example:
        encode(FilterCriteria(symbols={"ETH", "BTC"}, sides={"Buy"}))
        -> "symbols=BTC,ETH&side=Buy"
    """
    pairs: list[tuple[str, str]] = []
    for param, attr in CRITERIA_PARAMS:
        value = getattr(criteria, attr)
        if value is not None:
            pairs.append((param, _encode_value(value)))
    if sort is not None and sort != DEFAULT_SORT:
        pairs.append((SORT_PARAM, sort.to_token()))
    if page is not None:
        if page.page != 1:
            pairs.append((PAGE_PARAM, str(page.page)))
        if page.page_size != DEFAULT_PAGE_SIZE:
            pairs.append((PAGE_SIZE_PARAM, str(page.page_size)))
    return "&".join(f"{k}={quote(v, safe=_SAFE_CHARS)}" for k, v in pairs)


def encode_state(state: QueryState) -> str:
    return encode(state.criteria, state.sort, state.page)


def _split_query(query: str) -> str:
    if "#" in query:
        query = query.split("#", 1)[0]
    if "?" in query:
        query = query.split("?", 1)[1]
    return query


def _parse_params(query: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for key, value in parse_qsl(_split_query(query or ""), keep_blank_values=True):
        if key not in KNOWN_PARAMS:
            logger.debug("ignoring unknown query parameter %r", key)
            continue
        params[key] = value  # last occurrence wins
    return params


def carries_filters(query: str) -> bool:
    """True if *query* sets any filter or sort parameter (page params excluded)."""
    params = _parse_params(query)
    return any(params.get(name) for name, _ in CRITERIA_PARAMS) or bool(params.get(SORT_PARAM))


def decode(query: str) -> Validated[QueryState]:
    """Parse a query string (or full URL) back into a validated QueryState.

    Never raises: malformed values are dropped and reported in ``issues``.
    """
    params = _parse_params(query)
    criteria = validate_criteria({attr: params.get(name) for name, attr in CRITERIA_PARAMS})
    sort = validate_sort(params.get(SORT_PARAM))
    page = validate_page(params.get(PAGE_PARAM), params.get(PAGE_SIZE_PARAM))
    return Validated(
        QueryState(criteria=criteria.value, sort=sort.value, page=page.value),
        criteria.issues + sort.issues + page.issues,
    )


def build_shareable_url(base_url: str, state: QueryState) -> str:
    """Absolute link that reopens the journal with *state* applied."""
    query = encode_state(state)
    base = base_url.split("?", 1)[0]
    return f"{base}?{query}" if query else base


# ── History integration ──────────────────────────────────────────────────────


class HistoryAdapter(Protocol):
    """The browser-history operations the synchronizer needs."""

    def replace(self, url: str) -> None: ...

    def push(self, url: str) -> None: ...


class InMemoryHistory:
    """History stack for headless use and tests; mirrors browser semantics."""

    def __init__(self, initial_url: str = "/trades") -> None:
        self.entries: list[str] = [initial_url]
        self.index = 0

    @property
    def current(self) -> str:
        return self.entries[self.index]

    def replace(self, url: str) -> None:
        self.entries[self.index] = url

    def push(self, url: str) -> None:
        del self.entries[self.index + 1:]
        self.entries.append(url)
        self.index = len(self.entries) - 1

    def back(self) -> str:
        if self.index > 0:
            self.index -= 1
        return self.current


class UrlSynchronizer:
    """Writes the canonical URL for each committed state into the history.

    Filter, sort and page changes *replace* the current entry so the back
    button is not flooded; only deliberate navigation *pushes*.  Writing the
    URL that is already current is skipped.
    """

    def __init__(self, history: HistoryAdapter, base_path: str = "/trades") -> None:
        self.history = history
        self.base_path = base_path
        self._last_url: str | None = None

    def url_for(self, state: QueryState) -> str:
        query = encode_state(state)
        return f"{self.base_path}?{query}" if query else self.base_path

    def sync(self, state: QueryState, navigate: bool = False) -> bool:
        """Record *state* in the history; returns False when nothing changed."""
        url = self.url_for(state)
        if url == self._last_url and not navigate:
            return False
        if navigate:
            self.history.push(url)
        else:
            self.history.replace(url)
        logger.debug("%s %s", "push" if navigate else "replace", url)
        self._last_url = url
        return True

    def read(self, query: str) -> Validated[QueryState]:
        """Decode *query* and remember its canonical URL as already written."""
        result = decode(query)
        self._last_url = self.url_for(result.value) if result.ok else None
        return result
