"""
Tests for engine/url_sync.py: canonical query-string encoding, lenient
decoding and history synchronization.
"""
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import ROUND_TRIP_CRITERIA  # noqa: E402
from engine.criteria import (  # noqa: E402
    DEFAULT_SORT,
    FilterCriteria,
    Market,
    PageState,
    QueryState,
    Side,
    SortSpec,
)
from engine.url_sync import (  # noqa: E402
    InMemoryHistory,
    UrlSynchronizer,
    build_shareable_url,
    carries_filters,
    decode,
    encode,
    encode_state,
)

FULL_QUERY = (
    "from=2024-01-01&to=2024-01-31&symbols=BTC,ETH&markets=crypto&side=Sell"
    "&emotions=FOMO,TILT&strategy=s1&pnlMin=-50&pnlMax=100&outcome=lossable"
    "&sort=pnl:asc&page=2&pageSize=50"
)


def _full_state():
    return QueryState(
        criteria=FilterCriteria(
            date_from=date(2024, 1, 1),
            date_to=date(2024, 1, 31),
            symbols=["ETH", "BTC"],
            markets=["crypto"],
            sides=["Sell"],
            emotions=["TILT", "FOMO"],
            strategy="s1",
            pnl_min=-50,
            pnl_max=100,
            outcome="lossable",
        ),
        sort=SortSpec("pnl", "asc"),
        page=PageState(page=2, page_size=50),
    )


class TestEncode:
    def test_symbols_and_side(self):
        assert encode(FilterCriteria(symbols=["BTC", "ETH"], sides=["Buy"])) == "symbols=BTC,ETH&side=Buy"

    def test_empty(self):
        assert encode(FilterCriteria()) == ""

    def test_defaults_omitted(self):
        assert encode(FilterCriteria(), DEFAULT_SORT, PageState()) == ""

    def test_full_state_in_canonical_order(self):
        assert encode_state(_full_state()) == FULL_QUERY

    def test_list_values_sorted(self):
        assert encode(FilterCriteria(symbols=["SOL", "BTC", "ETH"])) == "symbols=BTC,ETH,SOL"

    def test_fractional_bound(self):
        assert encode(FilterCriteria(pnl_min=2.5)) == "pnlMin=2.5"

    def test_reserved_characters_escaped(self):
        assert encode(FilterCriteria(symbols=["EUR/USD"])) == "symbols=EUR%2FUSD"

    def test_page_size_without_page(self):
        assert encode(FilterCriteria(), page=PageState(page_size=100)) == "pageSize=100"

    def test_equal_states_encode_identically(self):
        a = decode("side=Buy&symbols=eth,btc").value
        b = decode("symbols=BTC,ETH&side=buy&utm_source=mail").value
        assert encode_state(a) == encode_state(b) == "symbols=BTC,ETH&side=Buy"


class TestDecode:
    def test_full_query(self):
        result = decode(FULL_QUERY)
        assert result.ok
        assert result.value == _full_state()

    def test_leading_question_mark_and_fragment(self):
        result = decode("https://journal.example/trades?side=Sell#top")
        assert result.value.criteria.sides == frozenset({Side.SELL})

    def test_unknown_params_ignored(self):
        result = decode("?symbols=btc&utm_source=newsletter")
        assert result.value.criteria.symbols == frozenset({"BTC"})
        assert result.ok

    def test_malformed_value_dropped(self):
        result = decode("pnlMin=abc&symbols=BTC")
        assert result.value.criteria.pnl_min is None
        assert result.value.criteria.symbols == frozenset({"BTC"})
        assert result.rejected_fields == {"pnl_min"}

    def test_last_occurrence_wins(self):
        assert decode("side=Buy&side=Sell").value.criteria.sides == frozenset({Side.SELL})

    def test_blank_values_are_unconstrained(self):
        result = decode("symbols=&markets=")
        assert result.value.criteria.is_empty()
        assert result.ok

    def test_escaped_values(self):
        assert decode("symbols=EUR%2FUSD").value.criteria.symbols == frozenset({"EUR/USD"})

    def test_page_and_size(self):
        assert decode("page=3&pageSize=100").value.page == PageState(page=3, page_size=100)

    def test_bad_page_falls_back(self):
        result = decode("page=0&pageSize=7")
        assert result.value.page == PageState()
        assert result.rejected_fields == {"page", "page_size"}

    def test_markets_case_insensitive(self):
        assert decode("markets=Crypto,FOREX").value.criteria.markets == frozenset(
            {Market.CRYPTO, Market.FOREX})

    def test_empty(self):
        assert decode("").value == QueryState()


class TestRoundTrip:
    @pytest.mark.parametrize("kwargs", ROUND_TRIP_CRITERIA)
    def test_criteria_survive_query_string(self, kwargs):
        criteria = FilterCriteria(**kwargs)
        result = decode(encode(criteria))
        assert result.issues == ()
        assert result.value.criteria == criteria

    @pytest.mark.parametrize("kwargs", ROUND_TRIP_CRITERIA)
    @pytest.mark.parametrize("sort", [
        DEFAULT_SORT,
        SortSpec("symbol", "asc"),
        SortSpec("pnl", "desc"),
        SortSpec("emotionCount", "asc"),
    ])
    @pytest.mark.parametrize("page", [PageState(), PageState(page=3, page_size=100)])
    def test_state_survives_query_string(self, kwargs, sort, page):
        state = QueryState(criteria=FilterCriteria(**kwargs), sort=sort, page=page)
        result = decode(encode_state(state))
        assert result.issues == ()
        assert result.value == state

    def test_reserved_characters_are_escaped(self):
        query = encode(FilterCriteria(symbols=["^GSPC", "ES=F"], strategy="acct:swing-2"))
        assert query == "symbols=ES%3DF,%5EGSPC&strategy=acct:swing-2"


class TestCarriesFilters:
    @pytest.mark.parametrize("query,expected", [
        ("", False),
        ("page=2", False),
        ("page=2&pageSize=50", False),
        ("side=", False),
        ("utm_source=x", False),
        ("side=Buy", True),
        ("sort=pnl:asc", True),
        ("?emotions=FOMO&page=2", True),
    ])
    def test_carries_filters(self, query, expected):
        assert carries_filters(query) is expected


class TestShareableUrl:
    def test_replaces_existing_query(self):
        state = QueryState(criteria=FilterCriteria(sides=["Buy"]))
        assert build_shareable_url("https://journal.example/trades?old=1", state) == \
            "https://journal.example/trades?side=Buy"

    def test_default_state_has_no_query(self):
        assert build_shareable_url("https://journal.example/trades", QueryState()) == \
            "https://journal.example/trades"


class TestInMemoryHistory:
    def test_replace_keeps_length(self):
        h = InMemoryHistory()
        h.replace("/trades?side=Buy")
        assert h.entries == ["/trades?side=Buy"]

    def test_push_and_back(self):
        h = InMemoryHistory()
        h.push("/trades?side=Buy")
        assert h.current == "/trades?side=Buy"
        assert h.back() == "/trades"
        assert h.back() == "/trades"

    def test_push_truncates_forward_entries(self):
        h = InMemoryHistory()
        h.push("/a")
        h.push("/b")
        h.back()
        h.push("/c")
        assert h.entries == ["/trades", "/a", "/c"]


class TestUrlSynchronizer:
    def test_url_for_default_state(self):
        assert UrlSynchronizer(InMemoryHistory()).url_for(QueryState()) == "/trades"

    def test_sync_replaces_by_default(self):
        history = InMemoryHistory()
        sync = UrlSynchronizer(history)
        state = QueryState(criteria=FilterCriteria(symbols=["BTC", "ETH"], sides=["Buy"]))
        assert sync.sync(state)
        assert history.entries == ["/trades?symbols=BTC,ETH&side=Buy"]

    def test_unchanged_url_not_rewritten(self):
        history = InMemoryHistory()
        sync = UrlSynchronizer(history)
        state = QueryState(criteria=FilterCriteria(sides=["Sell"]))
        assert sync.sync(state)
        assert not sync.sync(state)

    def test_navigate_pushes(self):
        history = InMemoryHistory()
        sync = UrlSynchronizer(history)
        sync.sync(QueryState(criteria=FilterCriteria(sides=["Sell"])), navigate=True)
        assert history.entries == ["/trades", "/trades?side=Sell"]

    def test_read_marks_url_as_written(self):
        history = InMemoryHistory("/trades?side=Buy")
        sync = UrlSynchronizer(history)
        result = sync.read("side=Buy")
        assert not sync.sync(result.value)

    def test_read_with_issues_forces_rewrite(self):
        history = InMemoryHistory("/trades?side=Buy&pnlMin=abc")
        sync = UrlSynchronizer(history)
        result = sync.read("side=Buy&pnlMin=abc")
        assert sync.sync(result.value)
        assert history.current == "/trades?side=Buy"

    def test_custom_base_path(self):
        sync = UrlSynchronizer(InMemoryHistory("/journal"), base_path="/journal")
        state = QueryState(criteria=FilterCriteria(outcome="profitable"))
        assert sync.url_for(state) == "/journal?outcome=profitable"
