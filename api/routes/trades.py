"""
GET /api/v1/trades endpoints.

The list and stats endpoints read the raw query string and decode it with
the same lenient decoder the client-side engine uses, so any URL the
address bar can hold is a valid API query.  Parameters that do not validate
are dropped and returned under ``warnings``; they never cause a 4xx.

    GET /api/v1/trades?symbols=BTC,ETH&side=Buy&sort=pnl:desc&page=2
    GET /api/v1/trades/stats?emotions=FOMO
    GET /api/v1/trades/{id}
"""

import logging
import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Request

from api.database import get_db
from api.models import StatisticsResponse, TradeOut, TradePageResponse, ValidationIssueOut
from engine import sqlite_store
from engine.aggregation import AggregationMemoizer, compute_statistics
from engine.criteria import PageState
from engine.pagination import paginate
from engine.url_sync import decode, encode_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trades", tags=["trades"])

_PARAMS_DOC = (
    "Query parameters: `from`, `to` (YYYY-MM-DD), `symbols`, `markets`, `side`, "
    "`emotions` (comma-separated), `strategy`, `pnlMin`, `pnlMax`, "
    "`outcome` (profitable|lossable), `sort` (field:direction), `page`, `pageSize` "
    "(25, 50 or 100)."
)


def _warnings(issues) -> list[ValidationIssueOut]:
    return [ValidationIssueOut(**i.to_dict()) for i in issues]


def _memoizer(request: Request) -> AggregationMemoizer:
    return request.app.state.memoizer


@router.get("", response_model=TradePageResponse, summary="List trades",
            description=_PARAMS_DOC)
def list_trades(
    request: Request,
    conn: sqlite3.Connection = Depends(get_db),
) -> TradePageResponse:
    """Return one page of filtered, sorted trades."""
    decoded = decode(request.url.query)
    state = decoded.value
    criteria, sort = state.criteria, state.sort

    total = sqlite_store.count_trades(conn, criteria)
    window = paginate(total, state.page)
    records = sqlite_store.select_trades(conn, criteria, sort,
                                         limit=window.limit, offset=window.offset)
    effective = state.replace(page=state.page.with_page(window.effective_page))

    return TradePageResponse(
        items=[TradeOut(**r.to_dict()) for r in records],
        total=total,
        page=window.effective_page,
        page_size=window.page_size,
        page_count=window.page_count,
        start_index=window.start_index,
        end_index=window.end_index,
        has_next=window.has_next,
        query=encode_state(effective),
        active_filters=criteria.active_filter_count(),
        dataset_version=sqlite_store.dataset_version(conn),
        warnings=_warnings(decoded.issues),
    )


@router.get("/stats", response_model=StatisticsResponse, summary="Trade statistics",
            description=_PARAMS_DOC + " Pagination parameters are ignored.")
def trade_stats(
    request: Request,
    conn: sqlite3.Connection = Depends(get_db),
) -> StatisticsResponse:
    """Summary statistics over every trade matching the filter."""
    decoded = decode(request.url.query)
    criteria, sort = decoded.value.criteria, decoded.value.sort
    version = sqlite_store.dataset_version(conn)
    memoizer = _memoizer(request)

    previous = getattr(request.app.state, "dataset_version", None)
    if previous is not None and previous != version:
        memoizer.invalidate(previous)
    request.app.state.dataset_version = version

    entry = memoizer.lookup(version, criteria, sort)
    if entry is None:
        records = sqlite_store.select_trades(conn, criteria, sort)
        entry = memoizer.store(version, criteria, sort, compute_statistics(records))
        logger.debug("statistics cache miss for %s", version)

    return StatisticsResponse(
        query=encode_state(decoded.value.replace(page=PageState())),
        dataset_version=version,
        statistics=entry.statistics.to_dict(),
        warnings=_warnings(decoded.issues),
    )


@router.get("/{trade_id}", response_model=TradeOut, summary="Get single trade")
def get_trade(
    trade_id: int,
    conn: sqlite3.Connection = Depends(get_db),
) -> TradeOut:
    """Return a single trade by ID."""
    record = sqlite_store.get_trade(conn, trade_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Trade {trade_id} not found")
    return TradeOut(**record.to_dict())
