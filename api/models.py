"""
Pydantic request/response models for the trade journal API.

Optional fields default to None so that partial responses are valid when
database rows have NULL columns.  Field() descriptions and examples feed the
OpenAPI docs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ── Trade models ──────────────────────────────────────────────────────────────

class TradeOut(BaseModel):
    """A single journal trade."""
    id: int = Field(..., description="Unique trade ID", examples=[1042])
    trade_date: str | None = Field(None, description="Trade date (YYYY-MM-DD)", examples=["2024-03-18"])
    symbol: str = Field(..., description="Ticker symbol", examples=["BTC"])
    market: str | None = Field(None, description="stock | crypto | forex | futures", examples=["crypto"])
    side: str | None = Field(None, description="Buy | Sell", examples=["Buy"])
    pnl: float | None = Field(None, description="Realized profit or loss", examples=[125.5])
    emotions: list[str] = Field(default_factory=list, description="Emotion tags recorded on the trade",
                                examples=[["FOMO", "CONFIDENT"]])
    strategy_id: str | None = Field(None, description="Strategy identifier")
    entry_time: str | None = Field(None, description="Entry clock time (HH:MM)", examples=["09:30"])
    exit_time: str | None = Field(None, description="Exit clock time (HH:MM)", examples=["11:05"])


class ValidationIssueOut(BaseModel):
    """A query parameter that was dropped because it did not validate."""
    field: str = Field(..., description="Criteria field or parameter", examples=["pnl_min"])
    reason: str = Field(..., description="Machine-readable reason", examples=["not_a_number"])
    value: str | None = Field(None, description="Rejected raw value", examples=["abc"])
    detail: str | None = Field(None, description="Human-readable hint")


class TradePageResponse(BaseModel):
    """Response body for GET /api/v1/trades."""
    items: list[TradeOut] = Field(..., description="Trades on this page")
    total: int = Field(..., description="Total matching trades (before pagination)", examples=[318])
    page: int = Field(..., description="Effective page after clamping (1-indexed)", examples=[1])
    page_size: int = Field(..., description="Page size used", examples=[25])
    page_count: int = Field(..., description="Number of pages (at least 1)", examples=[13])
    start_index: int = Field(..., description="Index of the first item on this page", examples=[0])
    end_index: int = Field(..., description="Index one past the last item on this page", examples=[25])
    has_next: bool = Field(..., description="Whether a later page exists")
    query: str = Field(..., description="Canonical query string for this view",
                       examples=["symbols=BTC,ETH&side=Buy"])
    active_filters: int = Field(..., description="Number of constrained criteria fields", examples=[2])
    dataset_version: str = Field(..., description="Identity of the data this page was read from")
    warnings: list[ValidationIssueOut] = Field(default_factory=list,
                                               description="Parameters that were ignored")


# ── Statistics models ─────────────────────────────────────────────────────────

class EmotionBucketOut(BaseModel):
    """Per-emotion distribution for the radar chart."""
    label: str = Field(..., examples=["FOMO"])
    buy_count: int
    sell_count: int
    unknown_count: int
    total: int
    share: float = Field(..., description="Percent of all emotion tag occurrences")
    leaning: float = Field(..., description="(buy - sell) / total * 100, from -100 to 100")
    leaning_label: str = Field(..., examples=["Buy Leaning"])
    display_value: float = Field(..., description="Radar value on a 10-100 scale")


class StatisticsOut(BaseModel):
    """Summary statistics over every trade matching the filter."""
    trade_count: int
    total_pnl: float
    win_count: int
    loss_count: int
    win_rate: float = Field(..., description="Percent of trades with positive P&L")
    gross_profit: float
    gross_loss: float
    profit_factor: float = Field(..., description="Gross profit / gross loss, capped at 999")
    avg_hold_minutes: float
    sharpe_ratio: float
    cumulative_pnl: list[float] = Field(..., description="Running P&L in chronological order")
    side_counts: dict[str, int]
    market_counts: dict[str, int]
    emotions: list[EmotionBucketOut]


class StatisticsResponse(BaseModel):
    """Response body for GET /api/v1/trades/stats."""
    query: str = Field(..., description="Canonical query string the statistics were computed for")
    dataset_version: str
    statistics: StatisticsOut
    warnings: list[ValidationIssueOut] = Field(default_factory=list)


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: Any = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
