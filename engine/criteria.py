"""
Value objects describing what the trade list should show.

FilterCriteria, SortSpec and PageState are frozen dataclasses: a change
always produces a new value, so equality (or identity) tells the
orchestrator whether any work is needed.  Construction normalizes input
(empty sets become ``None``, symbols and emotions are upper-cased) and
raises ``ValidationError`` for values that can never be valid.  Untrusted
input should go through ``engine.validator`` instead, which never raises.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

from engine.errors import ValidationError
from utils.patterns import STRATEGY_ID, SYMBOL


class _LabelEnum(str, Enum):
    """String enum whose lookup ignores case and surrounding whitespace."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            needle = value.strip().lower()
            for member in cls:
                if member.value.lower() == needle:
                    return member
        return None

    def __str__(self) -> str:
        return self.value


class Market(_LabelEnum):
    STOCK = "stock"
    CRYPTO = "crypto"
    FOREX = "forex"
    FUTURES = "futures"


class Side(_LabelEnum):
    BUY = "Buy"
    SELL = "Sell"


class Outcome(_LabelEnum):
    PROFITABLE = "profitable"
    LOSSABLE = "lossable"


class SortField(_LabelEnum):
    DATE = "date"
    SYMBOL = "symbol"
    PNL = "pnl"
    SIDE = "side"
    MARKET = "market"
    EMOTION_COUNT = "emotionCount"


class SortDirection(_LabelEnum):
    ASC = "asc"
    DESC = "desc"


# Emotion vocabulary recognised by the journal (upper-case canonical form).
KNOWN_EMOTIONS: tuple[str, ...] = (
    "FOMO", "REVENGE", "TILT", "OVERRISK", "PATIENCE",
    "REGRET", "DISCIPLINE", "CONFIDENT", "ANXIOUS", "NEUTRAL",
)

ALLOWED_PAGE_SIZES: tuple[int, ...] = (25, 50, 100)
DEFAULT_PAGE_SIZE = 25


def _as_iterable(value: Any) -> Iterable[Any]:
    if isinstance(value, (str, Enum)):
        return (value,)
    return value


def _coerce_enum_set(name: str, values: Any, enum_cls: type[Enum]) -> frozenset | None:
    if values is None:
        return None
    members = set()
    for raw in _as_iterable(values):
        try:
            members.add(enum_cls(raw))
        except ValueError:
            raise ValidationError(name, "unknown value", raw) from None
    return frozenset(members) or None


def _coerce_date(name: str, value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise ValidationError(name, "not a date", value)


def _coerce_bound(name: str, value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(name, "not a number", value)
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(name, "not a finite number", value)
    return number


@dataclass(frozen=True)
class FilterCriteria:
    """Selection constraints; ``None`` on any field means unconstrained."""

    date_from: date | None = None
    date_to: date | None = None
    symbols: frozenset[str] | None = None
    markets: frozenset[Market] | None = None
    sides: frozenset[Side] | None = None
    emotions: frozenset[str] | None = None
    strategy: str | None = None
    pnl_min: float | None = None
    pnl_max: float | None = None
    outcome: Outcome | None = None

    def __post_init__(self) -> None:
        set_ = object.__setattr__

        date_from = _coerce_date("date_from", self.date_from)
        date_to = _coerce_date("date_to", self.date_to)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_range", "start is after end", (date_from, date_to))
        set_(self, "date_from", date_from)
        set_(self, "date_to", date_to)

        symbols = None
        if self.symbols is not None:
            symbols = frozenset(
                str(s).strip().upper() for s in _as_iterable(self.symbols) if str(s).strip()
            ) or None
            for symbol in symbols or ():
                if not SYMBOL.match(symbol):
                    raise ValidationError("symbols", "malformed symbol", symbol)
        set_(self, "symbols", symbols)

        set_(self, "markets", _coerce_enum_set("markets", self.markets, Market))
        set_(self, "sides", _coerce_enum_set("sides", self.sides, Side))

        emotions = None
        if self.emotions is not None:
            emotions = frozenset(
                str(e).strip().upper() for e in _as_iterable(self.emotions) if str(e).strip()
            ) or None
            for emotion in emotions or ():
                if emotion not in KNOWN_EMOTIONS:
                    raise ValidationError("emotions", "unknown value", emotion)
        set_(self, "emotions", emotions)

        strategy = self.strategy.strip() if isinstance(self.strategy, str) else self.strategy
        if strategy is not None and not isinstance(strategy, str):
            raise ValidationError("strategy", "not a string", strategy)
        if strategy and not STRATEGY_ID.match(strategy):
            raise ValidationError("strategy", "malformed identifier", strategy)
        set_(self, "strategy", strategy or None)

        pnl_min = _coerce_bound("pnl_min", self.pnl_min)
        pnl_max = _coerce_bound("pnl_max", self.pnl_max)
        if pnl_min is not None and pnl_max is not None and pnl_min > pnl_max:
            raise ValidationError("pnl_range", "minimum exceeds maximum", (pnl_min, pnl_max))
        set_(self, "pnl_min", pnl_min)
        set_(self, "pnl_max", pnl_max)

        if self.outcome is not None:
            try:
                set_(self, "outcome", Outcome(self.outcome))
            except ValueError:
                raise ValidationError("outcome", "unknown value", self.outcome) from None

    def replace(self, **changes: Any) -> "FilterCriteria":
        """Return a copy with *changes* applied (re-normalized)."""
        return dataclasses.replace(self, **changes)

    def is_empty(self) -> bool:
        return self.active_filter_count() == 0

    def active_filter_count(self) -> int:
        """Number of constrained fields (each date bound counts once)."""
        return sum(1 for f in dataclasses.fields(self) if getattr(self, f.name) is not None)

    def to_dict(self) -> dict[str, Any]:
        """Canonical, JSON-ready form: absent fields omitted, sets sorted."""
        out: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, date):
                out[f.name] = value.isoformat()
            elif isinstance(value, frozenset):
                out[f.name] = sorted(str(v) for v in value)
            elif isinstance(value, Enum):
                out[f.name] = value.value
            else:
                out[f.name] = value
        return out


@dataclass(frozen=True)
class SortSpec:
    field: SortField = SortField.DATE
    direction: SortDirection = SortDirection.DESC

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "field", SortField(self.field))
        except ValueError:
            raise ValidationError("sort", "unknown sort field", self.field) from None
        try:
            object.__setattr__(self, "direction", SortDirection(self.direction))
        except ValueError:
            raise ValidationError("sort", "unknown sort direction", self.direction) from None

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC

    def to_token(self) -> str:
        """``field:direction``, the form used in query strings and storage."""
        return f"{self.field.value}:{self.direction.value}"

    @classmethod
    def from_token(cls, token: str) -> "SortSpec":
        name, _, direction = token.partition(":")
        return cls(field=name, direction=direction or SortDirection.DESC)


DEFAULT_SORT = SortSpec()


@dataclass(frozen=True)
class PageState:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise ValidationError("page", "must be an integer >= 1", self.page)
        if self.page_size not in ALLOWED_PAGE_SIZES:
            raise ValidationError("page_size", f"must be one of {ALLOWED_PAGE_SIZES}", self.page_size)

    def with_page(self, page: int) -> "PageState":
        if page == self.page:
            return self
        return PageState(page=page, page_size=self.page_size)


@dataclass(frozen=True)
class QueryState:
    """Everything one fetch cycle is parameterized by."""

    criteria: FilterCriteria = field(default_factory=FilterCriteria)
    sort: SortSpec = DEFAULT_SORT
    page: PageState = field(default_factory=PageState)

    def replace(self, **changes: Any) -> "QueryState":
        return dataclasses.replace(self, **changes)
