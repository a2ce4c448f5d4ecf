"""In-memory matching and ordering of trade records.

Used by the in-memory record source and by the aggregation memoizer to
derive the filtered, sorted index list for a RecordSet.  The SQL record
source implements the same semantics in ``utils.query``.
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

from engine.criteria import FilterCriteria, Outcome, SortField, SortSpec
from engine.records import TradeRecord


def matches(record: TradeRecord, criteria: FilterCriteria) -> bool:
    """True if *record* satisfies every constrained field of *criteria*.

    Date bounds are inclusive; a record without a date fails any date bound.
    Emotions match when the record carries at least one selected tag.
    """
    if criteria.date_from is not None or criteria.date_to is not None:
        if record.trade_date is None:
            return False
        if criteria.date_from is not None and record.trade_date < criteria.date_from:
            return False
        if criteria.date_to is not None and record.trade_date > criteria.date_to:
            return False
    if criteria.symbols is not None and record.symbol.upper() not in criteria.symbols:
        return False
    if criteria.markets is not None and record.market not in criteria.markets:
        return False
    if criteria.sides is not None and record.side not in criteria.sides:
        return False
    if criteria.emotions is not None and not criteria.emotions.intersection(record.emotions):
        return False
    if criteria.strategy is not None and record.strategy_id != criteria.strategy:
        return False

    pnl = record.pnl_value
    if criteria.pnl_min is not None and pnl < criteria.pnl_min:
        return False
    if criteria.pnl_max is not None and pnl > criteria.pnl_max:
        return False
    if criteria.outcome is Outcome.PROFITABLE and not pnl > 0:
        return False
    if criteria.outcome is Outcome.LOSSABLE and not pnl < 0:
        return False
    return True


# Missing values sort before present ones (ascending).
_SORT_KEYS: dict[SortField, Callable[[TradeRecord], Any]] = {
    SortField.DATE: lambda r: (r.trade_date is not None, r.trade_date.toordinal() if r.trade_date else 0),
    SortField.SYMBOL: lambda r: r.symbol,
    SortField.PNL: lambda r: r.pnl_value,
    SortField.SIDE: lambda r: r.side.value if r.side else "",
    SortField.MARKET: lambda r: r.market.value if r.market else "",
    SortField.EMOTION_COUNT: lambda r: len(r.emotions),
}


def apply(records: Sequence[TradeRecord], criteria: FilterCriteria, sort: SortSpec) -> list[int]:
    """Return indices into *records* that match *criteria*, in *sort* order.

    Ties are broken by ascending trade id in both directions, so the order is
    total and the same inputs always give the same page contents.
    """
    selected = [i for i, r in enumerate(records) if matches(r, criteria)]
    selected.sort(key=lambda i: records[i].id)
    key = _SORT_KEYS[sort.field]
    selected.sort(key=lambda i: key(records[i]), reverse=sort.descending)
    return selected
