"""Shared SQL query builder utilities for the trades table.

Provides WHERE clause and ORDER BY construction used by the SQLite record
source and the trades API routes.  The semantics mirror the in-memory
matcher in ``engine.filtering``: inclusive date bounds, case-insensitive
symbol/market/side matching, missing P&L treated as zero and ties broken by
ascending id.
"""

from typing import Any


# Sort field token -> SQL expression.  Only these may appear in ORDER BY.
SORT_EXPRESSIONS = {
    "date": "trade_date",
    "symbol": "upper(symbol)",
    "pnl": "COALESCE(pnl, 0)",
    "side": "COALESCE(side, '')",
    "market": "COALESCE(lower(market), '')",
    "emotionCount": (
        "CASE WHEN json_valid(emotional_state) "
        "AND json_type(emotional_state) = 'array' "
        "THEN json_array_length(emotional_state) ELSE 0 END"
    ),
}

DEFAULT_SORT_FIELD = "date"

# Tags stored either as a JSON array/string or as a bare word.
_EMOTION_MATCH = (
    "(EXISTS (SELECT 1 FROM json_each("
    "CASE WHEN json_valid(emotional_state) THEN emotional_state ELSE '[]' END"
    ") WHERE upper(json_each.value) IN ({ph}))"
    " OR (NOT json_valid(emotional_state) AND upper(trim(emotional_state)) IN ({ph})))"
)


def _in_clause(expr: str, values: list[Any], params: list[Any]) -> str:
    placeholders = ",".join("?" * len(values))
    params.extend(values)
    return f"{expr} IN ({placeholders})"


def build_where_clause(
    date_from: str | None = None,
    date_to: str | None = None,
    symbols: list[str] | None = None,
    markets: list[str] | None = None,
    sides: list[str] | None = None,
    emotions: list[str] | None = None,
    strategy: str | None = None,
    pnl_min: float | None = None,
    pnl_max: float | None = None,
    outcome: str | None = None,
) -> tuple[str, list[Any]]:
    """Build a SQL WHERE clause from trade filter parameters.

    Args:
        date_from: Inclusive lower bound on trade_date (ISO date).
        date_to: Inclusive upper bound on trade_date (ISO date).
        symbols: Ticker symbols (matched case-insensitively).
        markets: Market categories (stock, crypto, forex, futures).
        sides: Trade sides (Buy, Sell).
        emotions: Emotion tags; a trade matches if it carries any of them.
        strategy: Exact strategy identifier.
        pnl_min: Minimum P&L (missing P&L counts as 0).
        pnl_max: Maximum P&L.
        outcome: "profitable" (P&L > 0) or "lossable" (P&L < 0).

    Returns:
        Tuple of (where_clause_string, params_list). The where_clause_string
        starts with "WHERE " if any conditions exist, or is "" if none.
    """
    conditions: list[str] = []
    params: list[Any] = []

    if date_from:
        conditions.append("trade_date >= ?")
        params.append(date_from)

    if date_to:
        conditions.append("trade_date <= ?")
        params.append(date_to)

    if symbols:
        conditions.append(_in_clause("upper(symbol)", [s.upper() for s in symbols], params))

    if markets:
        conditions.append(_in_clause("lower(market)", [m.lower() for m in markets], params))

    if sides:
        conditions.append(_in_clause("lower(side)", [s.lower() for s in sides], params))

    if emotions:
        tags = [e.upper() for e in emotions]
        ph = ",".join("?" * len(tags))
        conditions.append(_EMOTION_MATCH.format(ph=ph))
        params.extend(tags)
        params.extend(tags)

    if strategy:
        conditions.append("strategy_id = ?")
        params.append(strategy)

    if pnl_min is not None:
        conditions.append("COALESCE(pnl, 0) >= ?")
        params.append(pnl_min)

    if pnl_max is not None:
        conditions.append("COALESCE(pnl, 0) <= ?")
        params.append(pnl_max)

    if outcome == "profitable":
        conditions.append("COALESCE(pnl, 0) > 0")
    elif outcome == "lossable":
        conditions.append("COALESCE(pnl, 0) < 0")
    elif outcome is not None:
        raise ValueError(f"Invalid outcome: '{outcome}'. Must be 'profitable' or 'lossable'")

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(sort_by: str, sort_dir: str) -> str:
    """Build a safe SQL ORDER BY clause for the trades table.

    Args:
        sort_by: Sort field token (see SORT_EXPRESSIONS); unknown tokens
            fall back to DEFAULT_SORT_FIELD.
        sort_dir: Direction: 'asc' or 'desc' (case-insensitive).

    Returns:
        ORDER BY clause string, e.g. "ORDER BY trade_date DESC, id ASC".
    """
    expr = SORT_EXPRESSIONS.get(sort_by, SORT_EXPRESSIONS[DEFAULT_SORT_FIELD])
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    return f"ORDER BY {expr} {direction}, id ASC"
