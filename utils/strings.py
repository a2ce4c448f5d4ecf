"""String processing utilities for the trade journal tools.

Query-string values always arrive as text; these helpers turn them into
typed values without raising, so callers can decide how to report a bad one.
"""

import math

from utils.patterns import CURRENCY_SYMBOLS


def parse_number(val) -> float | None:
    """Parse a numeric value, returning ``None`` when it is not a finite number.

    Handles:
    - None, empty strings -> None
    - int/float (bool excluded) -> float
    - Strings with currency symbols, whitespace, thousands separators
    - NaN / infinity / garbage -> None

    Examples:
        parse_number("1,250.5") -> 1250.5
        parse_number("$-40") -> -40.0
        parse_number("abc") -> None
    """
    if val is None or val == '' or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        number = float(val)
        return number if math.isfinite(number) else None

    try:
        s = CURRENCY_SYMBOLS.sub('', str(val))
        s = s.replace(',', '').strip()
        number = float(s) if s else None
    except (ValueError, TypeError):
        return None
    if number is None or not math.isfinite(number):
        return None
    return number


def format_number(value: float) -> str:
    """Shortest text that parses back to *value*: 100.0 -> "100", 2.5 -> "2.5"."""
    if value.is_integer():
        return str(int(value))
    return repr(value)


def split_csv(val) -> list[str]:
    """Split a comma-joined query value into trimmed, non-empty parts.

    Lists and tuples are flattened the same way so storage payloads and
    query strings share one code path.

    Example:
        " BTC, ,ETH" -> ["BTC", "ETH"]
    """
    if val is None:
        return []
    if isinstance(val, (list, tuple, set, frozenset)):
        parts: list[str] = []
        for item in val:
            parts.extend(split_csv(item))
        return parts
    return [p.strip() for p in str(val).split(",") if p.strip()]
