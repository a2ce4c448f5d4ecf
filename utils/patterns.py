"""Pre-compiled regex patterns for the trade journal tools.

All patterns are compiled once at module import so hot paths (query-string
decoding, record parsing) don't recompile them per call.

Usage:
    from utils.patterns import ISO_DATE, SYMBOL

    if ISO_DATE.match(text):
        ...
"""

import re

# Calendar dates in the one format the query string accepts: YYYY-MM-DD
ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

# Ticker symbols after upper-casing: BTC, ETH-USD, BRK.B, EUR/USD, ES=F
# Commas and whitespace are excluded because they delimit query-string lists
SYMBOL = re.compile(r'^[A-Z0-9^][A-Z0-9._/=^-]*$')

# Strategy identifiers: UUIDs, slugs, numeric ids
STRATEGY_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.:-]*$')

# Wall-clock times on trades: "09:30", "9:30", "16:05:00"
CLOCK_TIME = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')

# Currency symbols for stripping during numeric conversion
CURRENCY_SYMBOLS = re.compile(r'[\$€£¥₹₽]')
