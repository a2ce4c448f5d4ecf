"""Shared utilities for the trade journal service and CLI."""

# Pattern definitions
from utils.patterns import ISO_DATE, SYMBOL, STRATEGY_ID, CLOCK_TIME

# String utilities
from utils.strings import parse_number, format_number, split_csv

# Caching
from utils.cache import LRUCache

# SQL builders
from utils.query import build_where_clause, build_order_clause, SORT_EXPRESSIONS

# Configuration
from utils.config import Config, EngineConfig, AppConfig

# Logging
from utils.logging import JsonFormatter, configure_logging

# HTTP
from utils.http import RetryStrategy, SessionManager

# Output formatting
from utils.formatting import (
    format_pnl,
    format_percent,
    format_count,
    format_minutes,
    TableFormatter,
)

__all__ = [
    "ISO_DATE",
    "SYMBOL",
    "STRATEGY_ID",
    "CLOCK_TIME",
    "parse_number",
    "format_number",
    "split_csv",
    "LRUCache",
    "build_where_clause",
    "build_order_clause",
    "SORT_EXPRESSIONS",
    "Config",
    "EngineConfig",
    "AppConfig",
    "JsonFormatter",
    "configure_logging",
    "RetryStrategy",
    "SessionManager",
    "format_pnl",
    "format_percent",
    "format_count",
    "format_minutes",
    "TableFormatter",
]
