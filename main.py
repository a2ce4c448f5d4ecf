#!/usr/bin/env python3
"""
Trade Journal: serve the API or query the journal from the command line.

Usage:
    python main.py serve                            # http://localhost:8000
    python main.py serve --port 9000 --reload
    python main.py init-db --db journal.sqlite --seed trades.json
    python main.py query "symbols=BTC,ETH&side=Buy&sort=pnl:desc"
    python main.py query --json "emotions=FOMO"
    python main.py query                            # reuse the last saved filters
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from engine import sqlite_store
from engine.orchestrator import QueryOrchestrator, Status
from engine.persistence import JsonFileStorage, PersistenceStore
from engine.scheduling import AsyncioScheduler
from engine.sources import SqliteRecordSource
from engine.url_sync import InMemoryHistory, UrlSynchronizer
from utils.config import AppConfig, EngineConfig
from utils.formatting import (
    TableFormatter,
    format_count,
    format_minutes,
    format_percent,
    format_pnl,
)
from utils.logging import configure_logging

logger = logging.getLogger("trade_journal")


def _db_path(args: argparse.Namespace) -> Path:
    if args.db is not None:
        return args.db
    return AppConfig.from_env().db_path


def cmd_serve(args: argparse.Namespace) -> int:
    if args.db is not None:
        os.environ["APP_DB_PATH"] = str(args.db)
    db_path = _db_path(args)
    if not db_path.exists():
        print(f"Warning: Database not found at {db_path}")
        print("  Run 'python main.py init-db' first, or pass --db /path/to/journal.sqlite")
        print()

    import uvicorn

    print(f"Starting Trade Journal API at http://{args.host}:{args.port}")
    print(f"Database: {db_path}")
    uvicorn.run(
        "api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    db_path = _db_path(args)
    conn = sqlite_store.connect(db_path)
    try:
        sqlite_store.ensure_schema(conn)
        written = 0
        if args.seed is not None:
            with open(args.seed, "r", encoding="utf-8") as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                print(f"Error: {args.seed} must contain a JSON array of trades", file=sys.stderr)
                return 2
            written = sqlite_store.upsert_trades(conn, rows)
    finally:
        conn.close()
    print(f"Initialized {db_path} ({format_count(written)} trades loaded)")
    return 0


async def _run_query(args: argparse.Namespace, config: EngineConfig) -> QueryOrchestrator:
    persistence = None
    if not args.no_persist:
        persistence = PersistenceStore(JsonFileStorage(config.storage_path),
                                       namespace=config.storage_namespace)
    orchestrator = QueryOrchestrator.from_url(
        SqliteRecordSource(_db_path(args)),
        args.query,
        persistence=persistence,
        url_sync=UrlSynchronizer(InMemoryHistory()),
        scheduler=AsyncioScheduler(),
        config=config,
    )
    orchestrator.start()
    await orchestrator.wait_idle()
    if persistence is not None and orchestrator.status is Status.READY:
        persistence.save(orchestrator.state.criteria, orchestrator.state.sort)
    return orchestrator


def _print_view(orchestrator: QueryOrchestrator) -> None:
    view = orchestrator.view
    table = TableFormatter(["ID", "Date", "Symbol", "Market", "Side", "P&L", "Emotions"])
    for r in view.records:
        table.add_row([
            r.id,
            r.trade_date.isoformat() if r.trade_date else None,
            r.symbol,
            r.market.value if r.market else None,
            r.side.value if r.side else None,
            format_pnl(r.pnl),
            ",".join(r.emotions) or None,
        ])
    table.print_table()

    w = view.window
    stats = view.statistics
    print()
    print(f"Page {w.effective_page} of {w.page_count} "
          f"({format_count(w.total_count)} matching trades)")
    print(f"Total P&L: {format_pnl(stats.total_pnl)}   "
          f"Win rate: {format_percent(stats.win_rate)}   "
          f"Profit factor: {stats.profit_factor:.2f}   "
          f"Avg hold: {format_minutes(stats.avg_hold_minutes)}")
    if orchestrator.url_sync is not None:
        print(f"URL: {orchestrator.url_sync.url_for(orchestrator.state)}")


def cmd_query(args: argparse.Namespace) -> int:
    config = EngineConfig.from_env()
    orchestrator = asyncio.run(_run_query(args, config))

    for issue in orchestrator.issues:
        print(f"Ignored {issue.field}: {issue.reason.value} ({issue.value})", file=sys.stderr)
    if orchestrator.status is Status.ERROR:
        print(f"Error: {orchestrator.error}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(orchestrator.snapshot(), indent=2, default=str))
    else:
        _print_view(orchestrator)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Filter, sort and summarize trading journal entries.",
    )
    parser.add_argument(
        "--db", type=Path, default=None,
        help="Path to SQLite database (default: trade_journal.sqlite or APP_DB_PATH env var)",
    )
    parser.add_argument(
        "--log-format", choices=("text", "json"), default=None,
        help="Log output format (default: APP_LOG_FORMAT env var or text)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument(
        "--port", type=int, default=int(os.getenv("APP_PORT", "8000")),
        help="Port to listen on (default: 8000 or APP_PORT env var)",
    )
    serve.add_argument("--reload", action="store_true",
                       help="Enable auto-reload on file changes (development mode)")
    serve.set_defaults(func=cmd_serve)

    init_db = sub.add_parser("init-db", help="Create the trades table")
    init_db.add_argument("--seed", type=Path, default=None,
                         help="JSON file with an array of trades to load")
    init_db.set_defaults(func=cmd_init_db)

    query = sub.add_parser("query", help="Print one page of trades and summary statistics")
    query.add_argument("query", nargs="?", default="",
                       help="Query string, e.g. 'symbols=BTC,ETH&side=Buy' (default: saved filters)")
    query.add_argument("--json", action="store_true", help="Print the view as JSON")
    query.add_argument("--no-persist", action="store_true",
                       help="Neither read nor write the saved filters")
    query.set_defaults(func=cmd_query)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_format or AppConfig.from_env().log_format,
                      level=logging.DEBUG if args.verbose else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
