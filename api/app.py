"""
FastAPI application factory for the trade journal API.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_DB_PATH=/data/journal.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Structured JSON logging when APP_LOG_FORMAT=json; CORS origins from
APP_CORS_ORIGINS.
"""

import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import api.database as _db
from api.routes import trades
from engine.aggregation import AggregationMemoizer
from engine.errors import EngineError, FetchError
from utils.config import AppConfig, EngineConfig
from utils.logging import configure_logging

_logger = logging.getLogger("trade_journal_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warn on startup when the database file is missing."""
    db_path = _db.get_db_path()
    if not db_path.exists():
        _logger.warning(
            "Database not found at %s. Run 'python main.py init-db' first.", db_path
        )
    yield


def create_app(db_path: Path | None = None, config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).
        config: Override environment-derived settings.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config or AppConfig.from_env()
    configure_logging(cfg.log_format)
    _db.set_db_path(db_path if db_path is not None else cfg.db_path)

    app = FastAPI(
        title="Trade Journal API",
        summary="Filter, sort, page and summarize journal trades.",
        description=(
            "## Trade Journal API\n\n"
            "Query parameters use the same canonical encoding as the journal's "
            "address bar, so a page URL can be replayed against the API as-is.\n\n"
            "- Unknown parameters are ignored.\n"
            "- Malformed values are dropped and reported under `warnings`.\n"
            "- A page past the end is clamped to the last page."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "trades",
                "description": "List, filter, sort and summarize journal trades.",
            },
            {
                "name": "meta",
                "description": "Health check.",
            },
        ],
    )
    app.state.memoizer = AggregationMemoizer(maxsize=EngineConfig.from_env().cache_size)
    app.state.config = cfg

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Request logging middleware ────────────────────────────────────────────

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log each request with a short request ID and its duration."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        if duration_ms > 500:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Request failed", "detail": exc.detail,
                     "status_code": exc.status_code},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc), "status_code": 500},
        )

    @app.exception_handler(FetchError)
    async def fetch_error_handler(request: Request, exc: FetchError):
        return JSONResponse(
            status_code=503,
            content={"error": "Record source unavailable", "detail": str(exc),
                     "status_code": 503},
        )

    @app.exception_handler(sqlite3.Error)
    async def sqlite_error_handler(request: Request, exc: sqlite3.Error):
        _logger.warning("database error on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "Database unavailable", "detail": str(exc), "status_code": 503},
        )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad request", "detail": str(exc), "status_code": 400},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad request", "detail": str(exc), "status_code": 400},
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the API is running and can reach the database."""
        db_path = _db.get_db_path()
        if not db_path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(db_path)},
            )
        try:
            conn = sqlite3.connect(str(db_path))
            try:
                count = conn.execute("SELECT COUNT(*) FROM trades").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        return {
            "status": "ok",
            "database": str(db_path),
            "trades": count,
            "cache": app.state.memoizer.cache_stats(),
        }

    # ── Register routers ──────────────────────────────────────────────────────

    app.include_router(trades.router, prefix="/api/v1")

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    _cfg = app.state.config
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
