"""Logging setup shared by the API server and the CLI.

``configure_logging("json")`` emits newline-delimited JSON records; any other
format gives the plain ``asctime level name message`` layout.
"""

import json
import logging

# Extra fields copied into JSON output when a record carries them
# (set via ``logger.info("...", extra={...})``).
_EXTRA_FIELDS = (
    "method", "path", "status", "duration_ms", "client_ip", "request_id",
    "seq", "status_from", "status_to", "fingerprint", "total",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def make_handler(fmt: str = "text") -> logging.Handler:
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    return handler


def configure_logging(fmt: str = "text", level: int | str = logging.INFO) -> logging.Handler:
    """Install a single root handler in *fmt* ("text" or "json") and return it."""
    handler = make_handler(fmt)
    logging.basicConfig(handlers=[handler], level=level, force=True)
    return handler
