"""JSON-lines logging for the relay.

Every entry is one JSON object on stdout, optionally mirrored to
AUDIT_LOG_FILE. Request payloads are only logged at DEBUG, which
ENABLE_DEBUG turns on regardless of LOG_LEVEL. API keys never reach a log call.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from aichat_proxy.config.settings import Settings, get_settings

LOGGER_NAME = "aichat_proxy.audit"

# Set per /proxy call so every line of one relay shares an id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra={"audit_data": {...}}`` is flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": request_id_var.get(),
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "audit_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _level_for(settings: Settings) -> int:
    if settings.enable_debug:
        return logging.DEBUG
    level = logging.getLevelName(settings.log_level.upper())
    # Unknown names come back as the string "Level <name>"
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """(Re)build the relay logger's handlers from the current settings."""
    settings = get_settings()
    logger = get_audit_logger()
    logger.setLevel(_level_for(settings))

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file, encoding="utf-8"))
    formatter = JSONFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Wall-clock latency of the upstream round trip, in milliseconds."""

    def __init__(self):
        self.elapsed_ms: float = 0.0
        self._started: float = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000, 2)
