"""
Logging for the hooksmith service.

Development gets one readable line per record; production gets one JSON
object per line. Every record carries the request_id bound by the request
middleware, so a generation can be followed from the HTTP request through
policy, backend call and commit.

Prompt text and completions can contain a user's personalization profile,
so log_event masks those keys instead of writing them out.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LOGGER_NAME = "hooksmith"

# Attributes lifted from ``extra=`` into the JSON line
_STRUCTURED_KEYS = (
    "user_id",
    "generation_id",
    "event_type",
    "error_code",
    "model_class",
    "tier",
    "alert",
    "latency_bucket",
)

_REDACTED_KEYS = frozenset({"api_key", "authorization", "system_prompt", "user_prompt", "raw_text", "completion"})

# Upper bounds in ms; generation calls sit in the seconds range
_LATENCY_BUCKETS = (
    (100, "<100ms"),
    (500, "100-500ms"),
    (2000, "500ms-2s"),
    (10000, "2-10s"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label for logs (exact timings belong in traces)."""
    if latency_ms is None:
        return "unknown"
    for bound, label in _LATENCY_BUCKETS:
        if latency_ms < bound:
            return label
    return ">=10s"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for key in _STRUCTURED_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                line[key] = value
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        rid_part = f" [rid={rid}]" if rid else ""
        text = f"{_timestamp(record)} {record.levelname} [{LOGGER_NAME}]{rid_part} {record.getMessage()}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Install one stdout handler on the service logger and on ``backend.*`` module loggers."""
    resolved_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    for name in (LOGGER_NAME, "backend"):
        target = logging.getLogger(name)
        target.setLevel(resolved_level)
        target.handlers = [handler]
        target.propagate = True

    # uvicorn keeps its own handlers
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _loggable(key: str, value, limit: int = 500):
    if key in _REDACTED_KEYS:
        return "<redacted>"
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    if len(text) <= limit:
        return text
    return text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    generation_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Log ``msg`` on the service logger with correlation fields and sanitized extras."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"), os.getenv("LOG_LEVEL"))

    fields: Dict[str, object] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "generation_id": generation_id,
    }
    if event_type:
        fields["event_type"] = event_type
    if error_code:
        fields["error_code"] = error_code
    for key, value in (extra or {}).items():
        fields[key] = _loggable(key, value)

    getattr(logger, level, logger.info)(msg, extra=fields)
