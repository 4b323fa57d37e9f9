"""
Structured logging for the API and the billing pipeline.

Every record on the "shopmatch" logger carries the current request id (bound
by RequestIdMiddleware) plus whichever billing/user identifiers the caller
passed through log_event. Production emits one JSON object per line;
everything else gets a readable single line with key=value pairs.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOGGER_NAME = "shopmatch"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# LogRecord attributes promoted to top-level output fields
STRUCTURED_FIELDS = (
    "user_id",
    "customer_id",
    "event_id",
    "event_type",
    "error_code",
    "status",
    "method",
    "path",
    "latency_bucket",
)

_LATENCY_BUCKETS = ((10, "<10ms"), (100, "10-100ms"), (500, "100-500ms"), (1000, "500-1000ms"))

_MAX_VALUE_CHARS = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label, so request logs stay groupable."""
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


def _utc_timestamp(record: logging.LogRecord) -> str:
    ts = datetime.fromtimestamp(record.created, timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def _structured(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class RequestIdFilter(logging.Filter):
    """Fill record.request_id from the request context when not given explicitly."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        entry.update(_structured(record))
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [_utc_timestamp(record), f"{record.levelname:<7}", record.getMessage()]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"rid={rid}")
        parts.extend(f"{key}={value}" for key, value in _structured(record).items())
        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    """Install one stdout handler on the app logger; safe to call repeatedly."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = True

    # uvicorn has its own handlers; keep its records out of ours
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).propagate = False


def _truncate(value: Any) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unprintable>"
    if len(text) > _MAX_VALUE_CHARS:
        return text[:_MAX_VALUE_CHARS] + "...[truncated]"
    return text


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
    exc_info: bool = False,
) -> None:
    """
    Log msg on the app logger with structured context.

    Identifier fields are attached only when set. Values in `extra` are
    stringified and capped so exception text or provider payloads cannot
    blow up a log line.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    context: Dict[str, object] = {"request_id": request_id or get_request_id()}
    identifiers = {
        "user_id": user_id,
        "customer_id": customer_id,
        "event_id": event_id,
        "event_type": event_type,
        "error_code": error_code,
    }
    context.update({key: value for key, value in identifiers.items() if value is not None})
    for key, value in (extra or {}).items():
        context[key] = _truncate(value)

    logger.log(logging.getLevelName(level.upper()), msg, extra=context, exc_info=exc_info)
