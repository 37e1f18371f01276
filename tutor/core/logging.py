"""
Structured logging for the tutor service.

Everything logs through the stdlib: request handling under "nst", feature
modules under "tutor.*". Both share one stdout handler that renders JSON in
production and a single readable line elsewhere. The request id of the
in-flight HTTP request is attached to every record automatically.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "request_id"}

# Shown inline by the pretty formatter, in this order
_PRETTY_FIELDS = ("user_id", "content_key", "tier", "cost", "error_code")

_LATENCY_BUCKETS = ((50, "<50ms"), (250, "50-250ms"), (1000, "250-1000ms"), (5000, "1-5s"))

MAX_FIELD_LENGTH = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label; content generation dominates the slow buckets."""
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=5s"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = getattr(record, "request_id", None)
        if rid:
            payload["request_id"] = rid
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record), record.levelname.ljust(7), record.name]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"[rid={rid[:8]}]")
        parts.append(record.getMessage())
        for field in _PRETTY_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                parts.append(f"{field}={value}")
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Install the shared stdout handler on the "nst" and "tutor" loggers."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    resolved = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    for name in ("nst", "tutor"):
        logger = logging.getLogger(name)
        logger.setLevel(resolved)
        logger.handlers = [handler]
        logger.propagate = True

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _clip(value: Any) -> Any:
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    text = str(value)
    if len(text) > MAX_FIELD_LENGTH:
        return text[:MAX_FIELD_LENGTH] + "...<truncated>"
    return text


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    content_key: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit one structured record on the "nst" logger.

    Free-form `extra` values are clipped so a large artifact or prompt
    never ends up in a log line.
    """
    logger = logging.getLogger("nst")
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, Any] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "content_key": content_key,
        "event_type": event_type,
        "error_code": error_code,
    }
    for key, value in (extra or {}).items():
        if key not in _RECORD_ATTRS:
            fields[key] = _clip(value)

    logger.log(logging.getLevelName(level.upper()), msg, extra=fields)
