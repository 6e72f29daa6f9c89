import logging
import json
import os
from typing import Any, Dict
from opentelemetry.trace import get_current_span


SENSITIVE_KEYS = {
    "account_number",
    "recipient_code",
    "delivery_address",
    "token",
    "password",
    "email",
    "phone",
}


def _request_value(attr: str) -> str:
    try:
        from flask import g, has_request_context
        if not has_request_context():
            return "n/a"
        value = getattr(g, attr, None)
        return str(value) if value is not None else "n/a"
    except Exception:
        return "n/a"


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` and ``user_id`` of the current request onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_value("request_id")
        record.user_id = _request_value("user_id")
        return True


def current_trace_ids():
    try:
        span = get_current_span()
        ctx = span.get_span_context() if span else None
        if not ctx or not ctx.is_valid:
            return "n/a", "n/a"
        return format(ctx.trace_id, "032x"), format(ctx.span_id, "016x")
    except Exception:
        return "n/a", "n/a"


class TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        trace_id, span_id = current_trace_ids()
        record.trace_id = trace_id
        record.span_id = span_id
        return True


def _mask(data: Dict[str, Any]) -> Dict[str, Any]:
    masked = {}
    for key, value in data.items():
        if key in SENSITIVE_KEYS:
            masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = _mask(value)
        else:
            masked[key] = value
    return masked


class MaskingFilter(logging.Filter):
    """Redact sensitive keys in dict messages; DEBUG outside production is left raw."""

    def filter(self, record: logging.LogRecord) -> bool:
        env = os.getenv("APP_ENV", "development").lower()
        if record.levelno == logging.DEBUG and env != "production":
            return True
        if isinstance(record.msg, dict):
            record.msg = _mask(record.msg)
        if isinstance(record.args, dict):
            record.args = _mask(record.args)
        return True


class JsonFormatter(logging.Formatter):
    CONTEXT_FIELDS = ("request_id", "user_id", "trace_id", "span_id")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        base = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
        }
        for field in self.CONTEXT_FIELDS:
            base[field] = getattr(record, field, "n/a")
        if isinstance(record.msg, dict):
            base.update(record.msg)
        else:
            base["message"] = record.getMessage()
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


def build_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler.addFilter(RequestContextFilter())
    handler.addFilter(TraceIdFilter())
    handler.addFilter(MaskingFilter())
    return handler


def _level(debug: bool) -> int:
    level_name = os.getenv("LOG_LEVEL")
    if level_name:
        return getattr(logging, level_name.upper(), logging.INFO)
    return logging.DEBUG if debug else logging.INFO


def configure_logging(app) -> None:
    handler = build_handler()
    level = _level(bool(app.config.get("DEBUG")))

    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(level)

    root = logging.getLogger()
    if not any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(level)

    wl = logging.getLogger("werkzeug")
    wl.setLevel(level)
    wl.handlers.clear()
    wl.addHandler(handler)


def configure_worker_logging() -> None:
    """JSON logging for Celery worker processes (no Flask app object yet)."""
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(build_handler())
    root.setLevel(_level(False))
