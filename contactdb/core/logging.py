"""
Structured logging on top of Loguru.

Request, user and build ids live in context variables and are bound into
every record's `extra`, so the JSON sink can emit them as fields.
"""

import asyncio
import json
import sys
import time
from contextvars import ContextVar
from functools import wraps
from typing import Optional

from loguru import logger

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
database_id_var: ContextVar[Optional[str]] = ContextVar("database_id", default=None)


def current_context() -> dict:
    """The tracking ids set for the current task, without unset ones."""
    context = {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
        "database_id": database_id_var.get(),
    }
    return {k: v for k, v in context.items() if v is not None}


class StructuredLogger:
    """Logs with the current tracking ids plus per-call fields."""

    @staticmethod
    def bind(**kwargs):
        return logger.bind(**{**current_context(), **kwargs})

    @staticmethod
    def log(level: str, message: str, **kwargs):
        # depth=2 attributes the record to the caller of debug()/error()
        StructuredLogger.bind(**kwargs).opt(depth=2).log(level, message)

    @staticmethod
    def debug(message: str, **kwargs):
        StructuredLogger.log("DEBUG", message, **kwargs)

    @staticmethod
    def error(message: str, **kwargs):
        StructuredLogger.log("ERROR", message, **kwargs)


def _report_timing(name: str, start: float, error: Optional[Exception] = None) -> None:
    duration = time.time() - start
    if error is None:
        StructuredLogger.debug(
            f"{name} finished", function=name, duration=duration, status="success"
        )
    else:
        StructuredLogger.error(
            f"{name} raised {type(error).__name__}",
            function=name,
            duration=duration,
            status="error",
            error=str(error),
        )


def log_execution_time(func):
    """Decorator logging how long a sync or async function took."""

    if asyncio.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _report_timing(func.__name__, start, e)
                raise
            _report_timing(func.__name__, start)
            return result

        return async_wrapper

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start = time.time()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _report_timing(func.__name__, start, e)
            raise
        _report_timing(func.__name__, start)
        return result

    return sync_wrapper


def log_http_request(
    method: str,
    url: str,
    status_code: Optional[int] = None,
    duration: Optional[float] = None,
    **kwargs,
):
    """Log one HTTP exchange, at error level for 4xx/5xx answers."""
    fields = {"method": method, "url": url, "type": "http_request", **kwargs}
    if status_code:
        fields["status_code"] = status_code
    if duration:
        fields["duration"] = duration

    if status_code and status_code >= 400:
        StructuredLogger.error(f"{method} {url} -> {status_code}", **fields)
    else:
        StructuredLogger.debug(f"{method} {url} -> {status_code or 'ok'}", **fields)


def json_formatter(record):
    """Render a record as one JSON line."""
    payload = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    payload.update({k: v for k, v in record["extra"].items() if k != "_json"})
    if record.get("exception"):
        payload["exception"] = str(record["exception"])

    # loguru treats the returned string as a format template
    record["extra"]["_json"] = json.dumps(payload, default=str)
    return "{extra[_json]}\n"


def setup_json_logging(level: str = "INFO"):
    """Send JSON lines to stdout instead of the text sinks."""
    logger.remove()
    logger.add(sys.stdout, format=json_formatter, level=level)


__all__ = [
    "REQUEST_ID_HEADER",
    "StructuredLogger",
    "current_context",
    "log_execution_time",
    "log_http_request",
    "json_formatter",
    "setup_json_logging",
    "request_id_var",
    "user_id_var",
    "database_id_var",
]
