"""
Structured Logging Infrastructure

JSON log records for the API and the Celery worker. Every record carries the
service name and, when set, the correlation id of the current request or task.
Loggers returned by get_logger accept an ``extra_data`` dict on any level call.
"""
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import wraps
from typing import Any, Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# שם השירות: מוזרק לכל רשומת JSON כדי להבדיל בין API ל-worker
_service_name = "marketplace-wallet"

# ספריות רועשות: מספיק לראות אזהרות
_QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncio": logging.WARNING,
    "celery": logging.INFO,
}


def _json_default(value: Any) -> Any:
    # סכומי כסף נשמרים כמחרוזת כדי לא לאבד דיוק
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": timestamp.replace(tzinfo=None).isoformat() + "Z",
            "level": record.levelname,
            "service": _service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=_json_default)


class StructuredLogger(logging.Logger):
    """Logger whose level methods take an optional ``extra_data`` dict"""

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: Optional[dict[str, Any]] = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra_data: Optional[dict[str, Any]] = None,
    ) -> None:
        if extra_data:
            extra = dict(extra or {}, extra_data=extra_data)
        # דילוג על המסגרת הזו כדי ש-funcName/lineno יצביעו על הקורא
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


class CorrelationIdFilter(logging.Filter):
    """Exposes correlation_id to plain-text format strings"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def _build_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
        return handler

    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(CorrelationIdFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "marketplace-wallet"
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON records for production, a readable line for local runs
        app_name: Service name stamped on every JSON record
    """
    global _service_name
    _service_name = app_name

    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_build_handler(numeric_level, json_format))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current context (a fresh one if None)"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation id; one is generated and bound if none is set"""
    return correlation_id_var.get() or set_correlation_id()


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str, result_key: str | None = None):
    """
    Log start, completion and failure of an async operation with its duration.

    With ``result_key`` the awaited return value is added to the completion
    record under that key (e.g. the number of coins a sweep expired).
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            started = time.monotonic()
            logger.debug(
                f"Starting {operation_name}",
                extra_data={"operation": operation_name, "status": "started"},
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "status": "failed",
                        "duration_seconds": round(time.monotonic() - started, 3),
                        "error": str(e),
                    },
                    exc_info=True,
                )
                raise

            details = {
                "operation": operation_name,
                "status": "completed",
                "duration_seconds": round(time.monotonic() - started, 3),
            }
            if result_key:
                details[result_key] = result
            logger.info(f"Completed {operation_name}", extra_data=details)
            return result

        return wrapper
    return decorator
