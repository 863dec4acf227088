"""
SitePulse - Centralized Logging Configuration

Development: one readable line per record on stdout.
Production: one JSON object per record, with request/user context and any
`extra=` fields attached, so badge refreshes can be traced per user.
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List
from contextvars import ContextVar

from sitepulse.core.config import settings


LOGGER_NAME = "sitepulse"

# Context variables for request tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]


def get_request_id() -> str:
    return request_id_var.get() or ''


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str:
    return user_id_var.get() or ''


def set_user_id(user_id: str) -> None:
    """Bind the authenticated user to every record logged in this context"""
    user_id_var.set(user_id)


# Attributes every LogRecord carries; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Structured records for log aggregation in production"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "service": LOGGER_NAME,
            "environment": settings.ENVIRONMENT,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in (("request_id", get_request_id()), ("user_id", get_user_id())):
            if value:
                payload[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        payload.update({
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith('_')
        })

        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Plain-text formatter with request/user ids available as fields"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return super().format(record)


class SitePulseLogger(logging.Logger):
    """
    Logger with helpers that tag records with an `event_type`, so the JSON
    output can be filtered by db_query / realtime / error / performance.
    """

    def log_db_query(self, operation: str, table: str, duration_ms: float,
                     rows_affected: int = 0, **kwargs) -> None:
        self.debug(
            f"DB {operation} on {table} - {rows_affected} rows ({duration_ms:.2f}ms)",
            extra={
                "event_type": "db_query",
                "db_operation": operation,
                "db_table": table,
                "duration_ms": round(duration_ms, 2),
                "rows_affected": rows_affected,
                **kwargs
            }
        )

    def log_realtime_event(self, channel: str, event: str, **kwargs) -> None:
        """Channel status transitions and change deliveries"""
        self.debug(
            f"Realtime {channel}: {event}",
            extra={
                "event_type": "realtime",
                "realtime_channel": channel,
                "realtime_event": event,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log an error with its traceback and the component it came from"""
        details = getattr(error, "details", None)
        self.error(
            f"Error in {context}: {type(error).__name__}: {error}",
            exc_info=error,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_code": getattr(error, "code", None),
                "error_context": context,
                **({"error_details": details} if details else {}),
                **kwargs
            }
        )

    def log_performance(self, operation: str, duration_ms: float,
                        threshold_ms: float = 1000, **kwargs) -> None:
        """DEBUG normally, WARNING once the threshold is crossed"""
        slow = duration_ms > threshold_ms
        self.log(
            logging.WARNING if slow else logging.DEBUG,
            f"Performance: {operation} took {duration_ms:.2f}ms"
            + (f" (threshold: {threshold_ms}ms)" if slow else ""),
            extra={
                "event_type": "performance",
                "operation": operation,
                "duration_ms": round(duration_ms, 2),
                "threshold_ms": threshold_ms,
                "exceeded_threshold": slow,
                **kwargs
            }
        )


def _build_handlers(json_logs: bool) -> List[logging.Handler]:
    if json_logs:
        console_formatter = file_formatter = JSONFormatter()
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(console_formatter)
    handlers: List[logging.Handler] = [console]

    if settings.LOG_FILE:
        log_file = Path(settings.LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=10 if json_logs else 5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    return handlers


def setup_logging() -> SitePulseLogger:
    """Configure the `sitepulse` logger for the current environment"""
    logging.setLoggerClass(SitePulseLogger)

    logger = logging.getLogger(LOGGER_NAME)
    logger.__class__ = SitePulseLogger  # Already created before setLoggerClass
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    json_logs = settings.ENVIRONMENT == "production"
    logger.handlers.clear()
    for handler in _build_handlers(json_logs):
        logger.addHandler(handler)

    # Quiet third-party chatter
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "json_logging": json_logs
        }
    )

    return logger


logger: SitePulseLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'generate_request_id',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_id',
    'SitePulseLogger',
]
