# backend/fundledger/utils/logging.py
"""
Logging configuration for the fund ledger service.

Provides:
- Log level and format from settings (LOG_LEVEL, LOG_FORMAT)
- A correlation ID on every record, taken from the request context
- JSON output for log aggregation, with Decimal/date values rendered as strings
- Quieter third-party loggers

Usage:
    from fundledger.utils import setup_logging

    # In main.py, before creating the FastAPI app
    setup_logging()

Log Levels:
    DEBUG   - NAV inputs, lock waits, per-period snapshot progress
    INFO    - Business events (cash flow recorded, units subscribed, NAV refreshed)
    WARNING - Rejected operations, retries, overdraft transfers
    ERROR   - Failures requiring attention (price feed down, unexpected exceptions)
"""

import json
import logging
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from fundledger.config import settings
from fundledger.utils.context import get_correlation_id

DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

# Set to WARNING to reduce noise
NOISY_LOGGERS = [
    "urllib3",
    "httpx",
    "httpcore",
    "asyncio",
    "multipart",
    "sqlalchemy.pool",
]

# LogRecord attributes that are not user-supplied "extra" fields
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "message", "taskName",
})


class CorrelationIdFilter(logging.Filter):
    """
    Logging filter that adds correlation ID to log records.

    Makes %(correlation_id)s available to format strings.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


def _json_default(value: Any) -> Any:
    # Money and units must keep their exact decimal representation
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123000+00:00",
        "level": "INFO",
        "logger": "fundledger.services.fund.service",
        "correlation_id": "abc-123-def",
        "message": "Subscribed 50.000000 units in fund 1",
        "extra": {"portfolio_id": 1, "units": "50.000000"}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry, default=_json_default)


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure application-wide logging with correlation ID support.

    Call once at application startup, before creating the FastAPI app.

    Args:
        level: Log level name. Defaults to settings.log_level.
        log_format: 'text' or 'json'. Defaults to settings.log_format.
        suppress_noisy_loggers: Set third-party loggers to WARNING.

    Raises:
        ValueError: If the level name is not a standard logging level
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = (log_format or settings.log_format).lower()

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=DEFAULT_TEXT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, format=%s",
        log_level_str,
        format_type,
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


def _get_log_level(level_str: str) -> int:
    """
    Convert string log level to logging constant.

    Raises:
        ValueError: If level_str is not a valid log level
    """
    level_mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    normalized = level_str.upper().strip()
    if normalized not in level_mapping:
        valid_levels = ", ".join(level_mapping)
        raise ValueError(f"Invalid log level: '{level_str}'. Valid levels are: {valid_levels}")
    return level_mapping[normalized]


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    The correlation ID is added by the filter installed in setup_logging().

    Example:
        logger = get_logger(__name__)
        logger.info("Recording cash flow", extra={"portfolio_id": 1})
    """
    return logging.getLogger(name)
