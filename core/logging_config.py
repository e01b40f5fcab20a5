"""
Logging Configuration for the Gallery Live API.

This module centralizes logging for the application. Development runs get
color-coded, human-readable console output; every other environment gets
structured JSON lines suitable for log shippers. Each HTTP request and
WebSocket session carries a correlation ID so all of its log lines can be
grouped together.

Key Components:
- `CorrelationFilter`: Injects the current correlation ID into log records.
- `StructuredFormatter`: Renders records as JSON, including `extra` fields
  such as `image_id`, `session_id` or `operation`.
- `ColoredConsoleFormatter`: Colors the level name for local development.
- `get_logging_config` / `setup_logging`: Build and apply the `dictConfig`
  for the current environment (`ENVIRONMENT`, `LOG_LEVEL`, `LOG_FILE`).
- `log_function_call`: Decorator logging entry, exit and duration of a call.
"""

import os
import json
import time
import asyncio
import functools
import logging
import logging.config
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variable for request correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
    }
)


class CorrelationFilter(logging.Filter):
    """Filter that adds correlation ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        corr_id = correlation_id.get()
        if corr_id:
            record.correlation_id = corr_id
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        corr_id = getattr(record, "correlation_id", None) or correlation_id.get()
        if corr_id:
            log_entry["correlation_id"] = corr_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        corr_id = getattr(record, "correlation_id", None)
        corr_part = f" [{corr_id}]" if corr_id else ""

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8} {record.name}{corr_part}: "
            f"{record.getMessage()}{self.RESET}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration based on environment"""

    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"correlation": {"()": CorrelationFilter}},
        "formatters": {
            "structured": {"()": StructuredFormatter},
            "colored_console": {"()": ColoredConsoleFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "colored_console"
                if environment == "development"
                else "structured",
                "filters": ["correlation"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # Application loggers
            "api": {"level": log_level, "handlers": ["console"], "propagate": False},
            "services": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "providers": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "core": {"level": log_level, "handlers": ["console"], "propagate": False},
            # Third-party loggers
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "aiohttp": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    if environment == "production":
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "structured",
            "filters": ["correlation"],
            "filename": os.getenv("LOG_FILE", "/var/log/gallery_live/app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    return config


def setup_logging():
    """Initialize logging configuration"""
    logging.config.dictConfig(get_logging_config())

    logger = logging.getLogger("core.logging")
    environment = os.getenv("ENVIRONMENT", "development")
    logger.info(f"Logging initialized for {environment} environment")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_correlation_id(corr_id: str):
    """Set correlation ID for the current context"""
    correlation_id.set(corr_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from the current context"""
    return correlation_id.get()


def log_function_call(logger: logging.Logger):
    """Decorator to log function calls with execution time"""

    def decorator(func):
        def _log_success(start_time: float):
            logger.debug(
                f"Completed {func.__name__}",
                extra={
                    "call": func.__name__,
                    "execution_time_ms": round((time.time() - start_time) * 1000, 2),
                    "success": True,
                },
            )

        def _log_failure(start_time: float, error: Exception):
            logger.error(
                f"Failed {func.__name__}: {error}",
                extra={
                    "call": func.__name__,
                    "execution_time_ms": round((time.time() - start_time) * 1000, 2),
                    "success": False,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            logger.debug(f"Calling {func.__name__}", extra={"call": func.__name__})
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_failure(start_time, e)
                raise
            _log_success(start_time)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            logger.debug(f"Calling {func.__name__}", extra={"call": func.__name__})
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_failure(start_time, e)
                raise
            _log_success(start_time)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
