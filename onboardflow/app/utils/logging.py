"""
Structured logging system for Onboardflow.

This module provides:
- Structured JSON logging with correlation IDs
- Console-friendly output for development
- Performance context for timed operations
- Database and business event helpers
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from onboardflow.config.settings import get_settings


# Request-scoped state; context variables follow asyncio tasks
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_performance_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "performance_context", default=None
)

console = Console()


class CorrelationIDProcessor:
    """Structlog processor to add correlation IDs to log records."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = get_correlation_id()
        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        return event_dict


class TimestampProcessor:
    """Structlog processor to add ISO timestamps to log records."""

    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        return event_dict


class PerformanceProcessor:
    """Structlog processor to add the active performance context."""

    def __call__(self, logger, method_name, event_dict):
        context = _performance_context.get()
        if context:
            for key, value in context.items():
                event_dict.setdefault(key, value)
        return event_dict


class OnboardflowLogFormatter:
    """
    Log renderer producing JSON lines or rich console markup.

    Machine-readable output in production, colored key=value lines in
    development.
    """

    LEVEL_COLORS = {
        "DEBUG": "dim white",
        "INFO": "blue",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red",
    }

    def __init__(self, use_json: bool = False):
        self.use_json = use_json

    def __call__(self, _, __, event_dict):
        if self.use_json:
            return json.dumps(event_dict, default=str)
        return self._format_console_output(event_dict)

    def _format_console_output(self, event_dict: Dict[str, Any]) -> str:
        timestamp = event_dict.get("timestamp", "")
        level = event_dict.get("level", "info").upper()
        logger_name = event_dict.get("logger", "")
        correlation_id = event_dict.get("correlation_id", "")
        event = event_dict.get("event", "")

        parts = []
        if timestamp:
            parts.append(f"[dim]{timestamp[:19]}[/dim]")

        level_color = self.LEVEL_COLORS.get(level, "white")
        parts.append(f"[{level_color}]{level:8}[/{level_color}]")

        if logger_name:
            parts.append(f"[cyan]{logger_name}[/cyan]")
        if correlation_id:
            parts.append(f"[magenta]{correlation_id[:8]}[/magenta]")

        parts.append(f"[white]{event}[/white]")

        context_fields = {
            k: v for k, v in event_dict.items()
            if k not in {"timestamp", "level", "logger", "correlation_id", "event"}
        }
        if context_fields:
            context_str = " ".join(f"{k}={v}" for k, v in context_fields.items())
            parts.append(f"[dim]{context_str}[/dim]")

        return " ".join(parts)


def setup_logging(
    level: str = "INFO",
    use_json: bool = False,
    log_file: Optional[Path] = None,
    enable_correlation_ids: bool = True
) -> None:
    """
    Setup structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Output structured JSON logs
        log_file: Optional file path for log output
        enable_correlation_ids: Enable correlation ID tracking
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        TimestampProcessor(),
    ]
    if enable_correlation_ids:
        processors.append(CorrelationIDProcessor())
    processors.append(PerformanceProcessor())
    processors.append(structlog.processors.format_exc_info)
    processors.append(OnboardflowLogFormatter(use_json=use_json))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Standard library logging for third-party libraries (uvicorn, pymongo)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if use_json:
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = RichHandler(
            console=console,
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
            markup=True
        )
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        root_logger.addHandler(file_handler)


def initialize_logging_from_settings() -> None:
    """Configure logging from the application settings."""
    settings = get_settings()
    setup_logging(
        level=settings.logging.level,
        use_json=settings.logging.format == "json",
        enable_correlation_ids=settings.logging.enable_correlation_ids,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog bound logger
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID for the current request.

    Args:
        correlation_id: Optional correlation ID, generates UUID if None

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID for the current request."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current request."""
    _correlation_id.set(None)


@contextmanager
def performance_context(operation: str, **context: Any):
    """
    Context manager for performance monitoring.

    Args:
        operation: Name of the operation being measured
        **context: Additional context to include in logs

    Usage:
        with performance_context("case_status_update", case_id="123"):
            ...
    """
    start_time = time.time()
    logger = get_logger("performance")

    perf_context = {"operation": operation, **context}
    token = _performance_context.set(perf_context)

    logger.debug("Operation started", **perf_context)

    try:
        yield perf_context
    except Exception as e:
        logger.error(
            "Operation failed",
            duration=round(time.time() - start_time, 4),
            error=str(e),
            **perf_context
        )
        raise
    else:
        logger.debug(
            "Operation completed",
            duration=round(time.time() - start_time, 4),
            **perf_context
        )
    finally:
        _performance_context.reset(token)


class DatabaseLogger:
    """Specialized logger for database operations."""

    def __init__(self):
        self.logger = get_logger("database")

    def query_executed(
        self,
        database_type: str,
        operation: str,
        collection: Optional[str] = None,
        result_count: Optional[int] = None
    ):
        """Log database query execution."""
        self.logger.debug(
            "Database query executed",
            database_type=database_type,
            operation=operation,
            collection=collection,
            result_count=result_count,
            event_type="query_executed"
        )

    def connection_established(self, database_type: str, database_name: str):
        """Log database connection establishment."""
        self.logger.info(
            "Database connection established",
            database_type=database_type,
            database_name=database_name,
            event_type="connection_established"
        )

    def connection_failed(self, database_type: str, error: str):
        """Log database connection failure."""
        self.logger.error(
            "Database connection failed",
            database_type=database_type,
            error=error,
            event_type="connection_failed"
        )


database_logger = DatabaseLogger()


def log_business_event(event: str, **context: Any) -> None:
    """Log a business-level event (case created, status changed, ...)."""
    get_logger("business").info(
        "Business event",
        business_event=event,
        **context
    )
