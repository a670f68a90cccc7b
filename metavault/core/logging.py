"""
Structured logging for the MetaVault allocation engine.

This module provides structured logging with correlation tracking and
performance logging. Configured for JSON formatting in production.

Features:
- Structured JSON logging for production
- Correlation ID tracking across a chain of vault operations
- Performance logging decorator for async operations
- Log rotation and retention policies
"""

import contextvars
import functools
import logging
import logging.handlers
import sys
import time
import uuid
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, cast

import structlog


class CorrelationContext:
    """Context manager for correlation ID tracking.

    Provides correlation ID management for tracing one user request
    through routing, deallocation and claim operations using contextvars.
    """

    def __init__(self) -> None:
        self._context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
            "correlation_id", default=None
        )

    def set_correlation_id(self, correlation_id: str) -> None:
        """Set correlation ID for current context."""
        self._context.set(correlation_id)

    def get_correlation_id(self) -> str | None:
        """Get current correlation ID."""
        return self._context.get()

    def generate_correlation_id(self) -> str:
        """Generate a new correlation ID."""
        return str(uuid.uuid4())

    @contextmanager
    def correlation_context(self, correlation_id: str | None = None):
        """Context manager for correlation ID tracking."""
        if correlation_id is None:
            correlation_id = self.generate_correlation_id()

        token = self._context.set(correlation_id)
        try:
            yield correlation_id
        finally:
            self._context.reset(token)


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add correlation ID to event dict."""
    if event_dict is not None:
        event_dict.setdefault("correlation_id", correlation_context.get_correlation_id())
        return event_dict
    return {"correlation_id": correlation_context.get_correlation_id()}


def _safe_unicode_decoder(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Safe unicode decoder for event dict."""
    if event_dict is not None:
        return cast(
            dict[str, Any],
            structlog.processors.UnicodeDecoder()(logger, method_name, event_dict),
        )
    return {}


correlation_context = CorrelationContext()


def setup_logging(
    environment: str = "development",
    log_level: str = "INFO",
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Setup structured logging configuration with optional file rotation.

    Args:
        environment: Environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log file path (None for stdout only)
        max_bytes: Maximum bytes per log file before rotation
        backup_count: Number of backup files to keep
    """
    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_correlation_id,
        _safe_unicode_decoder,
    ]

    if environment == "production":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structured logger with correlation ID support
    """
    return structlog.get_logger(name)


def log_async_performance(func: Callable) -> Callable:
    """
    Decorator to log async function performance metrics.

    Args:
        func: Async function to decorate

    Returns:
        Decorated async function with performance logging
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start_time = time.perf_counter()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error(
                "Async function execution failed",
                function_name=func.__qualname__,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.debug(
            "Async function execution completed",
            function_name=func.__qualname__,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
        )
        return result

    return wrapper


def setup_development_logging() -> None:
    """Setup development logging with debug level and console output."""
    setup_logging(environment="development", log_level="DEBUG", log_file=None)


def setup_production_logging(log_dir: str = "logs", app_name: str = "metavault") -> None:
    """Setup production logging with JSON output and file rotation.

    Args:
        log_dir: Directory for log files
        app_name: Application name for log file naming
    """
    setup_logging(
        environment="production",
        log_level="INFO",
        log_file=f"{log_dir}/{app_name}.log",
        max_bytes=50 * 1024 * 1024,
        backup_count=10,
    )
