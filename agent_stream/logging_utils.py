"""
Centralized logging and error classification utilities for agent-stream.

Configures structlog once on import and provides:
- StreamErrorHandler: maps stream, provider and transport errors to log
  categories
- log_operation / operation_context: start, completion and failure logging
  with timing for client calls and CLI runs
- ContextualLogger: a logger with fixed context, used by the handler
"""

from __future__ import annotations

import functools
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from agent_stream.llm.exceptions import (
    ChannelClosedError,
    ChunkDecodeError,
    ProviderError,
    RecoverableProviderError,
    RetryableStreamError,
    TerminalStreamError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


class StreamErrorHandler:
    """Centralized stream error classification with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a log category.

        Args:
            error: The exception to classify

        Returns:
            The error category name
        """
        if isinstance(error, RetryableStreamError | RecoverableProviderError):
            return "retryable"
        if isinstance(error, ChunkDecodeError):
            return "decode_error"
        if isinstance(error, ChannelClosedError):
            return "channel_closed"
        if isinstance(error, TerminalStreamError):
            return "terminal"
        if isinstance(error, ProviderError):
            return "provider_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return "connection_error"
        return "unknown_error"

    @staticmethod
    def log_error(
        error: BaseException,
        operation: str,
        context: dict[str, Any] | None = None,
        *,
        level: str = "error",
    ) -> str:
        """Log ``error`` with its category and return the category."""
        error_category = StreamErrorHandler.classify_error(error)
        getattr(logger, level)(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=error_category,
            error_message=str(error),
            **(context or {}),
        )
        return error_category


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


def log_operation(
    operation: str,
    *,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Failures are logged with their ``StreamErrorHandler`` category and
    re-raised unchanged.

    Args:
        operation: Name of the operation being performed
        log_timing: Whether to log execution timing
        context: Additional context to include in logs
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )
            operation_logger.debug("Operation started")
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_category": StreamErrorHandler.classify_error(e),
                    "error_message": str(e),
                }
                if log_timing:
                    error_log_data["duration_ms"] = _elapsed_ms(start_time)
                operation_logger.error("Operation failed", **error_log_data)
                raise

            if log_timing:
                operation_logger.debug(
                    "Operation completed", duration_ms=_elapsed_ms(start_time)
                )
            else:
                operation_logger.debug("Operation completed")
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """Log around a block like ``log_operation``; yields the bound logger."""
    operation_logger = logger.bind(operation=operation, **(context or {}))
    operation_logger.info("Operation started")
    start_time = time.perf_counter()

    try:
        yield operation_logger
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_category=StreamErrorHandler.classify_error(e),
            error_message=str(e),
            **({"duration_ms": _elapsed_ms(start_time)} if log_timing else {}),
        )
        raise

    if log_timing:
        operation_logger.info(
            "Operation completed", duration_ms=_elapsed_ms(start_time)
        )
    else:
        operation_logger.info("Operation completed")


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message with context."""
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message with context."""
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        """Log error message with context."""
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message with context."""
        self._logger.debug(message, **context)
