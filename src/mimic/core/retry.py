"""
Error hierarchy and retry helpers for external calls.

Transient errors (network blips, rate limits, 5xx) are retried with
exponential backoff via tenacity. Permanent errors are raised immediately.

Usage:
    from mimic.core.retry import retry_transient, NetworkError

    @retry_transient(max_attempts=3)
    async def fetch_positions():
        ...
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, Union

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

log = structlog.get_logger()


# =============================================================================
# Error Type Hierarchy
# =============================================================================


class ErrorCategory(str, Enum):
    """Classification of error types for retry decisions."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class MimicError(Exception):
    """Base exception for all Mimic errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class TransientError(MimicError):
    """Error that may succeed on retry."""

    category = ErrorCategory.TRANSIENT


class NetworkError(TransientError):
    """Connection reset, DNS failure, read timeout."""


class RateLimitError(TransientError):
    """HTTP 429 - retry after backoff."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.retry_after = retry_after


class ServiceUnavailableError(TransientError):
    """Upstream returned a 5xx."""


class StoreBusyError(TransientError):
    """SQLite reported the database as locked or busy."""


class PermanentError(MimicError):
    """Error that will NOT succeed on retry."""

    category = ErrorCategory.PERMANENT


class ConfigError(PermanentError):
    """Missing or invalid configuration."""


class GatewayError(PermanentError):
    """Upstream rejected the request (4xx, malformed payload)."""


class OrderRejectedError(PermanentError):
    """Exchange refused to sign or accept an order."""


# =============================================================================
# Retry Decorator
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 0.5
DEFAULT_MAX_WAIT_SECONDS = 10.0
DEFAULT_EXPONENTIAL_MULTIPLIER = 1.0

F = TypeVar("F", bound=Callable[..., Any])


def _log_retry(log_context: Optional[dict[str, Any]] = None) -> Callable[[RetryCallState], None]:
    context = log_context or {}

    def callback(state: RetryCallState) -> None:
        exception = state.outcome.exception() if state.outcome else None
        log.warning(
            "retry_attempt",
            attempt=state.attempt_number,
            error=str(exception) if exception else None,
            error_type=type(exception).__name__ if exception else None,
            wait_seconds=state.next_action.sleep if state.next_action else 0,
            **context,
        )

    return callback


def retry_transient(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    multiplier: float = DEFAULT_EXPONENTIAL_MULTIPLIER,
    jitter: bool = True,
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[F], F]:
    """Retry an async function on TransientError with exponential backoff.

    The last error is re-raised once attempts are exhausted.

    Example:
        @retry_transient(max_attempts=5)
        async def get_activity(...):
            ...
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("retry_transient only wraps coroutine functions")

        if jitter:
            wait_strategy = wait_random_exponential(
                multiplier=multiplier, min=min_wait, max=max_wait
            )
        else:
            wait_strategy = wait_exponential(
                multiplier=multiplier, min=min_wait, max=max_wait
            )
        callback = _log_retry(log_context)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_strategy,
                retry=retry_if_exception_type(TransientError),
                before_sleep=callback,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def is_retryable(error: Exception) -> bool:
    """True for TransientError, False for PermanentError.

    Foreign exceptions are judged by their message, the same way the
    exchange client surfaces them.
    """
    if isinstance(error, PermanentError):
        return False
    if isinstance(error, TransientError):
        return True
    error_str = str(error).lower()
    return any(
        pattern in error_str
        for pattern in (
            "timeout",
            "timed out",
            "connection",
            "rate limit",
            "too many requests",
            "502",
            "503",
            "504",
            "service unavailable",
        )
    )


def wrap_external_error(
    error: Exception,
    context: Optional[str] = None,
) -> Union[TransientError, PermanentError]:
    """Wrap a third-party exception in the matching Mimic error type."""
    message = f"{context}: {error}" if context else str(error)
    if is_retryable(error):
        return TransientError(message, cause=error)
    return PermanentError(message, cause=error)
