"""Core framework infrastructure - config, logging, lifecycle, clock, retry."""

from mimic.core.clock import Clock, SystemClock
from mimic.core.config import ConfigManager, CopySettings
from mimic.core.lifecycle import BaseComponent, HealthCheckResult, HealthStatus
from mimic.core.logging import get_logger, setup_logging
from mimic.core.retry import (
    ConfigError,
    GatewayError,
    MimicError,
    NetworkError,
    OrderRejectedError,
    PermanentError,
    RateLimitError,
    ServiceUnavailableError,
    TransientError,
    is_retryable,
    retry_transient,
    wrap_external_error,
)

__all__ = [
    # Config
    "ConfigManager",
    "CopySettings",
    # Logging
    "setup_logging",
    "get_logger",
    # Lifecycle
    "BaseComponent",
    "HealthCheckResult",
    "HealthStatus",
    # Clock
    "Clock",
    "SystemClock",
    # Errors
    "MimicError",
    "TransientError",
    "NetworkError",
    "RateLimitError",
    "ServiceUnavailableError",
    "PermanentError",
    "ConfigError",
    "GatewayError",
    "OrderRejectedError",
    # Retry
    "retry_transient",
    "is_retryable",
    "wrap_external_error",
]
