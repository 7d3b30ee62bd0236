"""
Structured logging setup using structlog.

Every component binds its own ``component=`` field so ingestion and
execution lines can be told apart in one stream.
"""
import logging
import sys

import structlog


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Configure structured logging for Mimic.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON formatted logs

    Returns:
        Configured logger instance
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[console_handler],
        force=True,
    )

    # httpx logs every request at INFO; the activity poll runs every second
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("mimic")


def get_logger(name: str = "mimic") -> structlog.stdlib.BoundLogger:
    """Get a logger named under the ``mimic.`` namespace."""
    if not name.startswith("mimic"):
        name = f"mimic.{name}"
    return structlog.get_logger(name)
