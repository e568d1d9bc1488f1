"""
Logging configuration for MediScan AI.

Uses structlog for structured JSON logging suitable for production.
The Supabase and aiohttp clients log through the standard library;
their per-request chatter is held at WARNING unless debugging.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import Processor

from mediscan.config import settings

# Standard library loggers that emit one line per HTTP request
CLIENT_LOGGERS = ("httpx", "httpcore", "hpack", "aiohttp.access", "aiohttp.client")


def configure_logging(
    log_level: Optional[str] = None,
    json_format: bool = True
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (defaults to settings.log_level)
        json_format: Whether to output JSON (True) or console format (False)
    """
    level = log_level or settings.log_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        # Production: one JSON object per line
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    client_level = numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
    for name in CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def bind_scan_context(scan_id: str) -> None:
    """Attach the scan id to every log line in the current context."""
    structlog.contextvars.bind_contextvars(scan_id=scan_id)


def clear_scan_context() -> None:
    structlog.contextvars.unbind_contextvars("scan_id")


def get_logger(name: str = "mediscan") -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name for identification

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


# Configure on import; main.py reconfigures at startup
configure_logging(
    log_level=settings.log_level,
    json_format=not settings.debug
)
