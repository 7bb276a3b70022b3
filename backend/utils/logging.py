"""
Logging setup and structured error logging.

Functions:
- configure_logging(level): Root logger format shared by API, worker and CLI
- log_error(logger, exc, **context): Log an error locally and to Logfire
"""

import logging
from typing import Any

import logfire

from utils.errors import format_log_error

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once per process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    # Reduce noise from HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_error(
    logger: logging.Logger,
    message: str,
    exc: Exception,
    **context: Any,
) -> None:
    """Emit an error both to the module logger and as a Logfire event."""
    entry = format_log_error(exc, **context)
    logger.error(f"{message}: {exc}", extra={"error": entry})
    logfire.error(message, **entry)
