"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from config import Settings

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, service_name: str = "updown-rounds") -> bool:
    """
    Initialize Logfire with instrumentation.

    Must be called ONCE per process at startup (API, Celery worker, CLI).

    Instruments:
    - HTTPX clients (price sources)
    - SQLAlchemy (round, bet and ledger queries)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token
        service_name: Name reported to Logfire for this process

    Returns:
        True when Logfire is sending data.
    """
    if not settings.logfire_token:
        logfire.configure(send_to_logfire=False, console=False)
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name=service_name,
            service_version=__version__,
            environment=settings.environment,
            console=False,
        )

        logfire.instrument_httpx()

        try:
            logfire.instrument_sqlalchemy()
        except Exception as instrument_error:
            logger.debug(f"SQLAlchemy instrumentation skipped: {instrument_error}")

        # Bridge Python logging to Logfire
        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
        return False
