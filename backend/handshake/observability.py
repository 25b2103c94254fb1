"""Logfire cloud observability initialization and instrumentation."""

import logging
from typing import Any, Optional

import logfire

from handshake import __version__
from handshake.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app: Optional[Any] = None) -> bool:
    """
    Initialize Logfire for the CLI or the API server.

    Instruments:
    - HTTPX clients (Supabase auth and PostgREST calls)
    - FastAPI, when an app is passed
    - Python logging (bridged to Logfire)

    Returns True when Logfire was configured. A missing token only logs a
    warning; observability never blocks a command.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="handshake",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_httpx()

        if app is not None:
            logfire.instrument_fastapi(app)

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
