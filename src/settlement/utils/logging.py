"""Logging for the settlement engine.

structlog renders through the standard library so protean's own records and
the engine's events share one stream. Registers log to stdout only; the
venue's collector picks them up from there.
"""

import logging
import os
import sys

import structlog

_LEVELS = {
    "production": "INFO",
    "test": "WARNING",
}


def log_level(env: str | None = None) -> str:
    """``LOG_LEVEL`` wins; otherwise the level follows ``PROTEAN_ENV``."""
    env = (env or os.getenv("PROTEAN_ENV") or "development").lower()
    return os.getenv("LOG_LEVEL", _LEVELS.get(env, "DEBUG"))


def configure_logging() -> None:
    env = (os.getenv("PROTEAN_ENV") or "development").lower()
    level = log_level(env)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [logging.StreamHandler(sys.stdout)]

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer() if env == "production" else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
