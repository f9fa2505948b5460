"""Structured logging configuration with structlog."""

import logging
import os
import sys

import structlog


def configure_logging(log_level: str = "INFO", environment: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Development renders colored key/value lines; production emits one JSON
    object per event so runs can be searched by job_id and source_id.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment (development or production). If None, read from ENVIRONMENT.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Route stdlib loggers (uvicorn, sqlalchemy, httpx) to stdout at the same level
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if environment is None:
        environment = os.getenv("ENVIRONMENT", "development")
    is_production = environment.lower() == "production"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            (
                structlog.processors.JSONRenderer()
                if is_production
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
