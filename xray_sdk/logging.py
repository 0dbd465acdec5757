"""Logging setup for the X-Ray SDK."""

import logging
from typing import Optional

import structlog


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog with JSON output.

    `level` defaults to XRAY_LOG_LEVEL from the loaded configuration.
    """
    if level is None:
        from .config import load_config

        level = load_config().log_level
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
