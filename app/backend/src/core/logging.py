"""Structured logging configuration."""

from __future__ import annotations

import logging

import structlog

from .config import get_settings


def configure_logging() -> None:
    """Configure JSON-style logging for the service and its structlog loggers."""

    level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='{"level": "%(levelname)s", "message": "%(message)s"}')
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
