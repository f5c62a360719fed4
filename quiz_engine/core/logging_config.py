"""Logging configuration helpers for the quiz engine."""

from __future__ import annotations

import logging
from logging import Logger

from quiz_engine.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    return logging.getLogger("quiz_engine")
