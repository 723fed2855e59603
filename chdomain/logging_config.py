"""Logging setup for processes embedding the driver.

The library itself only emits through module loggers. An embedding
daemon or tool calls ``chdomain.setup_logging()`` once at startup to get
the driver's log format and the configured level.
"""

from __future__ import annotations

import logging

from chdomain.config import settings


def setup_logging(level: str | int | None = None) -> None:
    """Configure root logging with the driver's format.

    Args:
        level: Log level name or number; defaults to settings.log_level
    """
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=settings.log_format)
