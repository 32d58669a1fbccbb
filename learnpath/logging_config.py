"""
Loguru sink configuration.

Library code only calls ``logger.*``; entry points (CLI, HTTP layer) call
``configure_logging`` once at startup.
"""

from __future__ import annotations

import sys

from loguru import logger

from learnpath.config import Settings, get_settings

_CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(settings: Settings | None = None, level: str | None = None) -> None:
    """Replace loguru's default sink with the configured stderr/file sinks."""
    settings = settings or get_settings()
    resolved_level = level or settings.log_level

    logger.remove()
    logger.add(sys.stderr, level=resolved_level, format=_CONSOLE_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=resolved_level,
            format=_FILE_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
