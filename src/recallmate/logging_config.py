"""Logging setup for host applications.

The library itself only creates module loggers; hosts call
configure_logging() once at startup.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from .settings import Settings, load_settings

LOGGER_NAME = "recallmate"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings | None = None, *, to_file: bool = True) -> logging.Logger:
    """Attach stream and rotating-file handlers to the package logger.

    Safe to call more than once; handlers are only installed the first time.

    Args:
        settings: Settings instance, read from the environment if None.
        to_file: Also log to settings.log_path.

    Returns:
        The configured package logger.
    """
    if settings is None:
        settings = load_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    if getattr(logger, "_recall_configured", False):
        return logger

    formatter = logging.Formatter(_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if to_file:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger._recall_configured = True  # type: ignore[attr-defined]
    return logger
