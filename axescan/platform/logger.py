import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from axescan.platform.config import settings

PACKAGE_LOGGER = "axescan"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(name: str = PACKAGE_LOGGER, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Attach the console and rotating-file handlers to the package logger.

    Module loggers (``logging.getLogger(__name__)`` in services and workers,
    ``get_logger(__name__)`` in routes and platform code) are children of the
    package logger, so every ``axescan.*`` record goes through these handlers.
    Calling this again is a no-op.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_dir = log_dir or settings.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, settings.LOG_FILE),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Creates a logger instance that writes to console AND a file.
    """
    configure_logging()
    return logging.getLogger(name)
