"""Logging setup driven by the ``logging`` configuration section."""

from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING
import logging
import sys

if TYPE_CHECKING:
    from ..config import LoggingConfig

PACKAGE_LOGGER = "ledger_recon"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def setup_logging(settings: "LoggingConfig", verbose: bool = False) -> logging.Logger:
    """
    Configure the package logger from settings.

    Console output goes to stderr so report tables on stdout stay clean.
    Calling this again replaces the handlers of the previous call.

    Args:
        settings: Logging section of the configuration
        verbose: Force DEBUG on the console regardless of the configured level

    Returns:
        The ``ledger_recon`` logger
    """
    console_level = logging.DEBUG if verbose else level_from_name(settings.level)

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(settings.format))
    logger.addHandler(console)

    logger.setLevel(console_level)

    if settings.file:
        log_path = Path(settings.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS
        )
        # The file always keeps the full trace
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    return logger


def level_from_name(name: str) -> int:
    """Translate a configured level name ("DEBUG", "info") into a logging level."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO
