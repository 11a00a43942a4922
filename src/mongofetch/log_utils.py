"""
Logging for Mongofetch.

A single package logger, ``mongofetch``, writes to the console through rich
and, once add_file_logging() is called, to a rotating log file as well.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from mongofetch.constants import (
    DEBUG_LOG_FORMAT,
    INFO_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_NAME,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)

_file_handler: Optional[RotatingFileHandler] = None


def _level_from_name(name: str) -> Optional[int]:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else None


def _plain_formatter(level: int) -> logging.Formatter:
    fmt = DEBUG_LOG_FORMAT if level < logging.INFO else INFO_LOG_FORMAT
    return logging.Formatter(fmt, datefmt=LOG_DATE_FORMAT)


def _apply_level(handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    # rich renders time and level itself
    if not isinstance(handler, RichHandler):
        handler.setFormatter(_plain_formatter(level))


def _remove_file_handler() -> None:
    global _file_handler
    if _file_handler is None:
        return
    logger.removeHandler(_file_handler)
    _file_handler.close()
    _file_handler = None


def set_log_level(level_name: str) -> None:
    """Change the level of the logger and all its handlers; unknown names are ignored."""
    level = _level_from_name(level_name)
    if level is None:
        logger.warning(f"Ignoring unknown log level {level_name!r}")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        _apply_level(handler, level)
    logger.debug(f"Log level is now {logging.getLevelName(level)}")


def add_file_logging(log_dir_path: Path, level_name: str = "INFO") -> None:
    """
    Mirror log records into ``mongofetch.log`` under `log_dir_path`.

    The directory is created if needed. The file rotates at 10 MB and keeps
    five backups. Calling this again swaps the previous file handler for a new
    one. Unknown level names mean INFO.
    """
    global _file_handler
    _remove_file_handler()

    level = _level_from_name(level_name)
    if level is None:
        logger.warning(f"Unknown file log level {level_name!r}, using INFO")
        level = logging.INFO

    log_dir_path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir_path / LOG_FILE_NAME,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    _apply_level(handler, level)
    logger.addHandler(handler)
    _file_handler = handler
    logger.info(f"Writing log file {handler.baseFilename}")


def _initialize_logger() -> None:
    """Reset the logger to one rich console handler at the level named by the environment."""
    global _file_handler
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _file_handler = None
    logger.propagate = False

    console = RichHandler(
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    requested = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    level = _level_from_name(requested)
    logger.setLevel(level or logging.INFO)
    console.setLevel(level or logging.INFO)
    if level is None:
        logger.warning(f"Unknown {LOG_LEVEL_ENV_VAR}={requested!r}, using INFO")


_initialize_logger()
