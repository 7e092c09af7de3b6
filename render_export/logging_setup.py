"""Root logger configuration for the CLI."""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "render-export.log"
LOG_RETENTION_DAYS = 14

CONSOLE_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(name: Optional[str], verbose: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    if not name:
        return logging.INFO
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> Optional[Path]:
    """Console logging plus an optional daily-rotated log file.

    Returns the log file path when one was configured.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FMT, DATE_FMT))
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    file_handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(DETAILED_FMT, DATE_FMT))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(min(level, logging.DEBUG))

    # Playwright's asyncio plumbing is noisy at DEBUG.
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return log_file
