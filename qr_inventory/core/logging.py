"""
QR Inventory Logging Configuration
Centralized logging setup for the stock ledger
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config import settings

ROOT_LOGGER = "inventory"

MODULE_LOGGERS = (
    "ledger",
    "movements",
    "blocks",
    "transfers",
    "variances",
    "cyclic",
    "database",
    "api",
)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s"

MB = 1024 * 1024


def _rotating_handler(path: Path, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * MB,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_to_console: bool = True,
) -> logging.Logger:
    """
    Configure the ``inventory`` logger tree

    Args:
        log_level: Level name; defaults to settings.LOG_LEVEL
        log_to_file: Write the rotating ledger and error logs (defaults to settings.LOG_TO_FILE)
        log_to_console: Echo records to stdout

    Returns:
        The root inventory logger
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    if log_to_file is None:
        log_to_file = settings.LOG_TO_FILE

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers.clear()

    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(console)

    if log_to_file:
        settings.LOG_DIR.mkdir(exist_ok=True, parents=True)
        root.addHandler(_rotating_handler(settings.LOG_DIR / settings.LOG_FILE, level, max_mb=10, backups=5))
        # Errors also go to their own file
        root.addHandler(_rotating_handler(settings.LOG_DIR / settings.ERROR_LOG_FILE, logging.ERROR, max_mb=5, backups=3))

    for name in MODULE_LOGGERS:
        logging.getLogger(f"{ROOT_LOGGER}.{name}").setLevel(level)

    return root


def get_logger(name: str) -> logging.Logger:
    """Logger under the inventory namespace, e.g. ``inventory.ledger``"""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


main_logger = setup_logging()

__all__ = [
    'setup_logging',
    'get_logger',
    'main_logger'
]
