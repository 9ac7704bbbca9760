"""Logging configuration for Stacks.

Two handlers on the root logger:
- stacks.log in the data directory, rotated at 10MB with 5 backups, always
  at DEBUG and tagged with the thread name so worker slots can be told apart;
- a Rich console handler at the requested level.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

LOG_FILE_NAME = "stacks.log"
FILE_FORMAT = "%(asctime)s - %(levelname)-8s - [%(threadName)s] %(name)s - %(message)s"

# third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "watchdog": logging.WARNING,
    "PIL": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
}

_logging_initialized = False


def _get_data_dir() -> Path:
    # config.DATA_DIR, resolved here because config imports this module
    env = os.environ.get("DATA_DIR")
    if env:
        return Path(env)
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    console = Console(theme=Theme({"logging.level.info": "bold cyan"}))
    handler = RichHandler(console=console, rich_tracebacks=True, show_time=False, show_path=False)
    handler.setLevel(level)
    return handler


def setup_logging(log_level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Initialize logging once per process.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR). Falls back to
            the STACKS_LOG_LEVEL environment variable, then INFO.
        log_file: Where to write the rotating log. Defaults to stacks.log in
            the data directory.
    """
    global _logging_initialized

    if _logging_initialized:
        return

    level_name = log_level or os.environ.get("STACKS_LOG_LEVEL", "INFO")
    console_level = getattr(logging, level_name.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(_file_handler(log_file or _get_data_dir() / LOG_FILE_NAME))
    root_logger.addHandler(_console_handler(console_level))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    # alembic.ini has no logging section; route alembic through the root handlers
    alembic_logger = logging.getLogger("alembic")
    alembic_logger.handlers = []
    alembic_logger.propagate = True

    _logging_initialized = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
