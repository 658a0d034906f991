"""Logging setup shared by the cockpit modules.

Console output goes through ``colorlog`` so stage transitions stand out;
a rotating file handler is attached when ``PAYDAY_LOG_FILE`` is set.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from colorlog import ColoredFormatter

from . import config

_ROOT_LOGGER_NAME = "payday_cockpit"

CONSOLE_FORMAT = "%(log_color)s%(levelname)-8s%(reset)s %(blue)s%(name)s%(reset)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _configure_root() -> logging.Logger:
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    root.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    root.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, log_colors=LOG_COLORS))
    root.addHandler(console_handler)

    if config.LOG_FILE:
        log_path = Path(config.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger, configuring handlers once."""
    _configure_root()
    if name == _ROOT_LOGGER_NAME or name.startswith(_ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
