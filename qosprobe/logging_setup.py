"""Centralized logging configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .config import AppConfig

# Chatty third-party loggers held at ``logging.library_level``.
LIBRARY_LOGGERS = ("apscheduler", "werkzeug", "urllib3")


def _level(name: str, default: int) -> int:
    return getattr(logging, name.upper(), default)


def configure_logging(config: AppConfig) -> None:
    settings = config.logging
    log_dir = config.paths.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(settings.level, logging.INFO))

    file_handler = RotatingFileHandler(
        log_dir / settings.file_name,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
    )
    file_handler.setFormatter(formatter)

    # stderr, so testpub keeps stdout for messages.
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    library_level = _level(settings.library_level, logging.WARNING)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
