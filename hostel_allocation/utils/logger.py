# hostel_allocation/utils/logger.py
"""
Logging setup shared by every module.
Records go to the console and to a rotating file; LOG_FILE="" keeps console only.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from hostel_allocation.config import settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"

_configured = False


def _file_handler(level: str, formatter: logging.Formatter) -> RotatingFileHandler:
    path = os.path.abspath(settings.LOG_FILE)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _configure_root_logger():
    global _configured
    if _configured:
        return
    _configured = True

    level = settings.LOG_LEVEL.upper()
    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    # uvicorn --reload re-imports the app; don't stack a second console handler
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)

    if settings.LOG_FILE:
        root.addHandler(_file_handler(level, formatter))

    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    _configure_root_logger()
    return logging.getLogger(name)
