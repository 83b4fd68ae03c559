from __future__ import annotations

import gzip
import logging
import os
import shutil
from datetime import date
from logging.config import dictConfig
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "slot",
    "source",
    "state",
    "attempt",
    "max_attempts",
    "subscribers",
    "reason",
)

_LOG_FILE_NAME = "scale-aggregator.log"
_MAX_LOG_BYTES = 20 * 1024 * 1024
_LOG_BACKUPS = 14

_configured = False


class ContextualFormatter(logging.Formatter):

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts: list[str] = []
        for key in self._extra_keys:
            if not hasattr(record, key):
                continue
            value = getattr(record, key, None)
            if value is None:
                continue
            context_parts.append(f"{key}={value}")
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as plain, gzip.open(dest, "wb") as archive:
        shutil.copyfileobj(plain, archive)
    os.remove(source)


class DailyRotatingFileHandler(RotatingFileHandler):
    """Size-capped file handler that also rolls over when the day changes.

    Rotated files are numbered (``.1`` is the newest) and gzipped.
    """

    def __init__(
        self,
        filename: str,
        maxBytes: int = _MAX_LOG_BYTES,
        backupCount: int = _LOG_BACKUPS,
        encoding: str | None = None,
        compress: bool = True,
    ) -> None:
        super().__init__(filename, maxBytes=maxBytes, backupCount=backupCount, encoding=encoding)
        self.opened_on = date.today()
        if compress:
            self.namer = _gzip_namer
            self.rotator = _gzip_rotator

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        if date.today() != self.opened_on:
            return True
        return bool(super().shouldRollover(record))

    def doRollover(self) -> None:
        super().doRollover()
        self.opened_on = date.today()


def _build_handlers(log_level: str | int, log_path: str | None) -> Dict[str, Dict[str, Any]]:
    handlers: Dict[str, Dict[str, Any]] = {
        "default": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "contextual",
        }
    }
    if log_path:
        directory = Path(log_path)
        directory.mkdir(parents=True, exist_ok=True)
        handlers["daily_file"] = {
            "()": "logging_config.DailyRotatingFileHandler",
            "level": log_level,
            "formatter": "contextual",
            "filename": str(directory / _LOG_FILE_NAME),
            "maxBytes": _MAX_LOG_BYTES,
            "backupCount": _LOG_BACKUPS,
            "encoding": "utf-8",
        }
    return handlers


def configure_logging(level: str | int | None = None, log_path: str | None = None) -> None:
    """Configure application-wide logging with contextual formatting.

    Console output is always enabled. When a log directory is configured
    (``LOG_PATH``) a file is added that rolls over daily or at 20 MiB, keeping
    14 gzipped archives.
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level
    directory = log_path if log_path is not None else settings.log_path
    handlers = _build_handlers(log_level, directory)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": log_level},
        }
    )

    _configured = True
