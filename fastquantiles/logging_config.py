"""Logging switches for fastquantiles.

Nothing is printed unless the application asks for it: importing the package
only hangs a NullHandler on the ``fastquantiles`` logger. Sketch internals
log structural events (compaction, node split, rebalance, merge, batch
flush) at DEBUG and stay quiet per recorded value, so DEBUG remains usable
on long streams.

Every switch attaches one handler to the package logger. Plain text and
JSON lines are two formatters over the same two destinations: stderr and a
size-capped rotating file.

Example usage:
    import fastquantiles

    fastquantiles.enable_console_logging(level="DEBUG")
    fastquantiles.enable_file_logging("logs/sketch.log", max_bytes=5_000_000)
    fastquantiles.enable_json_logging(path="logs/sketch.jsonl")
    fastquantiles.configure_from_env()

Environment variables:
    FQ_LOGGING: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    FQ_LOG_FILE: Write to this rotating file instead of stderr
    FQ_LOG_JSON: "1" renders records as JSON lines
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Literal

__all__ = [
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_logging",
    "set_level",
    "set_module_level",
]

LOGGER_NAME = "fastquantiles"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Example output:
        {"timestamp": "2026-03-02T08:15:00.000001+00:00", "level": "DEBUG",
         "logger": "fastquantiles.sketching.samples_node",
         "message": "Compacted 412 samples to 97 (count=5000, limit=10)"}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        fields = dict(
            timestamp=created.isoformat(),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        extra = getattr(record, "extra", None)
        if extra is not None:
            fields["extra"] = extra
        return json.dumps(fields)


def _get_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _destination(
    path: str | Path | None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> logging.Handler:
    """stderr when ``path`` is None, otherwise a rotating file under ``path``."""
    if path is None:
        return logging.StreamHandler()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)


def _install(
    handler: logging.Handler, level: LogLevel | int, formatter: logging.Formatter
) -> logging.Handler:
    numeric = _get_level(level)
    handler.setLevel(numeric)
    handler.setFormatter(formatter)
    logger = _get_logger()
    logger.setLevel(numeric)
    logger.addHandler(handler)
    return handler


def _clear_handlers() -> None:
    """Detach and close every handler of the package logger except NullHandler."""
    logger = _get_logger()
    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler):
            continue
        logger.removeHandler(handler)
        handler.close()


def enable_console_logging(
    level: LogLevel | int = "INFO",
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> logging.StreamHandler:
    """Print fastquantiles records to stderr as plain text.

    Args:
        level: Level name or number.
        format: ``logging.Formatter`` format string.
        date_format: Format of ``%(asctime)s``.

    Returns:
        The attached StreamHandler.
    """
    return _install(_destination(None), level, logging.Formatter(format, date_format))


def enable_file_logging(
    path: str | Path,
    level: LogLevel | int = "INFO",
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    format: str = DEFAULT_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> RotatingFileHandler:
    """Append fastquantiles records to a rotating plain-text file.

    Args:
        path: Log file; missing parent directories are created.
        level: Level name or number.
        max_bytes: File size that triggers a rotation. Default 10 MB.
        backup_count: Rotated files kept. Default 5.
        format: ``logging.Formatter`` format string.
        date_format: Format of ``%(asctime)s``.

    Returns:
        The attached RotatingFileHandler.
    """
    handler = _destination(path, max_bytes, backup_count)
    return _install(handler, level, logging.Formatter(format, date_format))


def enable_json_logging(
    level: LogLevel | int = "INFO",
    path: str | Path | None = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> logging.Handler:
    """Emit fastquantiles records as JSON lines.

    Lines go to stderr, or to a rotating file when ``path`` is given
    (``max_bytes`` and ``backup_count`` apply to that file only).

    Returns:
        The attached StreamHandler or RotatingFileHandler.
    """
    handler = _destination(path, max_bytes, backup_count)
    return _install(handler, level, JsonFormatter())


def configure_from_env() -> logging.Handler | None:
    """Attach a handler described by FQ_LOGGING, FQ_LOG_FILE and FQ_LOG_JSON.

    Nothing happens unless FQ_LOGGING or FQ_LOG_FILE is set; a log file
    without a level logs at INFO.

    Returns:
        The attached handler, or None when the environment asks for nothing.

    Example:
        $ FQ_LOGGING=DEBUG FQ_LOG_JSON=1 python examples/parallel_quantiles.py
    """
    level = os.environ.get("FQ_LOGGING", "").upper()
    log_file = os.environ.get("FQ_LOG_FILE") or None
    if not level and log_file is None:
        return None

    if os.environ.get("FQ_LOG_JSON", "") == "1":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_FORMAT, DEFAULT_DATE_FORMAT)
    return _install(_destination(log_file), level or "INFO", formatter)


def set_level(level: LogLevel | int) -> None:
    """Set the level of the package logger."""
    _get_logger().setLevel(_get_level(level))


def set_module_level(module: str, level: LogLevel | int) -> None:
    """Set the level of one fastquantiles submodule.

    Args:
        module: Name relative to the package, e.g. "sketching.samples_node".
        level: Level name or number.

    Example:
        >>> fastquantiles.enable_console_logging(level="INFO")
        >>> fastquantiles.set_module_level("sketching.sketch", "DEBUG")
    """
    logging.getLogger(f"{LOGGER_NAME}.{module}").setLevel(_get_level(level))


def disable_logging() -> None:
    """Drop every handler and silence the package logger."""
    _clear_handlers()
    logger = _get_logger()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.CRITICAL + 1)
