"""
PodCraft Structured Logging.

Every log call names an event and attaches key=value fields:

    from podcraft.core.logging import get_logger, info, verbose

    log = get_logger("podcraft.pipeline")
    info(log, "audio_start", chunks=8, parallel=3)
    verbose(log, "chunk_done", chunk=2, attempt=1, seconds=1.2)

`seconds` and `event` are promoted to first-class record fields; all other
keywords are rendered as fields by the console and JSONL formatters. Calls
above the configured numeric level (see levels.py) return before a record
is built.

Configuration comes from the `logging` section of settings.yaml, overridden
by PODCRAFT_LOG_LEVEL / PODCRAFT_LOG_DIR and friends (see context.py).
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

from .context import get_level, get_request_id, read_logging_options, set_level, set_request_id, state
from .formatters import ColoredConsoleFormatter, JsonlFormatter
from .levels import TRACE, LogLevel, coerce_level

# tag -> (stdlib level, numeric level at which it is shown)
_TAGS = {
    "FAIL": (logging.ERROR, LogLevel.MINIMAL),
    "ERROR": (logging.ERROR, LogLevel.MINIMAL),
    "WARN": (logging.WARNING, LogLevel.NORMAL),
    "SUCCESS": (logging.INFO, LogLevel.NORMAL),
    "INFO": (logging.INFO, LogLevel.NORMAL),
    "VERBOSE": (logging.DEBUG, LogLevel.VERBOSE),
    "DEBUG": (TRACE, LogLevel.DEBUG),
}


def configure_logging(level: Optional[Union[int, str, LogLevel]] = None, force: bool = False) -> None:
    """
    Install the console handler (and the JSONL file handler when a log
    directory is configured) on the root logger. Idempotent unless `force`.
    """
    if state.configured and not force:
        return

    options = read_logging_options()
    state.options = options
    state.level = coerce_level(level if level is not None else options.get("level", LogLevel.NORMAL))

    root = logging.getLogger()
    root.setLevel(TRACE)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(state.level.python_level)
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = options.get("log_dir")
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path / str(options.get("jsonl_file", "podcraft.jsonl")),
            maxBytes=int(options.get("rotate_max_bytes", 10 * 1024 * 1024)),
            backupCount=int(options.get("rotate_backup_count", 5)),
            encoding="utf-8",
            delay=True,
        )
        # the file keeps everything the numeric level lets through
        file_handler.setLevel(TRACE)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    state.configured = True


def get_logger(name: str = "podcraft") -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def _emit(logger: logging.Logger, tag: str, msg: str, fields: dict) -> None:
    python_level, shown_at = _TAGS[tag]
    if shown_at > state.level:
        return
    logger.log(
        python_level,
        msg,
        extra={
            # VERBOSE lines render as INFO; the numeric level tells them apart
            "tag": "INFO" if tag == "VERBOSE" else tag,
            "numeric_level": int(shown_at),
            "request_id": get_request_id(),
            "event": fields.pop("event", None),
            "seconds": fields.pop("seconds", None),
            "extra_data": fields or None,
        },
    )


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _emit(logger, "INFO", msg, fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _emit(logger, "SUCCESS", msg, fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _emit(logger, "WARN", msg, fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Unexpected errors; shown even at MINIMAL."""
    _emit(logger, "ERROR", msg, fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """A job or request that failed; shown even at MINIMAL."""
    _emit(logger, "FAIL", msg, fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _emit(logger, "VERBOSE", msg, fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _emit(logger, "DEBUG", msg, fields)


__all__ = [
    "LogLevel",
    "coerce_level",
    "ColoredConsoleFormatter",
    "JsonlFormatter",
    "configure_logging",
    "get_logger",
    "get_level",
    "set_level",
    "get_request_id",
    "set_request_id",
    "info",
    "success",
    "warn",
    "error",
    "fail",
    "verbose",
    "debug",
]
