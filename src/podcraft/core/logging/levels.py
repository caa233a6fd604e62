"""
Numeric log levels.

Settings and PODCRAFT_LOG_LEVEL take a number from 1 to 4:

    1 MINIMAL   startup, shutdown and failed jobs
    2 NORMAL    job lifecycle and generation stages (default)
    3 VERBOSE   per-chunk timings and retries
    4 DEBUG     prompts, cache keys and SQL housekeeping

Each maps onto a stdlib level so third-party loggers filter consistently;
DEBUG sits below logging.DEBUG as a TRACE level.
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any

TRACE = logging.DEBUG - 5


class LogLevel(IntEnum):
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4

    @property
    def python_level(self) -> int:
        return _PYTHON_LEVELS[self]


_PYTHON_LEVELS = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: TRACE,
}

# Names accepted in settings/env besides the LogLevel members themselves.
_ALIASES = {
    "TRACE": LogLevel.DEBUG,
    "INFO": LogLevel.NORMAL,
    "WARN": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "CRITICAL": LogLevel.MINIMAL,
}


def coerce_level(value: Any) -> LogLevel:
    """
    Turn a config value into a LogLevel.

    Ints 1-4 are taken as-is and larger ints are read as stdlib levels
    (logging.INFO -> NORMAL). Strings may be a member name, an alias such as
    "INFO" or "trace", or a digit. Anything else yields NORMAL.
    """
    if isinstance(value, str):
        text = value.strip().upper()
        if text.isdigit():
            return coerce_level(int(text))
        if text in LogLevel.__members__:
            return LogLevel[text]
        return _ALIASES.get(text, LogLevel.NORMAL)

    if isinstance(value, int) and not isinstance(value, bool):
        if value in {m.value for m in LogLevel}:
            return LogLevel(value)
        for level in LogLevel:
            if value >= level.python_level:
                return level
        return LogLevel.DEBUG

    return LogLevel.NORMAL
