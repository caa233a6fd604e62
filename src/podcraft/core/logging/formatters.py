"""
Console and JSONL formatters.

Console lines are meant for a developer watching a generation job:

    14:30:05 [ INFO  ] (3f9a1c2b7d10) chunk_done chunk=3 attempt=2 1.204s

JSONL lines are one object per record, for log shipping:

    {"ts": "...", "level": 3, "tag": "INFO", "message": "chunk_done",
     "request_id": "3f9a1c2b7d10", "seconds": 1.204, "extra": {"chunk": 3}}

ANSI colors are used only on a TTY and never when NO_COLOR or
PODCRAFT_NO_COLOR=1 is set.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

RESET = "\033[0m"
DIM = "\033[2m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
BLUE = "\033[34m"
CYAN = "\033[96m"
MAGENTA = "\033[35m"

_TAG_COLORS = {
    "SUCCESS": GREEN,
    "FAIL": RED,
    "ERROR": RED,
    "WARN": YELLOW,
    "INFO": CYAN,
    "DEBUG": DIM,
}


def colors_enabled() -> bool:
    if os.getenv("NO_COLOR") or os.getenv("PODCRAFT_NO_COLOR") == "1":
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        "tag": getattr(record, "tag", record.levelname),
        "request_id": getattr(record, "request_id", "-"),
        "event": getattr(record, "event", None),
        "seconds": getattr(record, "seconds", None),
        "extra": getattr(record, "extra_data", None) or {},
    }


class JsonlFormatter(logging.Formatter):
    """One JSON object per record; empty optional fields are omitted."""

    def format(self, record: logging.LogRecord) -> str:
        f = _fields(record)
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": f["tag"],
            "message": record.getMessage(),
            "request_id": f["request_id"],
        }
        if f["event"]:
            payload["event"] = f["event"]
        if f["seconds"] is not None:
            payload["seconds"] = f["seconds"]
        if f["extra"]:
            payload["extra"] = f["extra"]
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Single-line console output; color is decided once per formatter."""

    def __init__(self, use_color: Optional[bool] = None):
        super().__init__()
        self.use_color = colors_enabled() if use_color is None else use_color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        f = _fields(record)
        tag = f["tag"]

        out = [
            self._paint(datetime.fromtimestamp(record.created).strftime("%H:%M:%S"), DIM),
            self._paint(f"[{tag:^7}]", _TAG_COLORS.get(tag, "")),
        ]
        if f["request_id"] != "-":
            out.append(self._paint(f"({f['request_id']})", DIM))
        out.append(record.getMessage())

        if f["event"]:
            out.append(self._paint(f"event={f['event']}", BLUE))
        for key, value in f["extra"].items():
            out.append(self._paint(f"{key}={value}", self._field_color(key, value)))

        seconds = f["seconds"]
        if seconds is not None:
            # thresholds sized for Gemini calls, which run for seconds
            color = GREEN if seconds < 1.0 else YELLOW if seconds < 10.0 else RED
            out.append(self._paint(f"{seconds:.3f}s", color))

        return " ".join(out)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key in ("error", "code"):
            return RED
        if key == "attempt":
            return YELLOW if isinstance(value, int) and value > 1 else DIM
        if key == "stage":
            return MAGENTA
        if key == "cache":
            return GREEN if value == "hit" else DIM
        return DIM
