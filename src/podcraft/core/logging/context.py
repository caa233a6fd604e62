"""
Per-request and process-wide logging state.

The request id is a ContextVar: the HTTP middleware sets it, and SSE worker
threads run inside a copied context, so chunk logs from the pipeline carry
the id of the request that started the job.

Environment Variables:
    - PODCRAFT_LOG_LEVEL: 1-4 or a level name
    - PODCRAFT_LOG_DIR: enables the JSONL file log in this directory
    - PODCRAFT_JSONL_FILE: JSONL filename (default podcraft.jsonl)
    - PODCRAFT_LOG_ROTATE_BYTES / PODCRAFT_LOG_ROTATE_BACKUP: rotation
    - PODCRAFT_SETTINGS: settings file whose `logging` section is read
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict

import yaml

from .levels import LogLevel

NO_REQUEST = "-"

_request_id: ContextVar[str] = ContextVar("podcraft_request_id", default=NO_REQUEST)


@dataclass
class LogState:
    level: LogLevel = LogLevel.NORMAL
    configured: bool = False
    options: Dict[str, Any] = field(default_factory=dict)


state = LogState()


def get_request_id() -> str:
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Tag every log line emitted from the current context with `rid`."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return state.level


def set_level(level: LogLevel) -> None:
    state.level = level


# env var -> (option key, converter)
_ENV_OPTIONS = {
    "PODCRAFT_LOG_LEVEL": ("level", str),
    "PODCRAFT_LOG_DIR": ("log_dir", str),
    "PODCRAFT_JSONL_FILE": ("jsonl_file", str),
    "PODCRAFT_LOG_ROTATE_BYTES": ("rotate_max_bytes", int),
    "PODCRAFT_LOG_ROTATE_BACKUP": ("rotate_backup_count", int),
}


def read_logging_options() -> Dict[str, Any]:
    """
    Resolve logging options: env vars win over the settings file's
    `logging` section. A missing or broken settings file is ignored, and so
    are malformed numeric env values.
    """
    options: Dict[str, Any] = {}

    path = os.getenv("PODCRAFT_SETTINGS", "config/settings.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        section = raw.get("logging") if isinstance(raw, dict) else None
        if isinstance(section, dict):
            options.update(section)
    except (OSError, yaml.YAMLError):
        pass

    for env, (key, convert) in _ENV_OPTIONS.items():
        value = os.getenv(env)
        if not value:
            continue
        try:
            options[key] = convert(value)
        except ValueError:
            continue

    return options
