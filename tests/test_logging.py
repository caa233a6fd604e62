"""Tests for structured logging: levels, request ids, formatters."""
from __future__ import annotations

import json
import logging

import pytest

from podcraft.core.logging import (
    ColoredConsoleFormatter,
    JsonlFormatter,
    LogLevel,
    coerce_level,
    fail,
    get_level,
    get_logger,
    get_request_id,
    info,
    set_level,
    set_request_id,
    verbose,
)
from podcraft.core.logging.context import read_logging_options


@pytest.fixture
def restore_level():
    level = get_level()
    yield
    set_level(level)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("podcraft.test", logging.INFO, __file__, 1, "chunk_done", None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestLevels:

    @pytest.mark.parametrize("value,expected", [
        (1, LogLevel.MINIMAL),
        (3, LogLevel.VERBOSE),
        ("INFO", LogLevel.NORMAL),
        ("trace", LogLevel.DEBUG),
        ("4", LogLevel.DEBUG),
        (logging.WARNING, LogLevel.MINIMAL),
        (logging.INFO, LogLevel.NORMAL),
        ("unknown", LogLevel.NORMAL),
        (None, LogLevel.NORMAL),
    ])
    def test_coerce_level(self, value, expected):
        assert coerce_level(value) == expected

    def test_messages_above_level_are_dropped(self, caplog, restore_level):
        log = get_logger("podcraft.test")
        set_level(LogLevel.MINIMAL)

        with caplog.at_level(1):
            info(log, "should_not_appear")
            verbose(log, "nor_this")
            fail(log, "failure_shown", code="X")

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["failure_shown"]
        assert caplog.records[0].tag == "FAIL"
        assert caplog.records[0].extra_data == {"code": "X"}


class TestRequestId:

    def test_set_and_get(self):
        set_request_id("abc123")
        assert get_request_id() == "abc123"

    def test_request_id_attached(self, caplog, restore_level):
        log = get_logger("podcraft.test")
        set_level(LogLevel.NORMAL)
        set_request_id("rid-42")

        with caplog.at_level(1):
            info(log, "hello", seconds=0.5)

        assert caplog.records[-1].request_id == "rid-42"
        assert caplog.records[-1].seconds == 0.5


class TestFormatters:

    def test_jsonl(self):
        record = _record(tag="INFO", request_id="r1", numeric_level=2, seconds=1.5, event=None,
                         extra_data={"chunk": 3})
        payload = json.loads(JsonlFormatter().format(record))

        assert payload["message"] == "chunk_done"
        assert payload["request_id"] == "r1"
        assert payload["seconds"] == 1.5
        assert payload["extra"] == {"chunk": 3}
        assert "event" not in payload

    def test_console(self):
        record = _record(tag="INFO", request_id="r1", seconds=0.05, event=None, extra_data={"chunk": 3})
        line = ColoredConsoleFormatter().format(record)

        assert "chunk_done" in line
        assert "chunk=3" in line
        assert "(r1)" in line

    def test_console_color_toggle(self):
        record = _record(tag="FAIL", request_id="-", seconds=12.0, event=None, extra_data={"code": "X"})

        plain = ColoredConsoleFormatter(use_color=False).format(record)
        painted = ColoredConsoleFormatter(use_color=True).format(record)

        assert "\033[" not in plain
        assert "(-)" not in plain
        assert "12.000s" in plain
        assert "\033[91mcode=X" in painted


class TestOptions:

    def test_python_levels(self):
        assert LogLevel.NORMAL.python_level == logging.INFO
        assert LogLevel.DEBUG.python_level < logging.DEBUG

    def test_env_overrides_settings(self, tmp_path, monkeypatch):
        settings = tmp_path / "settings.yaml"
        settings.write_text("logging:\n  level: 1\n  jsonl_file: a.jsonl\n", encoding="utf-8")
        monkeypatch.setenv("PODCRAFT_SETTINGS", str(settings))
        monkeypatch.setenv("PODCRAFT_LOG_LEVEL", "3")
        monkeypatch.setenv("PODCRAFT_LOG_ROTATE_BYTES", "not-a-number")

        options = read_logging_options()

        assert options["level"] == "3"
        assert options["jsonl_file"] == "a.jsonl"
        assert "rotate_max_bytes" not in options

    def test_missing_settings_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PODCRAFT_SETTINGS", str(tmp_path / "nope.yaml"))
        monkeypatch.delenv("PODCRAFT_LOG_LEVEL", raising=False)
        assert "level" not in read_logging_options()
