"""Tests for logging setup."""
from __future__ import annotations

import io
import json
import logging

import pytest

from crimesync.logging_config import JSONFormatter, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("crimesync.sync", logging.WARNING, __file__, 1, "remote failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    line = json.loads(JSONFormatter().format(_record()))
    assert line["level"] == "WARNING"
    assert line["logger"] == "crimesync.sync"
    assert line["message"] == "remote failed"
    assert "timestamp" in line


def test_json_formatter_sync_context():
    line = json.loads(JSONFormatter().format(_record(family="posts", error_kind="Unreachable")))
    assert line["family"] == "posts"
    assert line["error_kind"] == "Unreachable"
    assert "entity_id" not in line


def test_setup_json(restore_root):
    setup_logging(log_format="json", log_level="debug")
    assert restore_root.level == logging.DEBUG
    assert len(restore_root.handlers) == 1
    assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_text(restore_root):
    setup_logging(log_format="text", log_level="INFO")
    assert not isinstance(restore_root.handlers[0].formatter, JSONFormatter)


def test_setup_writes_json_to_stream(restore_root):
    out = io.StringIO()
    root = setup_logging(log_format="json", log_level="INFO", stream=out)
    assert root is restore_root

    logging.getLogger("crimesync.sync.reconciler").info("swept", extra={"family": "reports"})

    line = json.loads(out.getvalue().strip())
    assert line["message"] == "swept"
    assert line["family"] == "reports"
    assert logging.getLogger("apscheduler").level == logging.WARNING
