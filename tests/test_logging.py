from __future__ import annotations

import io
import json
import logging
import sys

import pytest
from memlane_core.logging import JSONFormatter, get_logger, setup_logging


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger("memlane")
    saved, level = list(root.handlers), root.level
    root.handlers.clear()
    yield root
    root.handlers[:] = saved
    root.setLevel(level)


def test_get_logger_is_namespaced():
    assert get_logger("engine.lifecycle").name == "memlane.engine.lifecycle"


def test_setup_logging_is_idempotent(clean_root_logger):
    stream = io.StringIO()
    setup_logging("DEBUG", stream=stream)
    setup_logging("DEBUG", stream=stream)
    assert len(clean_root_logger.handlers) == 1
    assert clean_root_logger.level == logging.DEBUG


def test_level_from_environment(clean_root_logger, monkeypatch):
    monkeypatch.setenv("MEMLANE_LOG_LEVEL", "warning")
    setup_logging(stream=io.StringIO())
    assert clean_root_logger.level == logging.WARNING


def test_json_output_lifts_context(clean_root_logger):
    stream = io.StringIO()
    setup_logging("INFO", json_output=True, stream=stream)

    get_logger("test").info(
        "Deleted memory %s", "m1", extra={"memory_id": "m1", "action": "delete"},
    )

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["msg"] == "Deleted memory m1"
    assert payload["logger"] == "memlane.test"
    assert payload["memory_id"] == "m1"
    assert payload["action"] == "delete"
    assert "namespace" not in payload


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "memlane.x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info(),
        )

    payload = json.loads(JSONFormatter().format(record))
    assert payload["level"] == "ERROR"
    assert "ValueError: boom" in payload["exc"]
