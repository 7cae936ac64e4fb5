"""Logging configuration tests."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from cspguard.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_output_with_module_and_context():
    stream = io.StringIO()
    setup_logging(log_level="info", json_format=True, stream=stream)

    structlog.contextvars.bind_contextvars(request_id="abcd1234")
    try:
        structlog.get_logger("cspguard.test.json").info("csp_header_prepared", header="Content-Security-Policy")
    finally:
        structlog.contextvars.clear_contextvars()

    entry = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert entry["event"] == "csp_header_prepared"
    assert entry["module"] == "cspguard.test.json"
    assert entry["request_id"] == "abcd1234"
    assert entry["level"] == "info"
    assert "logger" not in entry


def test_nonce_values_redacted():
    stream = io.StringIO()
    setup_logging(log_level="debug", json_format=True, stream=stream)
    structlog.get_logger("cspguard.test.redact").debug("nonce_issued", nonce="0123456789abcdef")
    entry = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert entry["nonce"] == "***"


def test_level_filtering():
    stream = io.StringIO()
    setup_logging(log_level="warning", json_format=False, stream=stream)
    log = structlog.get_logger("cspguard.test.level")
    log.info("hidden_event")
    log.warning("shown_event")
    output = stream.getvalue()
    assert "hidden_event" not in output
    assert "shown_event" in output
