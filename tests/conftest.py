"""Shared test fixtures."""

from __future__ import annotations

import os
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Start every test from default settings."""
    for key in list(os.environ):
        if key.startswith("CSP_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CSP_LOG_JSON", "false")
    monkeypatch.setenv("CSP_LOG_LEVEL", "debug")

    # Reset cached settings
    import cspguard.config.loader as loader
    loader._settings = None
    yield
    loader._settings = None


@pytest.fixture
def client_factory():
    """Build a TestClient for the demo app after env vars are in place."""
    import cspguard.main as main_module

    @contextmanager
    def _factory():
        main_module._pipeline = None
        # setup_logging caches loggers globally; keep tests on structlog defaults
        with patch("cspguard.main.setup_logging"):
            with TestClient(main_module.app) as c:
                yield c
        main_module._pipeline = None

    return _factory


@pytest.fixture
def client(client_factory):
    """Demo app client with default settings."""
    with client_factory() as c:
        yield c
