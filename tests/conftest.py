"""Shared test fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.setenv("GATEKEEPER_ENVIRONMENT", "development")
    monkeypatch.setenv("GATEKEEPER_LOG_JSON", "false")
    monkeypatch.setenv("GATEKEEPER_LOG_LEVEL", "debug")
    monkeypatch.setenv("GATEKEEPER_RATE_LIMIT_BACKEND", "memory")
    monkeypatch.delenv("GATEKEEPER_RATE_LIMIT_MAX", raising=False)
    monkeypatch.delenv("GATEKEEPER_CORS_ORIGINS", raising=False)

    # Reset cached settings
    import gatekeeper.config.loader as loader
    loader._settings = None
    loader._reload_listeners.clear()
    yield
    loader._settings = None
    loader._reload_listeners.clear()


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_settings():
    """Build settings with explicit overrides on top of the test env."""
    from gatekeeper.config.loader import GatekeeperSettings

    def _make(**overrides):
        return GatekeeperSettings(**overrides)

    return _make


@pytest.fixture
def make_client(make_settings):
    """Create a test client for a freshly built app."""
    from gatekeeper.main import create_app

    clients: list[TestClient] = []

    def _make(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides))
        c = TestClient(app, raise_server_exceptions=False)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()


@pytest.fixture
def client(make_client):
    """Test client with default development settings."""
    return make_client()
