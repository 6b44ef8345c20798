from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("DATABASE_URL", "sqlite:///test-newsletter.db")

from newsletter_api import ratelimit
from newsletter_api.errors import PublisherConnectionError
from newsletter_api.main import app


class RecordingPublisher:
    """Captures events and whether the subscriber was already stored."""

    def __init__(self, store=None) -> None:
        self.store = store
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.persisted_first: list[bool] = []

    def publish(self, channel: str, payload: dict[str, Any]) -> int:
        if self.store is not None:
            self.persisted_first.append(self.store.email_exists(payload["email"]))
        self.events.append((channel, payload))
        return 1

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


class DownPublisher(RecordingPublisher):
    def publish(self, channel: str, payload: dict[str, Any]) -> int:
        raise PublisherConnectionError("Error 111 connecting to redis. Connection refused.")


def _env(tmp_path: Path, **overrides: Any) -> dict[str, str]:
    values = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'newsletter.db'}",
        "REDIS_URL": "",
        "APP_ENV": "production",
        "STORE_TIMEOUT_SECONDS": "5",
        "PUBLISH_TIMEOUT_SECONDS": "2",
        "RATE_LIMIT_ENABLED": "0",
        "RATE_LIMIT_RPS": "5",
        "RATE_LIMIT_BURST": "20",
    }
    values.update({key: str(value) for key, value in overrides.items()})
    return values


@pytest.fixture
def make_client(tmp_path: Path, monkeypatch):
    """Return a factory building a TestClient against a fresh SQLite file."""

    def _make(raise_server_exceptions: bool = True, **overrides: Any) -> TestClient:
        for key, value in _env(tmp_path, **overrides).items():
            monkeypatch.setenv(key, value)
        ratelimit.reset()
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as c:
        c.app.state.publisher = RecordingPublisher(c.app.state.store)
        yield c


@pytest.fixture
def store(client):
    return client.app.state.store


@pytest.fixture
def publisher(client) -> RecordingPublisher:
    return client.app.state.publisher
