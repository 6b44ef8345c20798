from __future__ import annotations

import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from newsletter_api.access_log import AccessLogMiddleware


def test_request_id_header_on_error() -> None:
    app = FastAPI()
    app.add_middleware(AccessLogMiddleware)

    @app.get("/boom")
    def _boom() -> None:
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/boom")

    assert response.status_code == 500
    assert response.headers["X-Request-ID"]


def test_inbound_request_id_is_echoed_and_logged(client, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="newsletter_api.access"):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    records = [
        json.loads(r.getMessage())
        for r in caplog.records
        if r.name == "newsletter_api.access"
    ]
    assert any(
        r["request_id"] == "req-42" and r["path"] == "/health" and r["status"] == 200
        for r in records
    )


def test_unhandled_error_uses_error_envelope(make_client, monkeypatch) -> None:
    def _explode(_email):
        raise RuntimeError("unexpected")

    with make_client(raise_server_exceptions=False) as raw:
        monkeypatch.setattr(raw.app.state.store, "find_by_email", _explode)
        response = raw.post("/api/newsletter/subscribe", json={"email": "x@example.com"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "Something went wrong!",
        "error": "Internal server error",
    }
    assert response.headers["X-Request-ID"]
