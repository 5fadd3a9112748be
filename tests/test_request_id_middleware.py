from __future__ import annotations

from fastapi.testclient import TestClient

from ratelimiter.core.app_factory import create_app


client = TestClient(create_app())


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert len(generated) > 0

    assert resp.headers.get("X-Request-Duration-ms") is not None
