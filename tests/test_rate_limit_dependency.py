"""Tests for the enforce_rate_limit FastAPI dependency."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from ratelimiter.adapters.rate_limit.base import RateLimitResult
from ratelimiter.core import rate_limit as rate_limit_module
from ratelimiter.core.app_factory import create_app
from ratelimiter.core.errors import UnavailableError


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, fake_redis) -> TestClient:
    monkeypatch.setattr(rate_limit_module, "get_redis_client", lambda: fake_redis)
    monkeypatch.setattr(rate_limit_module, "_limiter", None)
    monkeypatch.setattr(rate_limit_module, "_limiter_config", None)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", True)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", True)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_capacity", 2)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_refill_rate", 0.5)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_fail_open", False)
    return TestClient(create_app())


def _failing_limiter() -> Mock:
    limiter = Mock()
    limiter.allow.side_effect = UnavailableError(
        code="rate_limit_store_unavailable",
        message="Rate limit store is unavailable",
    )
    return limiter


def test_rate_limit_blocks_after_capacity(client: TestClient) -> None:
    headers = {"X-API-Key": "key-a"}

    assert client.get("/v1/ping", headers=headers).status_code == 200
    assert client.get("/v1/ping", headers=headers).status_code == 200

    blocked = client.get("/v1/ping", headers=headers)
    assert blocked.status_code == 429
    assert "Rate limit exceeded" in blocked.json()["detail"]
    assert blocked.headers["X-RateLimit-Limit"] == "2"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert int(blocked.headers["Retry-After"]) >= 1


def test_rate_limit_is_isolated_by_api_key(client: TestClient) -> None:
    for _ in range(2):
        assert client.get("/v1/ping", headers={"X-API-Key": "key-a"}).status_code == 200
    assert client.get("/v1/ping", headers={"X-API-Key": "key-a"}).status_code == 429

    assert client.get("/v1/ping", headers={"X-API-Key": "key-b"}).status_code == 200


def test_falls_back_to_client_ip(client: TestClient, fake_redis) -> None:
    assert client.get("/v1/ping").status_code == 200

    keys = [k.decode() for k in fake_redis.keys("rate_limit:*")]
    assert keys == ["rate_limit:ip:testclient"]


def test_headers_omitted_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", False)

    for _ in range(2):
        client.get("/v1/ping", headers={"X-API-Key": "k"})
    blocked = client.get("/v1/ping", headers={"X-API-Key": "k"})

    assert blocked.status_code == 429
    assert "Retry-After" not in blocked.headers
    assert "X-RateLimit-Limit" not in blocked.headers


def test_disabled_limiter_is_never_consulted(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", False)
    limiter = Mock()
    monkeypatch.setattr(rate_limit_module, "get_rate_limiter", lambda: limiter)

    for _ in range(5):
        assert client.get("/v1/ping").status_code == 200
    limiter.allow.assert_not_called()


def test_store_outage_fails_closed_by_default(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module, "get_rate_limiter", _failing_limiter)

    resp = client.get("/v1/ping")

    assert resp.status_code == 503


def test_store_outage_fails_open_when_configured(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_fail_open", True)
    monkeypatch.setattr(rate_limit_module, "get_rate_limiter", _failing_limiter)

    resp = client.get("/v1/ping")

    assert resp.status_code == 200
    assert resp.json() == {"pong": True}


def test_limiter_rebuilt_when_configuration_changes(monkeypatch: pytest.MonkeyPatch, fake_redis) -> None:
    monkeypatch.setattr(rate_limit_module, "get_redis_client", lambda: fake_redis)
    monkeypatch.setattr(rate_limit_module, "_limiter", None)
    monkeypatch.setattr(rate_limit_module, "_limiter_config", None)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_capacity", 3)

    first = rate_limit_module.get_rate_limiter()
    assert rate_limit_module.get_rate_limiter() is first

    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_capacity", 4)
    second = rate_limit_module.get_rate_limiter()

    assert second is not first
    assert second.capacity == 4


def test_allowed_response_carries_rate_limit_headers(client: TestClient) -> None:
    resp = client.get("/v1/ping", headers={"X-API-Key": "key-a"})

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "2"
    assert resp.headers["X-RateLimit-Remaining"] == "1"
    assert "Retry-After" not in resp.headers


def test_allowed_response_headers_follow_setting(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", False)

    resp = client.get("/v1/ping", headers={"X-API-Key": "key-a"})

    assert resp.status_code == 200
    assert "X-RateLimit-Limit" not in resp.headers


def test_dependency_is_not_a_coroutine() -> None:
    assert not asyncio.iscoroutinefunction(rate_limit_module.enforce_rate_limit)


def test_slow_store_does_not_block_event_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    def _slow_allow(identifier: str) -> RateLimitResult:
        time.sleep(0.3)
        return RateLimitResult(allowed=True, tokens_before=2.0, tokens_left=1.0, refill_amount=0.0, capacity=2)

    limiter = Mock()
    limiter.allow.side_effect = _slow_allow
    monkeypatch.setattr(rate_limit_module, "get_rate_limiter", lambda: limiter)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", True)
    app = create_app()

    async def _run() -> tuple[int, int]:
        ticks = 0
        done = asyncio.Event()

        async def _ticker() -> None:
            nonlocal ticks
            while not done.is_set():
                await asyncio.sleep(0.01)
                ticks += 1

        ticker = asyncio.create_task(_ticker())
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            resp = await http.get("/v1/ping")
        done.set()
        await ticker
        return resp.status_code, ticks

    status_code, ticks = asyncio.run(_run())

    assert status_code == 200
    assert ticks > 5
