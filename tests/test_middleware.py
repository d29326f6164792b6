"""Tests for security middleware — headers, request IDs, rate limiting.

Learn: Redis is not initialized in tests, so RateLimitMiddleware passes
everything through; its counting path is exercised with a fake Redis.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from supportdesk.middleware import rate_limit
from supportdesk.middleware.rate_limit import RateLimitMiddleware


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-XSS-Protection"] == "1; mode=block"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


@pytest.mark.asyncio
async def test_security_headers_on_errors(client):
    """Error responses carry the same headers."""
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get(
        "/api/v1/health",
        headers={"X-Request-ID": custom_id},
    )
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/api/v1/health")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_hsts_on_https(client):
    r = await client.get("https://test/api/v1/health")
    assert r.headers["Strict-Transport-Security"].startswith("max-age=")


@pytest.mark.asyncio
async def test_no_rate_limit_headers_without_redis(client):
    r = await client.get("/api/v1/health")
    assert "X-RateLimit-Limit" not in r.headers


# ─── Rate limiting with a stand-in Redis ───────────────

class FakeRedis:
    def __init__(self, fail: bool = False):
        self.counts: dict[str, int] = {}
        self.fail = fail

    async def incr(self, key):
        if self.fail:
            raise RedisConnectionError("down")
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        return True


def _limited_app(auth_rpm: int = 2, default_rpm: int = 100):
    from fastapi import FastAPI

    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=default_rpm, auth_rpm=auth_rpm)

    @app.post("/api/v1/auth/login")
    async def login():
        return {"ok": True}

    @app.get("/api/v1/health")
    async def health():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_auth_bucket_returns_429(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    transport = ASGITransport(app=_limited_app(auth_rpm=2))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        r1 = await ac.post("/api/v1/auth/login")
        r2 = await ac.post("/api/v1/auth/login")
        r3 = await ac.post("/api/v1/auth/login")

    assert r1.status_code == 200
    assert r1.headers["X-RateLimit-Remaining"] == "1"
    assert r2.status_code == 200
    assert r3.status_code == 429
    assert r3.headers["Retry-After"] == "60"


@pytest.mark.asyncio
async def test_api_bucket_is_separate(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    transport = ASGITransport(app=_limited_app(auth_rpm=1))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        await ac.post("/api/v1/auth/login")
        r = await ac.get("/api/v1/health")

    assert r.status_code == 200
    assert r.headers["X-RateLimit-Limit"] == "100"


@pytest.mark.asyncio
async def test_redis_errors_fail_open(monkeypatch):
    monkeypatch.setattr(rate_limit, "get_redis", lambda: FakeRedis(fail=True))

    transport = ASGITransport(app=_limited_app(auth_rpm=0))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.post("/api/v1/auth/login")

    assert r.status_code == 200
