"""Middleware tests: request id, rate limiting, CORS, error rendering."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient


class CountingRedis:
    """Just enough of the Redis pipeline API for the fixed-window limiter."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}

    def pipeline(self) -> MagicMock:
        pipe = MagicMock()
        keys: list[str] = []
        pipe.incr.side_effect = keys.append

        async def execute() -> list[int]:
            key = keys[0]
            self.counts[key] = self.counts.get(key, 0) + 1
            return [self.counts[key], True]

        pipe.execute = AsyncMock(side_effect=execute)
        return pipe


@pytest.fixture
def limited(monkeypatch: pytest.MonkeyPatch) -> CountingRedis:
    fake = CountingRedis()
    monkeypatch.setattr("academy.middleware.rate_limit.get_redis", lambda: fake)
    return fake


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    response = await client.get("/api/v1/minted", params={"walletAddress": "0xabc"})
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_per_wallet(client: AsyncClient, limited: CountingRedis) -> None:
    """101st request from one wallet is refused; another wallet is unaffected."""
    for _ in range(100):
        response = await client.get("/api/v1/minted", params={"walletAddress": "0xabc"})
        assert response.status_code == 200
    blocked = await client.get("/api/v1/minted", params={"walletAddress": "0xABC"})
    assert blocked.status_code == 429
    assert "retry-after" in blocked.headers

    other = await client.get("/api/v1/minted", params={"walletAddress": "0xdef"})
    assert other.status_code == 200
    assert other.headers["x-ratelimit-remaining"] == "99"
    assert any(key.startswith("ratelimit:wallet:0xabc:") for key in limited.counts)


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, limited: CountingRedis) -> None:
    for _ in range(150):
        response = await client.get("/health")
        assert response.status_code == 200
    assert limited.counts == {}


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/progress",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient) -> None:
    response = await client.get("/api/v1/eligibility")
    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"


@pytest.mark.asyncio
async def test_domain_error_keeps_its_status(client: AsyncClient) -> None:
    """Duplicate mint surfaces as 409 with the error class name."""
    body = {
        "walletAddress": "0xabc",
        "transactionReference": "0x1",
        "metadataUrl": "ipfs://m",
        "imageUrl": "ipfs://i",
        "levelName": "Web3 Basics with Stylus",
        "level": 1,
    }
    await client.post("/api/v1/minted", json=body)
    response = await client.post("/api/v1/minted", json=body)
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyProcessed"
