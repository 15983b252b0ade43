"""
Health check and API root tests.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from app.core.middleware import SECURITY_HEADERS


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client: AsyncClient):
    """Ready endpoint reports each dependency."""
    fake_redis = MagicMock()
    fake_redis.ping = AsyncMock(return_value=True)
    with patch("app.main.get_redis", AsyncMock(return_value=fake_redis)):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok", "redis": "ok"}}


@pytest.mark.asyncio
async def test_ready_check_degraded_without_redis(client: AsyncClient):
    with patch("app.main.get_redis", AsyncMock(side_effect=ConnectionError("refused"))):
        response = await client.get("/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["redis"] == "error"


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/subscription" in data["endpoints"]


@pytest.mark.asyncio
async def test_security_and_request_id_headers(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    for header, value in SECURITY_HEADERS.items():
        assert response.headers[header] == value
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_lifespan_creates_schema_when_enabled():
    from app import main

    with patch.object(main.settings, "create_schema_on_startup", True), \
            patch("app.main.init_db", AsyncMock()) as init_db, \
            patch("app.main.close_redis", AsyncMock()) as close_redis:
        async with main.lifespan(main.app):
            init_db.assert_awaited_once()
        close_redis.assert_awaited_once()


@pytest.mark.asyncio
async def test_lifespan_leaves_schema_to_migrations_by_default():
    from app import main

    with patch("app.main.init_db", AsyncMock()) as init_db, \
            patch("app.main.close_redis", AsyncMock()):
        async with main.lifespan(main.app):
            pass
    init_db.assert_not_awaited()
