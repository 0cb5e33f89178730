from datetime import timedelta

import pytest
from httpx import AsyncClient

from probewatch.auth import create_access_token, decode_access_token


def test_token_round_trip_keeps_claims():
    token = create_access_token({"sub": "op-7", "role": "MANAGER"})
    payload = decode_access_token(token)
    assert payload["sub"] == "op-7"
    assert payload["role"] == "MANAGER"
    assert "exp" in payload


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "op-7"}, expires_delta=timedelta(seconds=-5))
    assert decode_access_token(token) is None


def test_garbage_token_is_rejected():
    assert decode_access_token("not-a-jwt") is None


@pytest.mark.asyncio
async def test_missing_token(client: AsyncClient):
    response = await client.get("/api/health-checks/settings")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    response = await client.get(
        "/api/health-checks/settings", headers={"Authorization": "Bearer nope"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_token_without_subject(client: AsyncClient):
    token = create_access_token({"role": "ADMIN"})
    response = await client.get(
        "/api/health-checks/settings", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cookie_token_is_accepted(client: AsyncClient):
    client.cookies.set("access_token", create_access_token({"sub": "op-1", "role": "VIEWER"}))
    response = await client.get("/api/health-checks/settings")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_viewer_cannot_write(client: AsyncClient, viewer_headers):
    response = await client.post("/api/health-checks/trigger/all", headers=viewer_headers)
    assert response.status_code == 403

    response = await client.put(
        "/api/health-checks/settings", json={"enabled": False}, headers=viewer_headers
    )
    assert response.status_code == 403

    response = await client.post("/api/uptime-history/trigger-daily", headers=viewer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_manager_can_write(client: AsyncClient, manager_headers):
    response = await client.put(
        "/api/health-checks/settings", json={"enabled": False}, headers=manager_headers
    )
    assert response.status_code == 200
