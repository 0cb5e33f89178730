"""Tests for the /api/health-checks endpoints."""
import pytest
from httpx import AsyncClient

from probewatch.probes import ProbeOutcome


@pytest.mark.asyncio
async def test_settings_defaults(client: AsyncClient, viewer_headers):
    response = await client.get("/api/health-checks/settings", headers=viewer_headers)
    assert response.status_code == 200
    data = response.json()
    assert data == {
        "enabled": True,
        "schedulerIntervalMs": 10000,
        "threadPoolSize": 10,
        "defaultIntervalSeconds": 60,
        "defaultTimeoutSeconds": 10,
    }


@pytest.mark.asyncio
async def test_update_settings_partial(client: AsyncClient, admin_headers):
    response = await client.put(
        "/api/health-checks/settings",
        json={"threadPoolSize": 4, "schedulerIntervalMs": 5000},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["threadPoolSize"] == 4
    assert data["schedulerIntervalMs"] == 5000
    assert data["enabled"] is True

    response = await client.get("/api/health-checks/settings", headers=admin_headers)
    assert response.json()["threadPoolSize"] == 4


@pytest.mark.asyncio
async def test_update_settings_out_of_range(client: AsyncClient, admin_headers):
    response = await client.put(
        "/api/health-checks/settings", json={"threadPoolSize": 0}, headers=admin_headers
    )
    assert response.status_code == 422

    response = await client.get("/api/health-checks/settings", headers=admin_headers)
    assert response.json()["threadPoolSize"] == 10


@pytest.mark.asyncio
async def test_status_lists_checkable_entities(client: AsyncClient, checked_app, viewer_headers):
    response = await client.get("/api/health-checks/status", headers=viewer_headers)
    assert response.status_code == 200
    data = response.json()

    ids = {e["id"] for e in data["entities"]}
    assert checked_app["inheriting"].id not in ids
    assert {checked_app["platform"].id, checked_app["app"].id, checked_app["own"].id} == ids
    assert data["totalEntities"] == 3
    assert data["enabledChecks"] == 2

    component = next(e for e in data["entities"] if e["entityType"] == "COMPONENT")
    assert component["appId"] == checked_app["app"].id
    assert component["platformId"] == checked_app["platform"].id


@pytest.mark.asyncio
async def test_status_filters(client: AsyncClient, checked_app, viewer_headers):
    response = await client.get(
        "/api/health-checks/status", params={"checkEnabled": "false"}, headers=viewer_headers
    )
    assert [e["id"] for e in response.json()["entities"]] == [checked_app["platform"].id]

    response = await client.get(
        "/api/health-checks/status", params={"status": "MAJOR_OUTAGE"}, headers=viewer_headers
    )
    assert response.json()["entities"] == []


@pytest.mark.asyncio
async def test_trigger_all(client: AsyncClient, checked_app, admin_headers, fake_probe):
    response = await client.post("/api/health-checks/trigger/all", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["entitiesChecked"] == 2
    assert "durationMs" in data
    assert len(fake_probe.calls) == 2


@pytest.mark.asyncio
async def test_trigger_app_records_result(client: AsyncClient, checked_app, admin_headers, fake_probe):
    fake_probe.queue("https://billing.example.com/health", ProbeOutcome(False, "HTTP 502 (expected 200)"))

    response = await client.post(
        f"/api/health-checks/trigger/app/{checked_app['app'].id}", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["message"] == "HTTP 502 (expected 200)"

    status_response = await client.get("/api/health-checks/status", headers=admin_headers)
    app = next(e for e in status_response.json()["entities"] if e["id"] == checked_app["app"].id)
    assert app["consecutiveFailures"] == 1
    assert app["lastCheckSuccess"] is False


@pytest.mark.asyncio
async def test_trigger_component(client: AsyncClient, checked_app, admin_headers):
    response = await client.post(
        f"/api/health-checks/trigger/component/{checked_app['own'].id}", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["success"] is True


@pytest.mark.asyncio
async def test_trigger_inheriting_component_is_rejected(client: AsyncClient, checked_app, admin_headers):
    response = await client.post(
        f"/api/health-checks/trigger/component/{checked_app['inheriting'].id}", headers=admin_headers
    )
    assert response.status_code == 400
    assert "trigger the app check instead" in response.json()["detail"]


@pytest.mark.asyncio
async def test_trigger_unchecked_platform_is_rejected(client: AsyncClient, checked_app, admin_headers):
    response = await client.post(
        f"/api/health-checks/trigger/platform/{checked_app['platform'].id}", headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Health checking is not enabled for this platform"


@pytest.mark.asyncio
async def test_trigger_missing_app(client: AsyncClient, admin_headers):
    response = await client.post("/api/health-checks/trigger/app/nope", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "App not found: nope"


@pytest.mark.asyncio
async def test_trigger_when_disabled(client: AsyncClient, checked_app, admin_headers):
    await client.put("/api/health-checks/settings", json={"enabled": False}, headers=admin_headers)

    response = await client.post("/api/health-checks/trigger/all", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Health checks are globally disabled"


@pytest.mark.asyncio
async def test_status_filter_rejects_unknown_status(client: AsyncClient, viewer_headers):
    response = await client.get(
        "/api/health-checks/status", params={"status": "DOWN"}, headers=viewer_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Invalid status: DOWN")
