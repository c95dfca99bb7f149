"""API tests for the manual sync trigger."""

import pytest

from tests.conftest import element_payload


@pytest.mark.asyncio
async def test_manual_sync_requires_auth(test_client):
    assert (await test_client.post("/sync/run")).status_code == 401
    assert (await test_client.get("/sync/status")).status_code == 401


@pytest.mark.asyncio
async def test_manual_sync_runs_and_advances_watermark(test_client, fake_source, auth_headers):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO")})
    fake_source.changes = ["B1"]

    response = await test_client.post("/sync/run", headers=auth_headers)

    assert response.status_code == 200
    result = response.json()
    assert result["trigger"] == "manual"
    assert result["completed"] is True
    assert result["persisted"] == 1
    assert result["audited"] == 1

    status = (await test_client.get("/sync/status", headers=auth_headers)).json()
    assert status["running"] is False
    assert status["watermark"] == result["until"]

    bookings = (await test_client.get("/booking/getAllBookings")).json()["bookings"]
    assert [b["number"] for b in bookings] == ["B1"]


@pytest.mark.asyncio
async def test_manual_sync_conflict_while_running(test_client, sync_service, auth_headers):
    await sync_service._lock.acquire()
    try:
        response = await test_client.post("/sync/run", headers=auth_headers)
    finally:
        sync_service._lock.release()

    assert response.status_code == 409
