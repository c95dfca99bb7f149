"""Unit tests for the external booking source client."""

import json
from datetime import datetime, timezone

import httpx
import pytest
from tenacity import wait_none

from booking_api.core.exceptions import FetchError
from booking_api.services.booking_source import BookingSourceClient
from tests.conftest import booking_payload, element_payload

BASE_URL = "https://bookings.test/api"
SINCE = datetime(2023, 11, 1, 10, 0, tzinfo=timezone.utc)
UNTIL = datetime(2023, 11, 1, 16, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(BookingSourceClient._send.retry, "wait", wait_none())


def make_client(handler) -> BookingSourceClient:
    return BookingSourceClient(BASE_URL, api_key="secret-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_changes_posts_range_and_keeps_duplicates():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": {"changes": [{"number": "B1"}, {"number": 42}, {"number": "B1"}]}})

    client = make_client(handler)
    try:
        numbers = await client.fetch_changes(SINCE, UNTIL)
    finally:
        await client.close()

    assert numbers == ["B1", "42", "B1"]
    assert seen["method"] == "POST"
    assert seen["url"] == f"{BASE_URL}/booking/changes"
    assert seen["auth"] == "Bearer secret-key"
    assert seen["body"] == {"range": {"from": SINCE.isoformat(), "till": UNTIL.isoformat()}}


@pytest.mark.asyncio
async def test_fetch_booking_detail_flattens_elements():
    payload = booking_payload("B1", {"701": element_payload("ACCO"), "702": element_payload("VERVOER", starttime="")})

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/booking/B1"
        return httpx.Response(200, json=payload)

    client = make_client(handler)
    try:
        detail = await client.fetch_booking_detail("B1")
    finally:
        await client.close()

    booking = detail.booking
    assert booking.number == "B1"
    assert booking.source_id == "src-B1"
    assert booking.contact_middle_name is None
    assert [e.source_element_id for e in booking.elements] == ["701", "702"]
    assert booking.elements[1].starttime is None


@pytest.mark.asyncio
async def test_non_2xx_raises_fetch_error():
    client = make_client(lambda request: httpx.Response(503, text="maintenance"))
    try:
        with pytest.raises(FetchError) as exc_info:
            await client.fetch_booking_detail("B2")
    finally:
        await client.close()

    assert exc_info.value.booking_number == "B2"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_non_json_body_raises_fetch_error():
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    try:
        with pytest.raises(FetchError):
            await client.fetch_changes(SINCE, UNTIL)
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_malformed_detail_raises_fetch_error():
    client = make_client(lambda request: httpx.Response(200, json={"response": {"booking": {"tripname": "no number"}}}))
    try:
        with pytest.raises(FetchError):
            await client.fetch_booking_detail("B3")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_connect_errors_are_retried_then_reported():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    try:
        with pytest.raises(FetchError):
            await client.fetch_changes(SINCE, UNTIL)
    finally:
        await client.close()

    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_transient_timeout_recovers():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json={"response": {"changes": []}})

    client = make_client(handler)
    try:
        assert await client.fetch_changes(SINCE, UNTIL) == []
    finally:
        await client.close()

    assert len(attempts) == 2
