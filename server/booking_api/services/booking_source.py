"""
HTTP client for the external travel-booking system.

Two calls are consumed: the change-list for a time window and the full detail
of one booking. Transient transport errors are retried; anything else is
reported as FetchError.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.exceptions import FetchError
from ..schemas.source import BookingDetailResponse, ChangeListResponse

logger = logging.getLogger(__name__)


class BookingSource(Protocol):
    """What the reconciliation engine needs from the external system."""

    async def fetch_changes(self, since: datetime, until: datetime) -> list[str]: ...

    async def fetch_booking_detail(self, number: str) -> BookingDetailResponse: ...


class BookingSourceClient:
    """
    Async client for the external booking API.

    Example:
        >>> client = BookingSourceClient("https://bookings.example.com/api", api_key="...")
        >>> numbers = await client.fetch_changes(since, until)
        >>> detail = await client.fetch_booking_detail(numbers[0])
    """

    CHANGES_PATH = "/booking/changes"
    DETAIL_PATH = "/booking/{number}"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Base URL of the booking API
            api_key: Bearer credential, omitted from requests when None
            timeout: Per-request timeout in seconds
            transport: Custom transport, used by tests
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.client.request(method, path, **kwargs)

    async def _request_json(
        self, method: str, path: str, booking_number: Optional[str] = None, **kwargs: Any
    ) -> Any:
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise FetchError(
                f"Booking source unreachable ({method} {path}): {e}",
                booking_number=booking_number,
            ) from e

        if response.status_code >= 400:
            logger.error(
                f"Booking source returned error: {response.status_code}",
                extra={"path": path, "booking_number": booking_number, "response": response.text[:500]},
            )
            raise FetchError(
                f"Booking source answered {response.status_code} for {method} {path}",
                booking_number=booking_number,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(
                f"Booking source sent a non-JSON body for {method} {path}",
                booking_number=booking_number,
                status_code=response.status_code,
            ) from e

    async def fetch_changes(self, since: datetime, until: datetime) -> list[str]:
        """
        Fetch the booking numbers changed in ``[since, until)``.

        Returns:
            Booking numbers in the order the source returned them, duplicates included

        Raises:
            FetchError: If the request fails or the payload is malformed
        """
        payload = {"range": {"from": since.isoformat(), "till": until.isoformat()}}
        data = await self._request_json("POST", self.CHANGES_PATH, json=payload)
        try:
            numbers = ChangeListResponse.model_validate(data).numbers
        except PydanticValidationError as e:
            raise FetchError(f"Malformed change-list payload: {e}") from e

        logger.info(
            f"Fetched {len(numbers)} booking changes",
            extra={"since": since.isoformat(), "until": until.isoformat(), "count": len(numbers)},
        )
        return numbers

    async def fetch_booking_detail(self, number: str) -> BookingDetailResponse:
        """
        Fetch the full detail of one booking.

        Raises:
            FetchError: If the request fails or the payload is malformed
        """
        path = self.DETAIL_PATH.format(number=quote(number, safe=""))
        data = await self._request_json("GET", path, booking_number=number)
        try:
            return BookingDetailResponse.model_validate(data)
        except PydanticValidationError as e:
            raise FetchError(
                f"Malformed booking detail payload for {number}: {e}", booking_number=number
            ) from e
