"""Unit tests for the booking read queries."""

from datetime import date
from decimal import Decimal

import pytest

from booking_api.schemas.source import SourceBooking, SourceBookingElement
from booking_api.services.booking_repository import BookingRepository
from booking_api.services.query_service import BookingQueryService


async def store(session, number, start, end, element_types=()):
    repository = BookingRepository(session)
    header_id = await repository.upsert_header(
        SourceBooking(number=number, startdate=start, enddate=end, trip_name=f"Trip {number}")
    )
    for index, type_code in enumerate(element_types):
        await repository.upsert_element(
            SourceBookingElement(source_element_id=f"{number}-{index}", element_type_code=type_code),
            header_id,
        )
    await session.commit()


@pytest.mark.asyncio
async def test_date_range_returns_nested_bookings(test_session):
    await store(test_session, "B1", date(2024, 5, 1), date(2024, 5, 5), ["ACCO", "VERVOER"])
    await store(test_session, "B2", date(2024, 5, 2), date(2024, 5, 4))
    await store(test_session, "B3", date(2024, 4, 28), date(2024, 5, 3), ["ACCO"])
    await store(test_session, "B4", date(2024, 5, 20), date(2024, 6, 2), ["ACCO"])

    bookings = await BookingQueryService(test_session).get_bookings_by_date_range(date(2024, 5, 1), date(2024, 5, 31))

    assert [b.number for b in bookings] == ["B1", "B2"]
    assert [e.element_type_code for e in bookings[0].booking_elements] == ["ACCO", "VERVOER"]
    assert bookings[1].booking_elements == []


@pytest.mark.asyncio
async def test_date_range_bounds_are_inclusive(test_session):
    await store(test_session, "B1", date(2024, 5, 1), date(2024, 5, 31), ["ACCO"])

    bookings = await BookingQueryService(test_session).get_bookings_by_date_range(date(2024, 5, 1), date(2024, 5, 31))

    assert len(bookings) == 1


@pytest.mark.asyncio
async def test_element_amount_keeps_exact_decimal(test_session):
    repository = BookingRepository(test_session)
    header_id = await repository.upsert_header(
        SourceBooking(number="B1", startdate=date(2024, 5, 1), enddate=date(2024, 5, 5))
    )
    await repository.upsert_element(
        SourceBookingElement(source_element_id="1", element_type_code="ACCO", amount=Decimal("1234567.89")), header_id
    )
    await test_session.commit()

    bookings = await BookingQueryService(test_session).get_bookings_by_date_range(date(2024, 5, 1), date(2024, 5, 31))

    assert bookings[0].booking_elements[0].amount == Decimal("1234567.89")


@pytest.mark.asyncio
async def test_get_all_bookings_has_no_elements(test_session):
    await store(test_session, "B1", date(2024, 5, 1), date(2024, 5, 5), ["ACCO"])
    await store(test_session, "B2", date(2024, 7, 1), date(2024, 7, 5))

    bookings = await BookingQueryService(test_session).get_all_bookings()

    assert [b.number for b in bookings] == ["B1", "B2"]
    assert not hasattr(bookings[0], "booking_elements")
