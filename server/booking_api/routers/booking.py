"""Booking router: read access to synchronized bookings."""

import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ValidationError
from ..schemas.booking import AllBookingsResponse, NestedBooking
from ..schemas.common import ErrorResponse
from ..services.query_service import BookingQueryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/booking", tags=["booking"])


@router.get(
    "/getBookingsByDateRange",
    response_model=List[NestedBooking],
    responses={500: {"model": ErrorResponse}},
)
async def get_bookings_by_date_range(
    start_date: date = Query(..., alias="startDate", description="Earliest start date (YYYY-MM-DD)"),
    end_date: date = Query(..., alias="endDate", description="Latest end date (YYYY-MM-DD)"),
    db: AsyncSession = Depends(get_db),
) -> List[NestedBooking]:
    """
    List bookings that start and end inside the given range, with their elements.

    Bookings without elements are included with an empty ``booking_elements``.
    """
    if start_date > end_date:
        raise ValidationError(
            detail="startDate must not be after endDate",
            errors={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )

    return await BookingQueryService(db).get_bookings_by_date_range(start_date, end_date)


@router.get(
    "/getAllBookings",
    response_model=AllBookingsResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_all_bookings(db: AsyncSession = Depends(get_db)) -> AllBookingsResponse:
    """List every booking header."""
    bookings = await BookingQueryService(db).get_all_bookings()
    logger.debug("Listed all bookings", extra={"count": len(bookings)})
    return AllBookingsResponse(bookings=bookings)
