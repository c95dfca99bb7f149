"""Read-side queries over synchronized bookings."""

import logging
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import PersistenceError
from ..models.booking import BookingElement, BookingHeader
from ..schemas.booking import BookingElement as BookingElementSchema
from ..schemas.booking import BookingHeader as BookingHeaderSchema
from ..schemas.booking import BookingHeaderRecord, NestedBooking

logger = logging.getLogger(__name__)


def group_booking_rows(rows: Iterable[Tuple[Any, Optional[Any]]]) -> List[Tuple[Any, List[Any]]]:
    """
    Fold flat ``(header, element)`` join rows into one entry per header.

    Headers keep the order in which they first appear. A ``None`` element (the
    right side of an unmatched left join) contributes nothing, so a header
    without elements ends up with an empty list.
    """
    grouped: dict = {}
    for header, element in rows:
        _, elements = grouped.setdefault(header.id, (header, []))
        if element is not None:
            elements.append(element)
    return list(grouped.values())


class BookingQueryService:
    """Service for booking read operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_bookings_by_date_range(self, start: date, end: date) -> List[NestedBooking]:
        """
        Get bookings lying entirely inside ``[start, end]`` with their elements.

        Args:
            start: Earliest allowed header start date (inclusive)
            end: Latest allowed header end date (inclusive)

        Raises:
            PersistenceError: If the query fails
        """
        stmt = (
            select(BookingHeader, BookingElement)
            .outerjoin(BookingElement, BookingElement.booking_id == BookingHeader.id)
            .where(BookingHeader.startdate >= start, BookingHeader.enddate <= end)
            .order_by(BookingHeader.startdate, BookingHeader.id, BookingElement.id)
        )
        try:
            result = await self.db.execute(stmt)
            rows = result.tuples().all()
        except SQLAlchemyError as e:
            logger.error(
                "Date range booking query failed",
                extra={"start": start.isoformat(), "end": end.isoformat(), "error": str(e)},
            )
            raise PersistenceError(f"Failed to query bookings by date range: {e}", cause=e) from e

        bookings = [
            NestedBooking(
                **BookingHeaderSchema.model_validate(header).model_dump(),
                booking_elements=[BookingElementSchema.model_validate(el) for el in elements],
            )
            for header, elements in group_booking_rows(rows)
        ]
        logger.debug(
            "Date range booking query",
            extra={"start": start.isoformat(), "end": end.isoformat(), "count": len(bookings)},
        )
        return bookings

    async def get_all_bookings(self) -> List[BookingHeaderRecord]:
        """Get every booking header, without elements."""
        try:
            result = await self.db.execute(select(BookingHeader).order_by(BookingHeader.id))
            headers = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Booking listing failed", extra={"error": str(e)})
            raise PersistenceError(f"Failed to list bookings: {e}", cause=e) from e
        return [BookingHeaderRecord.model_validate(header) for header in headers]
