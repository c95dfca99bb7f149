"""Persistence gateway for synchronized bookings, audit records and the watermark."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import PersistenceError
from ..models.booking import BookingElement, BookingHeader
from ..models.sync import SyncAuditRecord, SyncState, SyncTrigger
from ..schemas.source import SourceBooking, SourceBookingElement

logger = logging.getLogger(__name__)

HEADER_FIELDS = (
    "source_id", "trip_name", "status_code", "status_name", "company_name",
    "deptor_place", "contact_first_name", "contact_middle_name", "contact_surname",
    "summary", "startdate", "enddate",
)

ELEMENT_FIELDS = (
    "element_name", "element_type_code", "supplier_place", "supplier_country",
    "startdate", "starttime", "enddate", "endtime", "amount", "amount_description",
)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookingRepository:
    """
    Insert-or-update access to booking headers and elements.

    Statements are built with SQLAlchemy expressions only, so every value is
    bound as a parameter. Database failures surface as PersistenceError.
    Transaction boundaries belong to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_header(self, booking: SourceBooking) -> int:
        """
        Insert or update the header keyed by ``booking.number``.

        Returns:
            Internal header ID
        """
        try:
            result = await self.db.execute(
                select(BookingHeader).where(BookingHeader.number == booking.number)
            )
            header = result.scalar_one_or_none()
            if header is None:
                header = BookingHeader(number=booking.number)
                self.db.add(header)
            for field in HEADER_FIELDS:
                setattr(header, field, getattr(booking, field))
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to upsert booking header {booking.number}: {e}", cause=e
            ) from e

        logger.debug(
            "Booking header upserted",
            extra={"booking_number": booking.number, "header_id": header.id},
        )
        return header.id

    async def upsert_element(self, element: SourceBookingElement, header_id: int) -> int:
        """
        Insert or update the element keyed by ``(header_id, source_element_id)``.

        Returns:
            Internal element ID
        """
        try:
            result = await self.db.execute(
                select(BookingElement).where(
                    BookingElement.booking_id == header_id,
                    BookingElement.source_element_id == element.source_element_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = BookingElement(booking_id=header_id, source_element_id=element.source_element_id)
                self.db.add(row)
            for field in ELEMENT_FIELDS:
                setattr(row, field, getattr(element, field))
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to upsert element {element.source_element_id} of booking {header_id}: {e}",
                cause=e,
            ) from e
        return row.id

    async def append_audit_record(
        self,
        booking_number: str,
        trigger: SyncTrigger,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Append one audit row. Rows are never updated or deleted."""
        try:
            self.db.add(SyncAuditRecord(
                booking_number=booking_number,
                trigger_kind=trigger.value,
                synced_at=timestamp or datetime.now(timezone.utc),
            ))
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to append audit record for booking {booking_number}: {e}", cause=e
            ) from e

    async def commit(self) -> None:
        """Commit the caller's unit of work; a failed commit is rolled back."""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.rollback()
            raise PersistenceError(f"Failed to commit transaction: {e}", cause=e) from e

    async def rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error("Rollback failed", extra={"error": str(e)})

    async def get_watermark(self, name: str) -> Optional[datetime]:
        try:
            state = await self.db.get(SyncState, name)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read watermark '{name}': {e}", cause=e) from e
        return as_utc(state.watermark) if state else None

    async def set_watermark(self, name: str, value: datetime) -> None:
        try:
            state = await self.db.get(SyncState, name)
            if state is None:
                self.db.add(SyncState(name=name, watermark=value))
            else:
                state.watermark = value
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store watermark '{name}': {e}", cause=e) from e
