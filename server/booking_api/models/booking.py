"""Booking header and booking element model definitions."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class BookingHeader(Base):
    """Top-level record for one reservation, keyed by the external booking number."""

    __tablename__ = "booking_headers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Natural key shared with the external booking system
    number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    trip_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deptor_place: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    contact_middle_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contact_surname: Mapped[str | None] = mapped_column(String(128), nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    startdate: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    enddate: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    elements: Mapped[list["BookingElement"]] = relationship(
        "BookingElement",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingElement.id",
    )

    def __repr__(self) -> str:
        return (
            f"<BookingHeader(id={self.id}, number='{self.number}', "
            f"startdate={self.startdate}, enddate={self.enddate})>"
        )


class BookingElement(Base):
    """One line item (accommodation, transport, activity) of a booking."""

    __tablename__ = "booking_elements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    booking_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("booking_headers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    source_element_id: Mapped[str] = mapped_column(String(64), nullable=False)

    element_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    element_type_code: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    supplier_place: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    startdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    starttime: Mapped[str | None] = mapped_column(String(16), nullable=True)
    enddate: Mapped[date | None] = mapped_column(Date, nullable=True)
    endtime: Mapped[str | None] = mapped_column(String(16), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    amount_description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("booking_id", "source_element_id", name="uq_booking_element_source"),
    )

    booking: Mapped["BookingHeader"] = relationship("BookingHeader", back_populates="elements")

    def __repr__(self) -> str:
        return (
            f"<BookingElement(id={self.id}, booking_id={self.booking_id}, "
            f"type='{self.element_type_code}', source_element_id='{self.source_element_id}')>"
        )
