"""Booking-related Pydantic schemas for the read API."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingElement(BaseModel):
    """Booking element as returned nested inside a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Internal element ID")
    element_name: Optional[str] = None
    element_type_code: Optional[str] = Field(None, description="ACCO, VERVOER, ACTIVITEIT, ...")
    supplier_place: Optional[str] = None
    supplier_country: Optional[str] = None
    startdate: Optional[date] = None
    starttime: Optional[str] = None
    enddate: Optional[date] = None
    endtime: Optional[str] = None
    amount: Optional[Decimal] = Field(None, description="Exact amount, serialized as a decimal string")
    amount_description: Optional[str] = None


class BookingHeader(BaseModel):
    """Booking header row without elements."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Internal booking ID")
    number: str = Field(..., description="External booking number")
    trip_name: Optional[str] = None
    status_code: Optional[str] = None
    status_name: Optional[str] = None
    company_name: Optional[str] = None
    deptor_place: Optional[str] = None
    contact_first_name: Optional[str] = None
    contact_middle_name: Optional[str] = None
    contact_surname: Optional[str] = None
    summary: Optional[str] = None
    startdate: Optional[date] = None
    enddate: Optional[date] = None


class BookingHeaderRecord(BookingHeader):
    """Full header row, including bookkeeping columns, for the unfiltered listing."""

    source_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NestedBooking(BookingHeader):
    """Booking header with its elements."""

    booking_elements: List[BookingElement] = Field(default_factory=list)


class AllBookingsResponse(BaseModel):
    """Response body of the unfiltered booking listing."""

    bookings: List[BookingHeaderRecord]
