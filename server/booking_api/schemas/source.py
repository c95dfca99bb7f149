"""Schemas for payloads received from the external booking system.

The remote system is not under our control, so these models accept the field
spellings it is known to use, ignore unknown keys, and normalise empty strings
to ``None``.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _date_part(value: Any) -> Any:
    value = _blank_to_none(value)
    if isinstance(value, str) and len(value) > 10:
        # "2023-11-01T10:00:00" or "2023-11-01 10:00:00"
        return value[:10]
    return value


class SourceBookingElement(BaseModel):
    """One element of ``booking.bookingelements``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source_element_id: str = Field(validation_alias=AliasChoices("source_element_id", "id", "element_id"))
    element_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("element_name", "elementname", "name")
    )
    element_type_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("element_type_code", "elementtype_code")
    )
    supplier_place: Optional[str] = Field(
        None, validation_alias=AliasChoices("supplier_place", "supplierplace")
    )
    supplier_country: Optional[str] = Field(
        None, validation_alias=AliasChoices("supplier_country", "suppliercountry")
    )
    startdate: Optional[date] = None
    starttime: Optional[str] = None
    enddate: Optional[date] = None
    endtime: Optional[str] = None
    amount: Optional[Decimal] = None
    amount_description: Optional[str] = Field(
        None, validation_alias=AliasChoices("amount_description", "amountdescription")
    )

    @field_validator("source_element_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("startdate", "enddate", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _date_part(v)

    @field_validator(
        "element_name", "element_type_code", "supplier_place", "supplier_country",
        "starttime", "endtime", "amount", "amount_description",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class SourceBooking(BaseModel):
    """The ``response.booking`` object of a booking detail payload."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source_id: Optional[str] = Field(None, validation_alias=AliasChoices("source_id", "id"))
    number: str
    trip_name: Optional[str] = Field(None, validation_alias=AliasChoices("trip_name", "tripname"))
    status_code: Optional[str] = Field(None, validation_alias=AliasChoices("status_code", "statuscode"))
    status_name: Optional[str] = Field(None, validation_alias=AliasChoices("status_name", "statusname"))
    company_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("company_name", "companyname")
    )
    deptor_place: Optional[str] = Field(
        None, validation_alias=AliasChoices("deptor_place", "deptorplace", "debtor_place")
    )
    contact_first_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("contact_first_name", "contact_firstname")
    )
    contact_middle_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("contact_middle_name", "contact_middlename")
    )
    contact_surname: Optional[str] = None
    summary: Optional[str] = None
    startdate: Optional[date] = None
    enddate: Optional[date] = None

    # None means the payload carried no element collection at all, which is
    # different from an empty one.
    elements: Optional[list[SourceBookingElement]] = Field(
        None, validation_alias=AliasChoices("elements", "bookingelements")
    )

    @model_validator(mode="before")
    @classmethod
    def flatten_elements(cls, data: Any) -> Any:
        """Accept ``bookingelements`` as a mapping keyed by element id or as a list."""
        if not isinstance(data, dict):
            return data
        raw = data.get("bookingelements", data.get("elements"))
        if isinstance(raw, dict):
            elements = []
            for key, element in raw.items():
                if isinstance(element, dict):
                    elements.append({"id": key, **element})
            data = {**data, "bookingelements": elements}
            data.pop("elements", None)
        elif raw is not None and not isinstance(raw, list):
            # Scalars and other junk count as "no element collection"
            data = {k: v for k, v in data.items() if k not in ("bookingelements", "elements")}
        return data

    @field_validator("number", "source_id", mode="before")
    @classmethod
    def coerce_identifiers(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("startdate", "enddate", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _date_part(v)

    @field_validator(
        "trip_name", "status_code", "status_name", "company_name", "deptor_place",
        "contact_first_name", "contact_middle_name", "contact_surname", "summary",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class BookingChange(BaseModel):
    """One entry of ``response.changes``."""

    model_config = ConfigDict(extra="ignore")

    number: str

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class ChangeListResponse(BaseModel):
    """Envelope of the change-list endpoint and of the seed file."""

    changes: list[BookingChange] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def unwrap(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("response"), dict):
            return data["response"]
        return data

    @property
    def numbers(self) -> list[str]:
        """Booking numbers in payload order, duplicates preserved."""
        return [change.number for change in self.changes]


class BookingDetailResponse(BaseModel):
    """Envelope of the booking detail endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    booking: SourceBooking

    @model_validator(mode="before")
    @classmethod
    def unwrap(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("response"), dict):
            return {"id": data.get("id"), **data["response"]}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @model_validator(mode="after")
    def default_source_id(self) -> "BookingDetailResponse":
        if self.booking.source_id is None and self.id is not None:
            self.booking.source_id = self.id
        return self
