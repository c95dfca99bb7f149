"""Test configuration and fixtures."""

import os

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SYNC_ENABLED", "false")

from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booking_api.core.database import Base, get_db
from booking_api.core.exceptions import FetchError, MailDeliveryError
from booking_api.core.security import create_access_token
from booking_api.models import *  # noqa: F403 - Import all models
from booking_api.schemas.source import BookingDetailResponse
from booking_api.services.sync_service import BookingSyncService
from booking_api.workers.manager import WorkerManager

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

INITIAL_WATERMARK = datetime(2023, 11, 1, 10, 0, 0)


def element_payload(type_code: str, name: Optional[str] = None, **fields) -> dict:
    """One ``bookingelements`` entry as the booking source sends it."""
    return {
        "elementname": name or f"{type_code.title()} element",
        "elementtype_code": type_code,
        "supplierplace": "Amsterdam",
        "suppliercountry": "Netherlands",
        "startdate": "2024-05-01",
        "starttime": "14:00",
        "enddate": "2024-05-03",
        "endtime": "11:00",
        "amount": "125.50",
        "amountdescription": "per night",
        **fields,
    }


def booking_payload(number: str, elements: Optional[dict] = None, **fields) -> dict:
    """A booking detail response; ``elements`` maps element id to element fields."""
    booking = {
        "number": number,
        "tripname": f"Trip {number}",
        "statuscode": "BEV",
        "statusname": "Confirmed",
        "companyname": "Huski Travel",
        "deptorplace": "Utrecht",
        "contact_firstname": "Anna",
        "contact_middlename": "",
        "contact_surname": "de Vries",
        "summary": "City trip",
        "startdate": "2024-05-01",
        "enddate": "2024-05-03",
        **fields,
    }
    if elements is not None:
        booking["bookingelements"] = elements
    return {"id": f"src-{number}", "response": {"booking": booking}}


class FakeBookingSource:
    """In-memory stand-in for the external booking system."""

    def __init__(self):
        self.changes: list[str] = []
        self.details: dict[str, dict] = {}
        self.failing: set[str] = set()
        self.change_error: Optional[Exception] = None
        self.change_calls: list[tuple[datetime, datetime]] = []
        self.detail_calls: list[str] = []

    def add_booking(self, number: str, elements: Optional[dict] = None, **fields) -> None:
        self.details[number] = booking_payload(number, elements, **fields)

    async def fetch_changes(self, since: datetime, until: datetime) -> list[str]:
        self.change_calls.append((since, until))
        if self.change_error is not None:
            raise self.change_error
        return list(self.changes)

    async def fetch_booking_detail(self, number: str) -> BookingDetailResponse:
        self.detail_calls.append(number)
        if number in self.failing or number not in self.details:
            raise FetchError(f"Booking {number} not available", booking_number=number, status_code=404)
        return BookingDetailResponse.model_validate(self.details[number])


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.activations: list[dict] = []
        self.resets: list[dict] = []
        self.fail = False

    async def send_activation(self, email: str, name: str, token: str) -> None:
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.activations.append({"email": email, "name": name, "token": token})

    async def send_password_reset(self, email: str, user_id: int, token: str) -> None:
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.resets.append({"email": email, "user_id": user_id, "token": token})


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_source():
    return FakeBookingSource()


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def sync_service(test_session_factory, fake_source):
    """Sync engine with the default element policies over the test database."""
    return BookingSyncService(
        test_session_factory,
        fake_source,
        seed_element_types=["ACCO", "VERVOER", "ACTIVITEIT"],
        scheduled_element_types=[],
        initial_watermark=INITIAL_WATERMARK,
    )


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, sync_service, fake_mailer):
    """Create a test FastAPI application without lifespan."""
    from fastapi import FastAPI

    from booking_api.main import include_routers, register_exception_handlers

    app = FastAPI(title="Booking Sync API (Test)", version="1.0.0-test")
    register_exception_handlers(app)
    include_routers(app)

    app.state.sync_service = sync_service
    app.state.mailer = fake_mailer
    app.state.worker_manager = WorkerManager()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer header of a verified caller."""
    return {"Authorization": f"Bearer {create_access_token(1, 'admin')}"}


@pytest.fixture
def sample_user_data():
    return {
        "name": "Anna de Vries",
        "email": "anna@example.com",
        "password": "correct-horse",
        "address": "Oudegracht 1, Utrecht",
        "phone": "+31 30 123 4567",
    }
