"""Unit tests for the booking reconciliation engine."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_api.core.exceptions import FetchError, PersistenceError
from booking_api.models import BookingElement, BookingHeader, SyncAuditRecord, SyncTrigger
from booking_api.services.booking_repository import BookingRepository
from booking_api.services.sync_service import BookingSyncService
from tests.conftest import INITIAL_WATERMARK, element_payload

SINCE = datetime(2024, 1, 1, tzinfo=timezone.utc)
UNTIL = datetime(2024, 1, 2, tzinfo=timezone.utc)


async def count(session_factory, model, *criteria) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return (await session.execute(stmt)).scalar_one()


async def element_types(session_factory, number: str) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(
            select(BookingElement.element_type_code)
            .join(BookingHeader, BookingElement.booking_id == BookingHeader.id)
            .where(BookingHeader.number == number)
            .order_by(BookingElement.element_type_code)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_audit_count_matches_change_list_with_duplicates(sync_service, fake_source, test_session_factory):
    """Every occurrence in the change-list is audited, whatever happened to it."""
    fake_source.add_booking("B1", {"e1": element_payload("ACCO")})
    fake_source.add_booking("B3", {"e1": element_payload("VERVOER")})
    fake_source.failing.add("B2")
    fake_source.changes = ["B1", "B2", "B1", "B3"]

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert result.completed is True
    assert result.total == 4
    assert result.audited == 4
    assert await count(test_session_factory, SyncAuditRecord) == 4
    assert await count(test_session_factory, SyncAuditRecord, SyncAuditRecord.booking_number == "B1") == 2
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B1") == 1


@pytest.mark.asyncio
async def test_fetch_failure_is_isolated(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO")})
    fake_source.add_booking("B3", {"e1": element_payload("ACCO")})
    fake_source.failing.add("B2")
    fake_source.changes = ["B1", "B2", "B3"]

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert fake_source.detail_calls == ["B1", "B2", "B3"]
    assert result.fetch_failures == 1
    assert result.persisted == 2
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B2") == 0
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B3") == 1
    assert await count(test_session_factory, SyncAuditRecord, SyncAuditRecord.booking_number == "B2") == 1


@pytest.mark.asyncio
async def test_persistence_failure_is_rolled_back_and_isolated(
    sync_service, fake_source, test_session_factory, monkeypatch
):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO")})
    fake_source.add_booking("B2", {"e1": element_payload("ACCO")})
    fake_source.changes = ["B1", "B2"]

    original = BookingRepository.upsert_element

    async def failing_upsert(self, element, header_id):
        header = await self.db.get(BookingHeader, header_id)
        if header.number == "B1":
            raise PersistenceError("disk full")
        return await original(self, element, header_id)

    monkeypatch.setattr(BookingRepository, "upsert_element", failing_upsert)

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert result.persist_failures == 1
    assert result.persisted == 1
    # The header written before the failing element is rolled back with it
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B1") == 0
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B2") == 1
    assert await count(test_session_factory, SyncAuditRecord) == 2


@pytest.mark.asyncio
async def test_failed_commit_does_not_abort_batch(sync_service, fake_source, test_session_factory, monkeypatch):
    """A commit that fails at the database is counted for that booking and the run carries on."""
    fake_source.add_booking("B1", {"e1": element_payload("ACCO")})
    fake_source.add_booking("B2", {"e1": element_payload("ACCO")})
    fake_source.changes = ["B1", "B2"]

    original_commit = AsyncSession.commit
    commits = []

    async def flaky_commit(self):
        commits.append(self)
        if len(commits) == 1:
            raise OperationalError("COMMIT", {}, Exception("connection lost"))
        return await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", flaky_commit)

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert fake_source.detail_calls == ["B1", "B2"]
    assert result.completed is True
    assert result.persist_failures == 1
    assert result.persisted == 1
    assert result.audited == 2
    assert await count(test_session_factory, SyncAuditRecord) == 2
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B1") == 0
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B2") == 1


@pytest.mark.asyncio
async def test_scheduled_keeps_all_element_types(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO"), "e2": element_payload("HOTEL")})
    fake_source.changes = ["B1"]

    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert await element_types(test_session_factory, "B1") == ["ACCO", "HOTEL"]


@pytest.mark.asyncio
async def test_seed_keeps_only_allowed_element_types(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO"), "e2": element_payload("HOTEL")})

    result = await sync_service.run_seed(["B1"])

    assert result.persisted == 1
    assert await element_types(test_session_factory, "B1") == ["ACCO"]


@pytest.mark.asyncio
async def test_seed_skips_bookings_without_elements_and_writes_no_audit(
    sync_service, fake_source, test_session_factory
):
    fake_source.add_booking("B1", {"e1": element_payload("ACTIVITEIT")})
    fake_source.add_booking("B2")  # no bookingelements key at all

    result = await sync_service.run_seed(["B1", "B2"])

    assert result.skipped == 1
    assert result.persisted == 1
    assert await count(test_session_factory, BookingHeader, BookingHeader.number == "B2") == 0
    assert await count(test_session_factory, SyncAuditRecord) == 0


@pytest.mark.asyncio
async def test_scheduled_persists_header_with_empty_element_collection(
    sync_service, fake_source, test_session_factory
):
    fake_source.add_booking("B1", {})
    fake_source.changes = ["B1"]

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert result.persisted == 1
    assert await count(test_session_factory, BookingHeader) == 1
    assert await count(test_session_factory, BookingElement) == 0


@pytest.mark.asyncio
async def test_rerun_is_idempotent(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO"), "e2": element_payload("VERVOER")})
    fake_source.changes = ["B1"]

    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)
    async with test_session_factory() as session:
        first = (await session.execute(select(BookingHeader))).scalar_one()
        first_values = (first.id, first.trip_name, first.startdate, first.enddate)

    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert await count(test_session_factory, BookingHeader) == 1
    assert await count(test_session_factory, BookingElement) == 2
    async with test_session_factory() as session:
        second = (await session.execute(select(BookingHeader))).scalar_one()
        assert (second.id, second.trip_name, second.startdate, second.enddate) == first_values


@pytest.mark.asyncio
async def test_update_overwrites_header_fields(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO", amount="100.00")})
    fake_source.changes = ["B1"]
    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    fake_source.add_booking("B1", {"e1": element_payload("ACCO", amount="80.00")}, statusname="Cancelled")
    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    async with test_session_factory() as session:
        header = (await session.execute(select(BookingHeader))).scalar_one()
        element = (await session.execute(select(BookingElement))).scalar_one()
    assert header.status_name == "Cancelled"
    assert float(element.amount) == 80.0


@pytest.mark.asyncio
async def test_elements_reference_existing_headers(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {"e1": element_payload("ACCO"), "e2": element_payload("VERVOER")})
    fake_source.add_booking("B2", {"e1": element_payload("ACTIVITEIT")})
    fake_source.changes = ["B1", "B2"]

    await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    async with test_session_factory() as session:
        header_ids = set((await session.execute(select(BookingHeader.id))).scalars().all())
        booking_ids = set((await session.execute(select(BookingElement.booking_id))).scalars().all())
    assert booking_ids
    assert booking_ids <= header_ids


@pytest.mark.asyncio
async def test_empty_change_list_writes_nothing(sync_service, fake_source, test_session_factory):
    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert result.completed is True
    assert result.total == 0
    assert fake_source.detail_calls == []
    assert await count(test_session_factory, SyncAuditRecord) == 0


@pytest.mark.asyncio
async def test_change_list_failure_ends_run(sync_service, fake_source, test_session_factory):
    fake_source.change_error = FetchError("connection refused")

    result = await sync_service.run_sync(SyncTrigger.SCHEDULED, SINCE, UNTIL)

    assert result.completed is False
    assert fake_source.detail_calls == []
    assert await count(test_session_factory, SyncAuditRecord) == 0


@pytest.mark.asyncio
async def test_scheduled_run_starts_from_initial_watermark_and_advances(sync_service, fake_source):
    before = datetime.now(timezone.utc)

    result = await sync_service.run_scheduled()

    since, until = fake_source.change_calls[0]
    assert since == INITIAL_WATERMARK.replace(tzinfo=timezone.utc)
    assert until >= before
    assert result.completed is True
    assert await sync_service.get_watermark() == until

    await sync_service.run_scheduled()
    assert fake_source.change_calls[1][0] == until


@pytest.mark.asyncio
async def test_watermark_not_advanced_after_failed_change_list(sync_service, fake_source):
    fake_source.change_error = FetchError("timeout")

    result = await sync_service.run_scheduled()

    assert result.completed is False
    assert await sync_service.get_watermark() == INITIAL_WATERMARK.replace(tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_manual_trigger_is_audited_as_manual(sync_service, fake_source, test_session_factory):
    fake_source.add_booking("B1", {})
    fake_source.changes = ["B1"]

    await sync_service.run_scheduled(SyncTrigger.MANUAL)

    async with test_session_factory() as session:
        record = (await session.execute(select(SyncAuditRecord))).scalar_one()
    assert record.trigger_kind == "manual"
    assert record.booking_number == "B1"


class BlockingSource:
    """Change-list call that waits until released."""

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_changes(self, since, until):
        self.entered.set()
        await self.release.wait()
        return []

    async def fetch_booking_detail(self, number):
        raise FetchError("unused", booking_number=number)


@pytest.mark.asyncio
async def test_concurrent_scheduled_run_is_skipped(test_session_factory):
    source = BlockingSource()
    service = BookingSyncService(test_session_factory, source, initial_watermark=INITIAL_WATERMARK)

    first = asyncio.create_task(service.run_scheduled())
    await source.entered.wait()

    assert service.is_running is True
    assert await service.run_scheduled() is None

    source.release.set()
    result = await first
    assert result is not None
    assert service.is_running is False
