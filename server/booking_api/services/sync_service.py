"""
Booking reconciliation engine.

A run pulls the list of booking numbers that changed in a time window from the
external booking system, fetches the full detail of each one, and upserts the
header and its elements. Failures are isolated per booking: one unreachable or
unstorable booking is logged and counted, and the run moves on to the next
number.
"""

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.exceptions import FetchError, PersistenceError
from ..core.observability import metrics_collector
from ..models.sync import SyncTrigger
from ..schemas.source import ChangeListResponse, SourceBookingElement
from ..schemas.sync import SyncRunResult
from .booking_repository import BookingRepository, as_utc
from .booking_source import BookingSource

logger = logging.getLogger(__name__)

WATERMARK_NAME = "booking_changes"

# Per-booking outcomes
PERSISTED = "persisted"
FETCH_FAILED = "fetch_failed"
PERSIST_FAILED = "persist_failed"
SKIPPED = "skipped"


def filter_elements(
    elements: Iterable[SourceBookingElement], allowed_types: Sequence[str]
) -> List[SourceBookingElement]:
    """Keep elements whose type code is in ``allowed_types``; an empty policy keeps all."""
    if not allowed_types:
        return list(elements)
    allowed = {code.upper() for code in allowed_types}
    return [
        element for element in elements
        if element.element_type_code is not None and element.element_type_code.upper() in allowed
    ]


def load_seed_numbers(path: str | Path) -> List[str]:
    """Read booking numbers from a change-list shaped JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return ChangeListResponse.model_validate(data).numbers


class BookingSyncService:
    """
    Pull-then-persist synchronization against the external booking source.

    One lock serializes every run. ``run_sync`` and ``run_seed`` wait for it;
    ``run_scheduled`` gives up immediately when a run is already in flight.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: BookingSource,
        seed_element_types: Sequence[str] = (),
        scheduled_element_types: Sequence[str] = (),
        initial_watermark: Optional[datetime] = None,
    ):
        self.session_factory = session_factory
        self.source = source
        self.seed_element_types = list(seed_element_types)
        self.scheduled_element_types = list(scheduled_element_types)
        self.initial_watermark = as_utc(initial_watermark or datetime(2023, 11, 1, 10, 0, 0))
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def element_policy(self, trigger: SyncTrigger) -> List[str]:
        if trigger == SyncTrigger.SEED:
            return self.seed_element_types
        return self.scheduled_element_types

    async def get_watermark(self) -> datetime:
        """Stored watermark, or the configured initial one before the first completed run."""
        async with self.session_factory() as session:
            stored = await BookingRepository(session).get_watermark(WATERMARK_NAME)
        return stored or self.initial_watermark

    async def run_scheduled(self, trigger: SyncTrigger = SyncTrigger.SCHEDULED) -> Optional[SyncRunResult]:
        """
        Sync everything that changed since the watermark.

        The watermark moves to the end of the window only when the run
        completed, so a failed change-list fetch is retried over the same
        window next time.

        Returns:
            The run result, or None when another run was in flight
        """
        if self._lock.locked():
            logger.warning(
                "Booking sync skipped, a run is already in progress",
                extra={"trigger": trigger.value},
            )
            return None

        async with self._lock:
            since = await self.get_watermark()
            until = datetime.now(timezone.utc)
            result = await self._sync_window(trigger, since, until)
            if result.completed:
                await self._advance_watermark(until)
            return result

    async def run_sync(self, trigger: SyncTrigger, since: datetime, until: datetime) -> SyncRunResult:
        """Sync the bookings that changed in ``[since, until)``. Does not touch the watermark."""
        async with self._lock:
            return await self._sync_window(trigger, since, until)

    async def run_seed(self, numbers: Sequence[str]) -> SyncRunResult:
        """
        Ingest a fixed list of booking numbers.

        Uses the seed element policy, skips bookings whose detail carries no
        element collection, and writes no audit records.
        """
        async with self._lock:
            started = time.perf_counter()
            result = SyncRunResult(
                trigger=SyncTrigger.SEED,
                total=len(numbers),
                started_at=datetime.now(timezone.utc),
            )
            logger.info("Seed ingestion started", extra={"count": len(numbers)})

            async with self.session_factory() as session:
                repository = BookingRepository(session)
                for number in numbers:
                    outcome = await self._sync_booking(
                        repository, number, SyncTrigger.SEED, skip_without_elements=True
                    )
                    self._count(result, outcome)

            result.completed = True
            return self._finish(result, started)

    async def _sync_window(self, trigger: SyncTrigger, since: datetime, until: datetime) -> SyncRunResult:
        started = time.perf_counter()
        result = SyncRunResult(
            trigger=trigger,
            since=since,
            until=until,
            started_at=datetime.now(timezone.utc),
        )

        try:
            numbers = await self.source.fetch_changes(since, until)
        except FetchError as e:
            logger.error(
                "Failed to fetch booking change-list",
                extra={"trigger": trigger.value, "since": since.isoformat(), "until": until.isoformat(), "error": str(e)},
            )
            metrics_collector.record_booking_failure(trigger.value, "changes")
            return self._finish(result, started)

        result.total = len(numbers)
        logger.info(
            "Booking sync started",
            extra={"trigger": trigger.value, "since": since.isoformat(), "until": until.isoformat(), "count": len(numbers)},
        )

        async with self.session_factory() as session:
            repository = BookingRepository(session)
            # Duplicates are processed, and audited, once per occurrence
            for number in numbers:
                outcome = await self._sync_booking(repository, number, trigger)
                self._count(result, outcome)
                if await self._audit(repository, number, trigger):
                    result.audited += 1

        result.completed = True
        return self._finish(result, started)

    async def _sync_booking(
        self,
        repository: BookingRepository,
        number: str,
        trigger: SyncTrigger,
        skip_without_elements: bool = False,
    ) -> str:
        try:
            detail = await self.source.fetch_booking_detail(number)
        except FetchError as e:
            logger.error(
                "Failed to fetch booking detail",
                extra={"booking_number": number, "trigger": trigger.value, "status_code": e.status_code, "error": str(e)},
            )
            metrics_collector.record_booking_failure(trigger.value, "fetch")
            return FETCH_FAILED

        booking = detail.booking
        if booking.elements is None and skip_without_elements:
            logger.info("Booking has no element collection, skipped", extra={"booking_number": number})
            return SKIPPED

        elements = filter_elements(booking.elements or [], self.element_policy(trigger))
        try:
            header_id = await repository.upsert_header(booking)
            for element in elements:
                await repository.upsert_element(element, header_id)
            await repository.commit()
        except PersistenceError as e:
            await repository.rollback()
            logger.error(
                "Failed to persist booking",
                extra={"booking_number": number, "trigger": trigger.value, "error": str(e)},
            )
            metrics_collector.record_booking_failure(trigger.value, "persist")
            return PERSIST_FAILED

        logger.info(
            "Booking synchronized",
            extra={"booking_number": number, "header_id": header_id, "elements": len(elements), "trigger": trigger.value},
        )
        metrics_collector.record_booking_persisted(trigger.value)
        return PERSISTED

    async def _audit(
        self, repository: BookingRepository, number: str, trigger: SyncTrigger
    ) -> bool:
        try:
            await repository.append_audit_record(number, trigger)
            await repository.commit()
        except PersistenceError as e:
            await repository.rollback()
            logger.error(
                "Failed to append sync audit record",
                extra={"booking_number": number, "trigger": trigger.value, "error": str(e)},
            )
            return False
        return True

    async def _advance_watermark(self, until: datetime) -> None:
        async with self.session_factory() as session:
            repository = BookingRepository(session)
            try:
                await repository.set_watermark(WATERMARK_NAME, until)
                await repository.commit()
            except PersistenceError as e:
                await repository.rollback()
                logger.error("Failed to advance sync watermark", extra={"watermark": until.isoformat(), "error": str(e)})
                return
        metrics_collector.set_watermark(until.timestamp())
        logger.info("Sync watermark advanced", extra={"watermark": until.isoformat()})

    @staticmethod
    def _count(result: SyncRunResult, outcome: str) -> None:
        if outcome == PERSISTED:
            result.persisted += 1
        elif outcome == FETCH_FAILED:
            result.fetch_failures += 1
        elif outcome == PERSIST_FAILED:
            result.persist_failures += 1
        elif outcome == SKIPPED:
            result.skipped += 1

    @staticmethod
    def _finish(result: SyncRunResult, started: float) -> SyncRunResult:
        duration = time.perf_counter() - started
        result.finished_at = datetime.now(timezone.utc)
        outcome = "completed" if result.completed else "aborted"
        metrics_collector.record_sync_run(result.trigger.value, outcome, duration)
        logger.info(
            "Booking sync finished",
            extra={
                "trigger": result.trigger.value,
                "outcome": outcome,
                "total": result.total,
                "persisted": result.persisted,
                "fetch_failures": result.fetch_failures,
                "persist_failures": result.persist_failures,
                "skipped": result.skipped,
                "duration_seconds": duration,
            },
        )
        return result
