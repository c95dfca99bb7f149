"""Background worker for the scheduled booking sync."""

import logging

from ..models.sync import SyncTrigger
from ..services.sync_service import BookingSyncService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class BookingSyncWorker(BaseWorker):
    """
    Background worker that pulls booking changes from the external system.

    Each fire syncs everything that changed since the stored watermark. A fire
    that lands while another run is still going is skipped.
    """

    def __init__(
        self,
        sync_service: BookingSyncService,
        cron_expression: str = "0 */6 * * *",
        run_on_start: bool = False,
    ):
        super().__init__(name="BookingSync", cron_expression=cron_expression, run_on_start=run_on_start)
        self.sync_service = sync_service

    async def process(self) -> None:
        result = await self.sync_service.run_scheduled(SyncTrigger.SCHEDULED)
        if result is None:
            logger.info("Scheduled booking sync skipped", extra={"worker": self.name})
            return

        logger.info(
            f"Scheduled booking sync processed {result.total} changes",
            extra={
                "worker": self.name,
                "completed": result.completed,
                "persisted": result.persisted,
                "failures": result.fetch_failures + result.persist_failures,
            },
        )
