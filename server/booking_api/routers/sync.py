"""Sync router: manual trigger and status of the booking reconciliation."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..core.dependencies import RequiredAuth, get_sync_service, get_worker_manager
from ..core.exceptions import ConflictError
from ..models.sync import SyncTrigger
from ..schemas.sync import SyncRunResult, SyncStatus
from ..services.sync_service import BookingSyncService
from ..workers.manager import WorkerManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/run", response_model=SyncRunResult)
async def run_sync(
    sync_service: BookingSyncService = Depends(get_sync_service),
    caller: dict = RequiredAuth,
) -> SyncRunResult:
    """
    Run the scheduled sync now, over the window since the stored watermark.

    Answers 409 while another run is in flight.
    """
    logger.info("Manual booking sync requested", extra={"caller_id": caller["user_id"]})
    result = await sync_service.run_scheduled(SyncTrigger.MANUAL)
    if result is None:
        raise ConflictError(detail="A booking sync is already in progress")
    return result


@router.get("/status", response_model=SyncStatus)
async def sync_status(
    sync_service: BookingSyncService = Depends(get_sync_service),
    worker_manager: Optional[WorkerManager] = Depends(get_worker_manager),
    caller: dict = RequiredAuth,
) -> SyncStatus:
    return SyncStatus(
        watermark=await sync_service.get_watermark(),
        running=sync_service.is_running,
        workers=worker_manager.get_worker_status() if worker_manager else {},
    )
