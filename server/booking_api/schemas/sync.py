"""Schemas describing sync runs."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from ..models.sync import SyncTrigger


class SyncRunResult(BaseModel):
    """Outcome counters of one reconciliation run."""

    trigger: SyncTrigger
    since: Optional[datetime] = Field(None, description="Start of the change window (inclusive)")
    until: Optional[datetime] = Field(None, description="End of the change window (exclusive)")
    completed: bool = Field(False, description="Every booking number in the run was attempted")
    total: int = Field(0, description="Booking numbers in the change-list or seed list")
    persisted: int = 0
    fetch_failures: int = 0
    persist_failures: int = 0
    skipped: int = Field(0, description="Seed bookings without an element collection")
    audited: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None


class SyncStatus(BaseModel):
    """Current state of the synchronization subsystem."""

    watermark: Optional[datetime] = None
    running: bool
    workers: Dict[str, bool] = Field(default_factory=dict)
