"""Sync bookkeeping: the append-only audit trail and the change watermark."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class SyncTrigger(str, Enum):
    """What started a sync run."""
    SCHEDULED = "schedule"
    MANUAL = "manual"
    SEED = "seed"


class SyncAuditRecord(Base):
    """One row per booking number attempted by a scheduled or manual run. Never updated."""

    __tablename__ = "sync_audit_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trigger_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<SyncAuditRecord(booking_number='{self.booking_number}', "
            f"trigger_kind='{self.trigger_kind}', synced_at={self.synced_at})>"
        )


class SyncState(Base):
    """Named cursor marking up to which point in time changes were synchronized."""

    __tablename__ = "sync_state"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    watermark: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<SyncState(name='{self.name}', watermark={self.watermark})>"
