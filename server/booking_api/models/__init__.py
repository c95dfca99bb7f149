"""Models module exporting all database models."""

from .booking import BookingElement, BookingHeader
from .sync import SyncAuditRecord, SyncState, SyncTrigger
from .user import User

__all__ = [
    # Booking entities
    "BookingHeader",
    "BookingElement",

    # Sync bookkeeping
    "SyncAuditRecord",
    "SyncState",
    "SyncTrigger",

    # Users
    "User",
]
