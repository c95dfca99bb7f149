"""Service layer package."""

from .booking_repository import BookingRepository
from .booking_source import BookingSourceClient
from .mailer import Mailer
from .query_service import BookingQueryService
from .sync_service import BookingSyncService
from .user_service import UserService

__all__ = [
    "BookingQueryService",
    "BookingRepository",
    "BookingSourceClient",
    "BookingSyncService",
    "Mailer",
    "UserService",
]
