"""Background workers for the booking sync API."""

from .base import BaseWorker
from .manager import WorkerManager
from .sync_worker import BookingSyncWorker

__all__ = ["BaseWorker", "BookingSyncWorker", "WorkerManager"]
