"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .metrics import router as metrics_router
from .sync import router as sync_router
from .user import router as user_router

__all__ = [
    "booking_router",
    "health_router",
    "metrics_router",
    "sync_router",
    "user_router",
]
