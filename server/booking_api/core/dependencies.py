"""FastAPI dependencies for authentication and application-scoped services."""

from typing import TYPE_CHECKING, Optional

from fastapi import Depends, Header, Request

from .exceptions import AuthenticationError
from .security import TokenError, decode_access_token

if TYPE_CHECKING:
    from ..services.mailer import Mailer
    from ..services.sync_service import BookingSyncService
    from ..workers.manager import WorkerManager


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Resolve the verified caller from a Bearer token.

    Returns:
        dict: ``user_id`` and ``role`` taken from the token claims

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError(detail="Invalid authorization header format")

    try:
        payload = decode_access_token(parts[1])
    except TokenError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from e

    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError) as e:
        raise AuthenticationError(detail="Invalid token payload") from e

    return {"user_id": user_id, "role": payload.get("role", "user")}


def get_mailer(request: Request) -> "Mailer":
    return request.app.state.mailer


def get_sync_service(request: Request) -> "BookingSyncService":
    return request.app.state.sync_service


def get_worker_manager(request: Request) -> Optional["WorkerManager"]:
    return getattr(request.app.state, "worker_manager", None)


RequiredAuth = Depends(get_current_user)
