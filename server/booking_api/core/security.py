"""Password hashing and JWT helpers for access, activation and reset tokens."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from jwt import PyJWTError
from passlib.context import CryptContext

from .config import settings

ALGORITHM = "HS256"

PURPOSE_ACCESS = "access"
PURPOSE_ACTIVATION = "activation"
PURPOSE_RESET = "reset"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenError(Exception):
    """Raised when a token is malformed, expired, mis-signed or has the wrong purpose."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Stored value is not a recognizable hash
        return False


def _encode(claims: dict[str, Any], secret: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str, purpose: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except PyJWTError as e:
        raise TokenError(str(e)) from e
    if payload.get("purpose") != purpose:
        raise TokenError(f"Token is not a {purpose} token")
    return payload


def create_access_token(user_id: int, role: str, expires_minutes: Optional[int] = None) -> str:
    """Issue the bearer token that identifies a verified caller."""
    return _encode(
        {"sub": str(user_id), "role": role, "purpose": PURPOSE_ACCESS},
        settings.jwt_secret,
        expires_minutes or settings.access_token_expire_minutes,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.jwt_secret, PURPOSE_ACCESS)


def create_activation_token(user_id: int, email: str) -> str:
    return _encode(
        {"sub": str(user_id), "email": email, "purpose": PURPOSE_ACTIVATION},
        settings.jwt_secret,
        settings.activation_token_expire_minutes,
    )


def decode_activation_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.jwt_secret, PURPOSE_ACTIVATION)


def _reset_secret(password_hash: str) -> str:
    # Binding the secret to the current hash invalidates outstanding reset
    # tokens as soon as the password changes.
    return settings.jwt_secret + password_hash


def create_reset_token(user_id: int, email: str, password_hash: str) -> str:
    return _encode(
        {"sub": str(user_id), "email": email, "purpose": PURPOSE_RESET},
        _reset_secret(password_hash),
        settings.reset_token_expire_minutes,
    )


def verify_reset_token(token: str, user_id: int, password_hash: str) -> dict[str, Any]:
    """Decode a reset token for ``user_id``; raises TokenError if it does not belong to them."""
    payload = _decode(token, _reset_secret(password_hash), PURPOSE_RESET)
    if payload.get("sub") != str(user_id):
        raise TokenError("Token was issued for a different user")
    return payload
