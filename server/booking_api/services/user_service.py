"""User service: registration, activation, login, password reset and administration."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    ConflictError,
    MailDeliveryError,
    NotFoundError,
    ProblemDetailsException,
    ValidationError,
)
from ..core.security import (
    TokenError,
    create_access_token,
    create_activation_token,
    create_reset_token,
    decode_activation_token,
    hash_password,
    verify_password,
    verify_reset_token,
)
from ..models.user import User
from ..schemas.user import RegisterRequest, UpdateUserRequest
from .mailer import Mailer

logger = logging.getLogger(__name__)


def _mail_failed(detail: str) -> ProblemDetailsException:
    return ProblemDetailsException(
        status_code=500,
        title="Mail Delivery Failed",
        detail=detail,
        type_uri="https://example.com/problems/mail-delivery-failed",
    )


class UserService:
    """Service for user-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def register(self, request: RegisterRequest, mailer: Mailer) -> User:
        """
        Create an unverified user and mail the activation link.

        The row is only committed once the mail was handed to the SMTP server,
        so a failed delivery leaves the address free to register again.

        Raises:
            ValidationError: If the email is already registered
            ProblemDetailsException: 500 if the activation mail cannot be sent
        """
        if await self.get_user_by_email(request.email):
            logger.warning("Registration rejected, email already exists", extra={"user_email_domain": request.email.split("@")[-1]})
            raise ValidationError(detail="User already exists")

        user = User(
            name=request.name,
            email=request.email.lower(),
            password=hash_password(request.password),
            address=request.address,
            phone=request.phone,
            role="user",
            is_verified=False,
        )
        try:
            self.db.add(user)
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError(detail="User already exists") from e

        try:
            await mailer.send_activation(user.email, user.name, create_activation_token(user.id, user.email))
        except MailDeliveryError as e:
            await self.db.rollback()
            raise _mail_failed("Could not send the activation email") from e

        await self.db.commit()
        await self.db.refresh(user)
        logger.info("User registered", extra={"user_id": user.id})
        return user

    async def activate(self, token: str) -> str:
        """
        Mark the token's user as verified.

        Returns:
            Access token for the now verified user

        Raises:
            ValidationError: If the token is invalid, expired or names an unknown user
        """
        try:
            payload = decode_activation_token(token)
            user_id = int(payload["sub"])
        except (TokenError, KeyError, ValueError) as e:
            raise ValidationError(detail="Invalid or expired activation token") from e

        user = await self.get_user_by_id(user_id)
        if user is None or user.email != payload.get("email"):
            raise ValidationError(detail="Invalid or expired activation token")

        if not user.is_verified:
            user.is_verified = True
            await self.db.commit()
            logger.info("User activated", extra={"user_id": user.id})

        return create_access_token(user.id, user.role)

    async def login(self, email: str, password: str) -> Tuple[User, str]:
        """
        Check credentials of a verified user.

        Raises:
            ValidationError: On unknown email, wrong password or unverified account
        """
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password):
            logger.info("Login failed", extra={"reason": "invalid_credentials"})
            raise ValidationError(detail="Invalid credentials")
        if not user.is_verified:
            raise ValidationError(detail="Please activate your account")

        logger.info("User logged in", extra={"user_id": user.id})
        return user, create_access_token(user.id, user.role)

    async def forget_password(self, email: str, mailer: Mailer) -> None:
        user = await self.get_user_by_email(email)
        if user is None:
            raise ValidationError(detail="user not found")

        token = create_reset_token(user.id, user.email, user.password)
        try:
            await mailer.send_password_reset(user.email, user.id, token)
        except MailDeliveryError as e:
            raise _mail_failed("Could not send the password reset email") from e
        logger.info("Password reset requested", extra={"user_id": user.id})

    async def verify_reset(self, user_id: int, token: str) -> User:
        """
        Check a reset token against the user's current password hash.

        Raises:
            ValidationError: If the user is unknown or the token does not verify
        """
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise ValidationError(detail="user not found")
        try:
            verify_reset_token(token, user.id, user.password)
        except TokenError as e:
            raise ValidationError(detail="Invalid or expired reset token") from e
        return user

    async def reset_password(self, user_id: int, token: str, password: str) -> None:
        user = await self.verify_reset(user_id, token)
        await self.db.execute(
            update(User).where(User.id == user.id).values(password=hash_password(password))
        )
        await self.db.commit()
        logger.info("Password changed", extra={"user_id": user.id})

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def update_user(self, user_id: int, request: UpdateUserRequest) -> User:
        """
        Apply the fields present in ``request`` to the user.

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If the new email belongs to another user
        """
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(resource_type="user", resource_id=str(user_id))

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "password" in changes:
            changes["password"] = hash_password(changes["password"])
        if "email" in changes:
            changes["email"] = changes["email"].lower()

        for field, value in changes.items():
            setattr(user, field, value)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(detail="Email is already used by another user") from e

        await self.db.refresh(user)
        logger.info("User updated", extra={"user_id": user.id, "fields": sorted(changes)})
        return user

    async def delete_user(self, user_id: int) -> None:
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(resource_type="user", resource_id=str(user_id))
        await self.db.delete(user)
        await self.db.commit()
        logger.info("User deleted", extra={"user_id": user_id})
