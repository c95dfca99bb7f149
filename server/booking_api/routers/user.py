"""User router: registration, login, password reset and user administration."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..core.dependencies import RequiredAuth, get_mailer
from ..schemas.user import (
    ActivationRequest,
    ActivationResponse,
    CallerIdentity,
    ForgetPasswordRequest,
    LoginPayload,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateUserRequest,
    User,
    UsersResponse,
)
from ..services.mailer import Mailer
from ..services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["user"])

TOKEN_COOKIE = "token"


@router.post("/register", response_model=MessageResponse)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    """Create an unverified account and send the activation mail."""
    await UserService(db).register(request, mailer)
    return MessageResponse(msg="Please activate your account")


async def _activate(token: str, db: AsyncSession) -> ActivationResponse:
    access_token = await UserService(db).activate(token)
    return ActivationResponse(token=access_token, msg="Your account has been activated")


@router.post("/activationemail", response_model=ActivationResponse)
async def activate_account(
    request: ActivationRequest,
    db: AsyncSession = Depends(get_db),
) -> ActivationResponse:
    return await _activate(request.activation_token, db)


@router.post("/activationemail/{activation_token}", response_model=ActivationResponse)
async def activate_account_from_link(
    activation_token: str,
    db: AsyncSession = Depends(get_db),
) -> ActivationResponse:
    return await _activate(activation_token, db)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Exchange credentials for a bearer token.

    The token is returned in the body and also set as an HTTP-only cookie.
    """
    user, token = await UserService(db).login(request.email, request.password)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        max_age=settings.access_token_expire_minutes * 60,
        secure=settings.is_production,
        samesite="lax",
    )
    return LoginResponse(payload=LoginPayload(user=CallerIdentity(id=user.id, role=user.role)), token=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    response.delete_cookie(TOKEN_COOKIE)
    return MessageResponse(msg="user logged out")


@router.post("/forget-password", response_model=MessageResponse)
async def forget_password(
    request: ForgetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    await UserService(db).forget_password(request.email, mailer)
    return MessageResponse(msg="email sent successfully")


@router.get("/reset-password/{user_id}/{token}", response_model=str)
async def verify_reset_link(
    user_id: int,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> str:
    """Check that a reset link is still valid before showing the form."""
    await UserService(db).verify_reset(user_id, token)
    return "verified"


@router.post("/reset-password/{user_id}/{token}", response_model=MessageResponse)
async def reset_password(
    user_id: int,
    token: str,
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await UserService(db).reset_password(user_id, token, request.password)
    return MessageResponse(msg="password changed")


@router.get("/allUsers", response_model=UsersResponse)
async def list_users(
    db: AsyncSession = Depends(get_db),
    caller: dict = RequiredAuth,
) -> UsersResponse:
    users = await UserService(db).list_users()
    return UsersResponse(users=[User.model_validate(user) for user in users])


@router.put("/updateUser/{user_id}", response_model=MessageResponse)
async def update_user(
    user_id: int,
    request: UpdateUserRequest,
    db: AsyncSession = Depends(get_db),
    caller: dict = RequiredAuth,
) -> MessageResponse:
    await UserService(db).update_user(user_id, request)
    logger.info("User updated via API", extra={"user_id": user_id, "caller_id": caller["user_id"]})
    return MessageResponse(msg="User updated successfully")


@router.delete("/deleteUser/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    caller: dict = RequiredAuth,
) -> MessageResponse:
    await UserService(db).delete_user(user_id)
    logger.info("User deleted via API", extra={"user_id": user_id, "caller_id": caller["user_id"]})
    return MessageResponse(msg="User deleted successfully")
