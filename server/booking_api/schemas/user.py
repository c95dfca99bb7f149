"""User and authentication Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    """Request schema for account registration."""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN, description="Login email")
    password: str = Field(..., min_length=8, max_length=72, description="At least 8 characters")
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)


class ActivationRequest(BaseModel):
    activation_token: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class ForgetPasswordRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=8, max_length=72)


class UpdateUserRequest(BaseModel):
    """Partial update; omitted fields are left untouched."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(None, min_length=8, max_length=72)
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    role: Optional[str] = Field(None, min_length=1, max_length=32)


class User(BaseModel):
    """User response schema. Never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    address: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UsersResponse(BaseModel):
    users: list[User]


class CallerIdentity(BaseModel):
    id: int
    role: str


class LoginPayload(BaseModel):
    user: CallerIdentity


class LoginResponse(BaseModel):
    payload: LoginPayload
    token: str


class ActivationResponse(BaseModel):
    token: str
    msg: str


class MessageResponse(BaseModel):
    msg: str
