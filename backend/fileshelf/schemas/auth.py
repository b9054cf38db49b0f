from __future__ import annotations

from pydantic import EmailStr, Field

from fileshelf.schemas.common import APIModel
from fileshelf.schemas.user import UserResponse


class LoginRequest(APIModel):
    email: EmailStr
    password: str = Field(min_length=1)


class TokenResponse(APIModel):
    success: bool = True
    message: str
    token: str
    user: UserResponse


class ProfileResponse(APIModel):
    success: bool = True
    message: str | None = None
    user: UserResponse


class PasswordChangeRequest(APIModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class ForgotPasswordRequest(APIModel):
    email: EmailStr


class ForgotPasswordResponse(APIModel):
    success: bool = True
    message: str
    reset_token: str | None = None


class ResetPasswordRequest(APIModel):
    password: str = Field(min_length=6)
