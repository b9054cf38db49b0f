from __future__ import annotations

from fastapi import APIRouter, status

from fileshelf.api import deps
from fileshelf.core.config import settings
from fileshelf.core.errors import Unauthorized, ValidationFailed
from fileshelf.models.user import User
from fileshelf.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    PasswordChangeRequest,
    ProfileResponse,
    ResetPasswordRequest,
    TokenResponse,
)
from fileshelf.schemas.common import MessageResponse
from fileshelf.schemas.user import ProfileUpdateRequest, UserCreateRequest, UserResponse
from fileshelf.services import tokens as token_service
from fileshelf.services import users as user_service
from fileshelf.utils.security import create_access_token, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_token(user: User, message: str) -> TokenResponse:
    token, _ = create_access_token(subject=str(user.id), email=user.email, role=user.role.value)
    return TokenResponse(message=message, token=token, user=UserResponse.model_validate(user))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register_user(payload: UserCreateRequest, db: deps.DatabaseSessionDep) -> TokenResponse:
    if await user_service.get_user_by_email(db, payload.email) is not None:
        raise ValidationFailed("User already exists with this email")
    user = await user_service.create_user(db, payload.name, payload.email, payload.password)
    return _issue_token(user, "User registered successfully")


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: deps.DatabaseSessionDep) -> TokenResponse:
    user = await user_service.get_user_by_email(db, payload.email)
    if user is None:
        raise Unauthorized("Invalid credentials")
    if not user.is_active:
        raise Unauthorized("Account is deactivated")
    if not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid credentials")

    await user_service.record_login(db, user)
    return _issue_token(user, "Login successful")


@router.post("/demo", response_model=TokenResponse)
async def demo_login(db: deps.DatabaseSessionDep) -> TokenResponse:
    user = await user_service.ensure_demo_user(db, email=settings.demo_email, password=settings.demo_password)
    return _issue_token(user, "Demo login successful")


@router.get("/me", response_model=ProfileResponse)
async def read_current_user(current_user: deps.CurrentUserDep) -> ProfileResponse:
    return ProfileResponse(user=UserResponse.model_validate(current_user))


@router.put("/update", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> ProfileResponse:
    user = await user_service.update_user(db, current_user, name=payload.name, email=payload.email)
    return ProfileResponse(message="Profile updated successfully", user=UserResponse.model_validate(user))


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: PasswordChangeRequest,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> MessageResponse:
    if not verify_password(payload.current_password, current_user.password_hash):
        raise ValidationFailed("Current password is incorrect")

    await user_service.update_user(db, current_user, password=payload.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=ForgotPasswordResponse)
async def forgot_password(payload: ForgotPasswordRequest, db: deps.DatabaseSessionDep) -> ForgotPasswordResponse:
    raw_token = await token_service.issue_password_reset(db, payload.email)
    return ForgotPasswordResponse(
        message="Password reset token generated",
        reset_token=raw_token if settings.expose_reset_token else None,
    )


@router.put("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(token: str, payload: ResetPasswordRequest, db: deps.DatabaseSessionDep) -> MessageResponse:
    await token_service.reset_password(db, token, payload.password)
    return MessageResponse(message="Password reset successful")
