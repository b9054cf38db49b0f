from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import EmailStr, Field

from fileshelf.models.user import UserRole
from fileshelf.schemas.common import APIModel, PageMeta


class UserCreateRequest(APIModel):
    name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)


class ProfileUpdateRequest(APIModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None


class UserAdminUpdateRequest(APIModel):
    role: UserRole | None = None
    is_active: bool | None = None
    storage_limit: int | None = Field(default=None, ge=0)


class UserResponse(APIModel):
    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    storage_used: int
    file_count: int
    last_login: datetime | None = None
    created_at: datetime


class AdminUserResponse(UserResponse):
    is_active: bool
    storage_limit: int | None = None
    updated_at: datetime


class UserEnvelope(APIModel):
    success: bool = True
    message: str | None = None
    user: AdminUserResponse


class UserListResponse(PageMeta):
    users: list[AdminUserResponse]
