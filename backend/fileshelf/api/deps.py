from __future__ import annotations

import uuid
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from fileshelf.core.errors import Forbidden, Unauthorized
from fileshelf.db.session import get_db_session
from fileshelf.models.user import User
from fileshelf.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


DatabaseSessionDep = Annotated[AsyncSession, Depends(get_db_session)]


async def get_current_user(
    db: DatabaseSessionDep,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    if credentials is None:
        raise Unauthorized("Not authorized, no token")
    try:
        payload = decode_access_token(credentials.credentials)
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except (jwt.PyJWTError, ValueError) as exc:
        raise Unauthorized("Not authorized, token failed") from exc

    user = await db.get(User, user_uuid)
    if user is None:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Forbidden("Account is deactivated")
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise Forbidden("Not authorized as an admin")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]
CurrentAdminDep = Annotated[User, Depends(get_current_admin)]
