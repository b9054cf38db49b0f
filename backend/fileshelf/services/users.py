from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fileshelf.core.errors import ValidationFailed
from fileshelf.db.base import utcnow
from fileshelf.models.file import FileRecord
from fileshelf.models.token import PasswordResetToken
from fileshelf.models.user import User, UserRole
from fileshelf.services.storage import storage_service
from fileshelf.utils.security import get_password_hash
from fileshelf.utils.sentinels import UNSET

logger = logging.getLogger(__name__)


async def create_user(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
    *,
    role: UserRole = UserRole.USER,
) -> User:
    user = User(
        name=name.strip(),
        email=email.lower(),
        password_hash=get_password_hash(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationFailed("User already exists with this email") from exc
    await db.refresh(user)
    return user


async def ensure_admin_user(
    db: AsyncSession,
    *,
    email: str,
    password_hash: str,
) -> None:
    user = await get_user_by_email(db, email)
    if user is None:
        db.add(
            User(
                name="Administrator",
                email=email.lower(),
                password_hash=password_hash,
                role=UserRole.ADMIN,
                is_active=True,
            )
        )
        await db.commit()
        logger.info("Created admin account %s", email.lower())
    elif not user.is_admin:
        user.role = UserRole.ADMIN
        user.is_active = True
        if password_hash:
            user.password_hash = password_hash
        await db.commit()


async def ensure_demo_user(db: AsyncSession, *, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is not None:
        return user
    return await create_user(db, "Demo User", email, password)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await db.get(User, user_id)


async def list_users(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    role: UserRole | None = None,
) -> tuple[list[User], int]:
    conditions = []
    if search:
        conditions.append(
            or_(User.name.icontains(search, autoescape=True), User.email.icontains(search, autoescape=True))
        )
    if role is not None:
        conditions.append(User.role == role)

    total = await db.scalar(select(func.count(User.id)).where(*conditions))
    stmt = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars()), int(total or 0)


async def record_login(db: AsyncSession, user: User) -> None:
    user.last_login = utcnow()
    await db.commit()


async def update_user(
    db: AsyncSession,
    user: User,
    *,
    name: str | None = None,
    email: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
    storage_limit: int | None = UNSET,
    password: str | None = None,
) -> User:
    if name is not None:
        user.name = name.strip()
    if email is not None and email.lower() != user.email:
        if await get_user_by_email(db, email) is not None:
            raise ValidationFailed("Email already in use")
        user.email = email.lower()
    if role is not None:
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    if storage_limit is not UNSET:
        user.storage_limit = storage_limit
    if password:
        user.password_hash = get_password_hash(password)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationFailed("Email already in use") from exc
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user: User) -> int:
    """Remove a user together with every file they own, on disk and in the catalog.

    Returns the number of file records removed.
    """
    result = await db.execute(select(FileRecord.file_path).where(FileRecord.user_id == user.id))
    paths = [path for (path,) in result.all()]
    for path in paths:
        await storage_service.discard(path)
    await storage_service.remove_owner_dir(user.id)

    await db.execute(delete(FileRecord).where(FileRecord.user_id == user.id))
    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
    await db.delete(user)
    await db.commit()
    logger.info("Deleted user %s and %d files", user.id, len(paths))
    return len(paths)


async def count_users(db: AsyncSession, *, since: datetime | None = None, active: bool | None = None) -> int:
    stmt = select(func.count(User.id))
    if since is not None:
        stmt = stmt.where(User.created_at >= since)
    if active is not None:
        stmt = stmt.where(User.is_active.is_(active))
    return int(await db.scalar(stmt) or 0)


async def count_logged_in_since(db: AsyncSession, since: datetime) -> int:
    return int(await db.scalar(select(func.count(User.id)).where(User.last_login >= since)) or 0)


async def top_users_by_storage(db: AsyncSession, limit: int = 10) -> list[User]:
    result = await db.execute(select(User).order_by(User.storage_used.desc()).limit(limit))
    return list(result.scalars())
