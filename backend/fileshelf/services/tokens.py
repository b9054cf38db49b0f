from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fileshelf.core.errors import NotFound, ValidationFailed
from fileshelf.db.base import utcnow
from fileshelf.models.token import PasswordResetToken, TokenType
from fileshelf.models.user import User
from fileshelf.services import users as user_service
from fileshelf.utils.security import generate_reset_token, hash_reset_token

logger = logging.getLogger(__name__)


async def issue_password_reset(db: AsyncSession, email: str) -> str:
    """Store a fresh reset token for ``email`` and return the raw secret."""
    user = await user_service.get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found with this email")

    raw, digest = generate_reset_token()
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=digest,
            type=TokenType.PASSWORD_RESET,
            expires_at=PasswordResetToken.build_expiration(),
        )
    )
    await db.commit()
    logger.info("Issued password reset token for user %s", user.id)
    return raw


async def reset_password(db: AsyncSession, raw_token: str, new_password: str) -> User:
    now = utcnow()
    stmt = select(PasswordResetToken).where(
        PasswordResetToken.token_hash == hash_reset_token(raw_token),
        PasswordResetToken.type == TokenType.PASSWORD_RESET,
        PasswordResetToken.expires_at > now,
        PasswordResetToken.used.is_(False),
    )
    token = (await db.execute(stmt)).scalar_one_or_none()
    if token is None:
        raise ValidationFailed("Invalid or expired token")

    user = await user_service.get_user_by_id(db, token.user_id)
    if user is None:
        raise NotFound("User not found")

    # claim the token before touching the password so it can only be spent once
    claimed = await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.id == token.id, PasswordResetToken.used.is_(False))
        .values(used=True)
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise ValidationFailed("Invalid or expired token")

    return await user_service.update_user(db, user, password=new_password)


async def purge_expired_tokens(db: AsyncSession) -> int:
    stmt = (
        delete(PasswordResetToken)
        .where(PasswordResetToken.expires_at <= utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount or 0
