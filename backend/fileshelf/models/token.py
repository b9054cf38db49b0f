from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fileshelf.core.config import settings
from fileshelf.db.base import Base, utcnow

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from fileshelf.models.user import User


class TokenType(str, enum.Enum):
    PASSWORD_RESET = "password-reset"
    EMAIL_VERIFICATION = "email-verification"


class PasswordResetToken(Base):
    __tablename__ = "tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    type: Mapped[TokenType] = mapped_column(Enum(TokenType), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="tokens")

    @staticmethod
    def build_expiration(now: datetime | None = None) -> datetime:
        now = now or utcnow()
        return now + timedelta(minutes=settings.reset_token_expire_minutes)
