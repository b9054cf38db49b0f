from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fileshelf.db.base import Base, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from fileshelf.models.file import FileRecord
    from fileshelf.models.token import PasswordResetToken


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.USER, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Account ledger, maintained by fileshelf.services.ledger
    storage_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    file_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    storage_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    files: Mapped[list["FileRecord"]] = relationship(back_populates="owner", cascade="all, delete")
    tokens: Mapped[list["PasswordResetToken"]] = relationship(back_populates="user", cascade="all, delete")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


from fileshelf.models.file import FileRecord  # noqa: E402  # circular import guard
from fileshelf.models.token import PasswordResetToken  # noqa: E402
