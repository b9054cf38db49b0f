from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from fileshelf.db.base import Base, TimestampMixin, utcnow
from fileshelf.utils.formatting import format_bytes

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from fileshelf.models.user import User


class FileLifecycle(str, enum.Enum):
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"


class FileRecord(TimestampMixin, Base):
    __tablename__ = "files"
    __table_args__ = (
        Index("ix_files_user_uploaded", "user_id", "uploaded_at"),
        Index("ix_files_deleted_at", "deleted", "deleted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64))

    description: Mapped[str | None] = mapped_column(String(500))
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    # lower-cased, newline-joined copy of ``tags`` for substring search
    tags_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    owner: Mapped["User"] = relationship("User", back_populates="files")

    @validates("tags")
    def _sync_tags_text(self, _key: str, value: list[str] | None) -> list[str]:
        tags = list(value or [])
        self.tags_text = "\n".join(tag.lower() for tag in tags)
        return tags

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.file_size)

    @property
    def lifecycle(self) -> FileLifecycle:
        return FileLifecycle.SOFT_DELETED if self.deleted else FileLifecycle.ACTIVE

    @property
    def url(self) -> str:
        return f"/api/files/download/{self.id}"
