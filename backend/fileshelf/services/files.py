from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Sequence

from fastapi import UploadFile
from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fileshelf.core.config import settings
from fileshelf.core.errors import (
    FileTypeRejected,
    NotFound,
    QuotaExceeded,
    ServiceError,
    StorageBackendFailure,
    ValidationFailed,
)
from fileshelf.db.base import utcnow
from fileshelf.models.file import FileRecord
from fileshelf.models.user import User
from fileshelf.services import ledger
from fileshelf.services.storage import StoredPayload, storage_service
from fileshelf.utils.sentinels import UNSET

logger = logging.getLogger(__name__)

DEFAULT_SORT = "-uploadedAt"

SORTABLE_FIELDS = {
    "uploadedAt": FileRecord.uploaded_at,
    "updatedAt": FileRecord.updated_at,
    "name": FileRecord.original_name,
    "originalName": FileRecord.original_name,
    "size": FileRecord.file_size,
    "fileSize": FileRecord.file_size,
    "type": FileRecord.file_type,
    "fileType": FileRecord.file_type,
    "downloadCount": FileRecord.download_count,
}


@dataclass(frozen=True)
class PurgeReport:
    deleted_count: int
    freed_bytes: int


def ensure_allowed_type(mime_type: str | None) -> str:
    if not mime_type or mime_type not in settings.allowed_mime_types:
        raise FileTypeRejected(errors=[{"field": "file", "message": f"Type '{mime_type}' is not allowed"}])
    return mime_type


def parse_tags(raw: str | Sequence[str] | None) -> list[str]:
    """Normalise ``"a, b ,c"`` (or a list) to ``["a", "b", "c"]``, keeping order."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    return [item.strip() for item in items if item and item.strip()]


async def _check_quota(db: AsyncSession, owner_id: uuid.UUID, limit: int | None, incoming: int) -> None:
    if limit is None:
        return
    # read the current balance, not the one loaded with the request
    balance = await ledger.read(db, owner_id)
    if balance.storage_used + incoming > limit:
        raise QuotaExceeded()


async def upload_file(
    db: AsyncSession,
    owner: User,
    upload: UploadFile,
    *,
    ip_address: str | None = None,
) -> FileRecord:
    records = await _store_uploads(db, owner, [upload], ip_address=ip_address)
    return records[0]


async def upload_files(
    db: AsyncSession,
    owner: User,
    uploads: Sequence[UploadFile],
    *,
    ip_address: str | None = None,
) -> list[FileRecord]:
    """Store a batch as one unit: either every file is recorded or none is."""
    if len(uploads) > settings.max_batch_files:
        raise ValidationFailed(f"At most {settings.max_batch_files} files can be uploaded at once")
    return await _store_uploads(db, owner, uploads, ip_address=ip_address)


async def _store_uploads(
    db: AsyncSession,
    owner: User,
    uploads: Sequence[UploadFile],
    *,
    ip_address: str | None,
) -> list[FileRecord]:
    if not uploads:
        raise ValidationFailed("No file uploaded")
    mime_types = [ensure_allowed_type(upload.content_type) for upload in uploads]
    # a rollback below expires ``owner``
    owner_id = owner.id
    storage_limit = owner.storage_limit

    written: list[StoredPayload] = []
    records: list[FileRecord] = []
    try:
        for upload in uploads:
            payload = await storage_service.save_upload(
                owner_id,
                upload.file,
                upload.filename or "",
                max_bytes=settings.max_upload_size,
            )
            written.append(payload)
        await _check_quota(db, owner_id, storage_limit, sum(payload.size for payload in written))

        for upload, mime_type, payload in zip(uploads, mime_types, written):
            record = FileRecord(
                user_id=owner_id,
                filename=payload.filename,
                original_name=upload.filename or payload.filename,
                file_type=mime_type,
                file_size=payload.size,
                file_path=str(payload.path),
                ip_address=ip_address,
                tags=[],
            )
            db.add(record)
            records.append(record)
        await db.commit()
    except ServiceError:
        await db.rollback()
        for payload in written:
            await storage_service.discard(payload.path)
        raise
    except Exception as exc:
        await db.rollback()
        for payload in written:
            await storage_service.discard(payload.path)
        logger.exception("Upload for user %s failed after %d payload(s) were written", owner_id, len(written))
        raise StorageBackendFailure("File upload failed") from exc

    total_size = sum(record.file_size for record in records)
    await ledger.adjust(db, owner_id, len(records), total_size)
    logger.info("User %s uploaded %d file(s), %d bytes", owner_id, len(records), total_size)
    return records


def _order_clause(sort: str | None) -> Any:
    sort = sort or DEFAULT_SORT
    descending = sort.startswith("-")
    key = sort.lstrip("-+")
    column = SORTABLE_FIELDS.get(key)
    if column is None:
        raise ValidationFailed(errors=[{"field": "sort", "message": f"Cannot sort by '{key}'"}])
    return column.desc() if descending else column.asc()


def _search_clause(search: str) -> Any:
    return or_(
        FileRecord.original_name.icontains(search, autoescape=True),
        FileRecord.description.icontains(search, autoescape=True),
        FileRecord.tags_text.contains(search.lower(), autoescape=True),
    )


async def list_files(
    db: AsyncSession,
    owner_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    sort: str | None = None,
) -> tuple[list[FileRecord], int]:
    conditions = [FileRecord.user_id == owner_id, FileRecord.deleted.is_(False)]
    if search:
        conditions.append(_search_clause(search))
    order = _order_clause(sort)

    total = await db.scalar(select(func.count(FileRecord.id)).where(*conditions))
    stmt = (
        select(FileRecord)
        .where(*conditions)
        .order_by(order, FileRecord.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars()), int(total or 0)


async def get_file(db: AsyncSession, file_id: uuid.UUID, *, user: User) -> FileRecord:
    """Resolve an active record visible to ``user``; foreign records look absent."""
    stmt = select(FileRecord).where(FileRecord.id == file_id, FileRecord.deleted.is_(False))
    if not user.is_admin:
        stmt = stmt.where(FileRecord.user_id == user.id)
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise NotFound("File not found")
    return record


async def update_file(
    db: AsyncSession,
    record: FileRecord,
    *,
    description: str | None = UNSET,
    tags: str | Sequence[str] | None = UNSET,
    is_public: bool | None = UNSET,
) -> FileRecord:
    if description is not UNSET:
        record.description = description
    if tags is not UNSET:
        record.tags = parse_tags(tags)
    if is_public is not UNSET and is_public is not None:
        record.is_public = is_public
    await db.commit()
    await db.refresh(record)
    return record


async def open_download(db: AsyncSession, file_id: uuid.UUID, *, user: User) -> FileRecord:
    record = await get_file(db, file_id, user=user)
    if not storage_service.exists(record.file_path):
        logger.warning("Payload for file %s missing at %s", record.id, record.file_path)
        raise NotFound("File not found on server")

    await db.execute(
        update(FileRecord)
        .where(FileRecord.id == record.id)
        .values(download_count=FileRecord.download_count + 1)
    )
    await db.commit()
    return record


async def soft_delete_file(db: AsyncSession, record: FileRecord) -> None:
    result = await db.execute(
        update(FileRecord)
        .where(FileRecord.id == record.id, FileRecord.deleted.is_(False))
        .values(deleted=True, deleted_at=utcnow())
    )
    if result.rowcount != 1:
        await db.rollback()
        raise NotFound("File not found")
    await db.commit()

    await ledger.adjust(db, record.user_id, -1, -record.file_size)
    logger.info("File %s of user %s moved to trash", record.id, record.user_id)


async def hard_delete_file(db: AsyncSession, record: FileRecord) -> None:
    """Remove payload and row at once, bypassing the retention window.

    Whether the ledger still counts the file is decided by the row at delete
    time, not by the state ``record`` was loaded with.
    """
    file_id, owner_id, size = record.id, record.user_id, record.file_size
    try:
        await storage_service.remove(record.file_path)
    except OSError as exc:
        raise StorageBackendFailure("Could not delete file from storage") from exc

    active = await db.execute(
        delete(FileRecord)
        .where(FileRecord.id == file_id, FileRecord.deleted.is_(False))
        .execution_options(synchronize_session=False)
    )
    was_active = active.rowcount == 1
    if not was_active:
        trashed = await db.execute(
            delete(FileRecord).where(FileRecord.id == file_id).execution_options(synchronize_session=False)
        )
        if trashed.rowcount != 1:
            await db.rollback()
            raise NotFound("File not found")
    await db.commit()

    if was_active:
        await ledger.adjust(db, owner_id, -1, -size)
    logger.info("File %s of user %s deleted permanently", file_id, owner_id)


async def purge_deleted_files(db: AsyncSession, *, now: datetime | None = None) -> PurgeReport:
    """Permanently remove records soft-deleted at least ``retention_days`` ago.

    Each record is committed on its own, so an interrupted sweep leaves every
    record either untouched or fully purged. Running it again is a no-op.
    """
    cutoff = (now or utcnow()) - timedelta(days=settings.retention_days)
    stmt = (
        select(FileRecord)
        .where(FileRecord.deleted.is_(True), FileRecord.deleted_at <= cutoff)
        .order_by(FileRecord.deleted_at)
    )
    records = list((await db.execute(stmt)).scalars())

    deleted_count = 0
    freed_bytes = 0
    for record in records:
        try:
            await storage_service.remove(record.file_path)
        except OSError:
            logger.error("Could not remove payload %s, keeping record %s", record.file_path, record.id, exc_info=True)
            continue
        await db.delete(record)
        await db.commit()
        deleted_count += 1
        freed_bytes += record.file_size

    logger.info("Retention sweep removed %d file(s), %d bytes", deleted_count, freed_bytes)
    return PurgeReport(deleted_count=deleted_count, freed_bytes=freed_bytes)


async def file_type_breakdown(
    db: AsyncSession,
    *,
    owner_id: uuid.UUID | None = None,
    limit: int | None = None,
) -> list[tuple[str, int, int]]:
    count = func.count(FileRecord.id).label("count")
    stmt = (
        select(FileRecord.file_type, count, func.coalesce(func.sum(FileRecord.file_size), 0))
        .where(FileRecord.deleted.is_(False))
        .group_by(FileRecord.file_type)
        .order_by(desc(count), FileRecord.file_type)
    )
    if owner_id is not None:
        stmt = stmt.where(FileRecord.user_id == owner_id)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return [(file_type, int(total), int(size)) for file_type, total, size in result.all()]


async def recent_files(db: AsyncSession, owner_id: uuid.UUID, limit: int = 5) -> list[FileRecord]:
    stmt = (
        select(FileRecord)
        .where(FileRecord.user_id == owner_id, FileRecord.deleted.is_(False))
        .order_by(FileRecord.uploaded_at.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars())


async def list_all_files(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 50,
    search: str | None = None,
) -> tuple[list[FileRecord], int]:
    conditions: list[Any] = [FileRecord.deleted.is_(False)]
    if search:
        conditions.append(
            or_(
                FileRecord.original_name.icontains(search, autoescape=True),
                User.email.icontains(search, autoescape=True),
                User.name.icontains(search, autoescape=True),
            )
        )
    base = select(FileRecord).join(User, FileRecord.user_id == User.id).where(*conditions)

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    stmt = (
        base.options(selectinload(FileRecord.owner))
        .order_by(FileRecord.uploaded_at.desc(), FileRecord.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars()), int(total or 0)


async def count_files(db: AsyncSession, *, uploaded_since: datetime | None = None) -> int:
    stmt = select(func.count(FileRecord.id))
    if uploaded_since is None:
        stmt = stmt.where(FileRecord.deleted.is_(False))
    else:
        stmt = stmt.where(FileRecord.uploaded_at >= uploaded_since)
    return int(await db.scalar(stmt) or 0)


async def total_storage(db: AsyncSession) -> int:
    stmt = select(func.coalesce(func.sum(FileRecord.file_size), 0)).where(FileRecord.deleted.is_(False))
    return int(await db.scalar(stmt) or 0)
