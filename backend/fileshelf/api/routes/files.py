from __future__ import annotations

import uuid
from urllib.parse import quote

from fastapi import APIRouter, File, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from fileshelf.api import deps
from fileshelf.core.config import settings
from fileshelf.core.errors import PayloadTooLarge
from fileshelf.models.file import FileRecord
from fileshelf.schemas.common import MessageResponse, page_count
from fileshelf.schemas.file import (
    BatchUploadResponse,
    CleanupResponse,
    FileDetail,
    FileEnvelope,
    FileListResponse,
    FileSummary,
    FileTypeStat,
    FileUpdateRequest,
    FileUploadResponse,
    LedgerStats,
    RecentFile,
    UserStats,
    UserStatsResponse,
)
from fileshelf.services import files as file_service
from fileshelf.services import ledger
from fileshelf.utils.formatting import format_bytes

router = APIRouter(prefix="/files", tags=["files"])


def file_summary(record: FileRecord) -> FileSummary:
    return FileSummary(
        id=record.id,
        name=record.original_name,
        size=record.file_size,
        type=record.file_type,
        uploaded_at=record.uploaded_at,
        url=record.url,
    )


def file_detail(record: FileRecord) -> FileDetail:
    return FileDetail(
        id=record.id,
        name=record.original_name,
        filename=record.filename,
        size=record.file_size,
        formatted_size=record.formatted_size,
        type=record.file_type,
        uploaded_at=record.uploaded_at,
        url=record.url,
        download_count=record.download_count,
        description=record.description,
        tags=list(record.tags or []),
        is_public=record.is_public,
    )


def _content_disposition(name: str) -> str:
    ascii_filename = name.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    value = f'attachment; filename="{ascii_filename}"'
    if ascii_filename != name:
        value += f"; filename*=UTF-8''{quote(name)}"
    return value


def _reject_oversized(*uploads: UploadFile) -> None:
    for upload in uploads:
        if upload.size is not None and upload.size > settings.max_upload_size:
            raise PayloadTooLarge()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/upload", response_model=FileUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
    file: UploadFile = File(...),
) -> FileUploadResponse:
    _reject_oversized(file)
    record = await file_service.upload_file(db, current_user, file, ip_address=_client_ip(request))
    return FileUploadResponse(message="File uploaded successfully", file=file_summary(record))


@router.post("/upload-multiple", response_model=BatchUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_multiple_files(
    request: Request,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
    files: list[UploadFile] = File(...),
) -> BatchUploadResponse:
    _reject_oversized(*files)
    records = await file_service.upload_files(db, current_user, files, ip_address=_client_ip(request))
    return BatchUploadResponse(
        message=f"{len(records)} file(s) uploaded successfully",
        files=[file_summary(record) for record in records],
        total_size=sum(record.file_size for record in records),
    )


@router.get("", response_model=FileListResponse)
async def list_files(
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort: str = Query(default=file_service.DEFAULT_SORT),
    search: str | None = Query(default=None),
) -> FileListResponse:
    records, total = await file_service.list_files(
        db,
        current_user.id,
        page=page,
        limit=limit,
        search=search,
        sort=sort,
    )
    balance = await ledger.read(db, current_user.id)
    return FileListResponse(
        count=len(records),
        total=total,
        pages=page_count(total, limit),
        current_page=page,
        stats=LedgerStats(
            total_files=balance.file_count,
            storage_used=balance.storage_used,
            last_login=current_user.last_login,
        ),
        files=[file_detail(record) for record in records],
    )


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(db: deps.DatabaseSessionDep, current_user: deps.CurrentUserDep) -> UserStatsResponse:
    balance = await ledger.read(db, current_user.id)
    breakdown = await file_service.file_type_breakdown(db, owner_id=current_user.id)
    recent = await file_service.recent_files(db, current_user.id)
    return UserStatsResponse(
        stats=UserStats(
            total_files=balance.file_count,
            storage_used=balance.storage_used,
            formatted_storage_used=format_bytes(balance.storage_used),
            last_login=current_user.last_login,
            account_created=current_user.created_at,
        ),
        file_types=[FileTypeStat(type=kind, count=count, total_size=size) for kind, count, size in breakdown],
        recent_files=[
            RecentFile(
                name=record.original_name,
                type=record.file_type,
                size=format_bytes(record.file_size),
                uploaded_at=record.uploaded_at,
            )
            for record in recent
        ],
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_files(db: deps.DatabaseSessionDep, _: deps.CurrentAdminDep) -> CleanupResponse:
    report = await file_service.purge_deleted_files(db)
    return CleanupResponse(
        message=f"Cleaned up {report.deleted_count} old files",
        deleted_count=report.deleted_count,
        freed_space=format_bytes(report.freed_bytes),
        freed_bytes=report.freed_bytes,
    )


@router.get("/download/{file_id}")
async def download_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> FileResponse:
    record = await file_service.open_download(db, file_id, user=current_user)
    return FileResponse(
        path=record.file_path,
        media_type=record.file_type,
        headers={"Content-Disposition": _content_disposition(record.original_name)},
    )


@router.get("/{file_id}", response_model=FileEnvelope)
async def get_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> FileEnvelope:
    record = await file_service.get_file(db, file_id, user=current_user)
    return FileEnvelope(file=file_detail(record))


@router.put("/{file_id}", response_model=FileEnvelope)
async def update_file(
    file_id: uuid.UUID,
    payload: FileUpdateRequest,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> FileEnvelope:
    record = await file_service.get_file(db, file_id, user=current_user)
    changes = {
        field: getattr(payload, field)
        for field in ("description", "tags", "is_public")
        if field in payload.model_fields_set
    }
    updated = await file_service.update_file(db, record, **changes)
    return FileEnvelope(message="File updated successfully", file=file_detail(updated))


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    current_user: deps.CurrentUserDep,
) -> MessageResponse:
    record = await file_service.get_file(db, file_id, user=current_user)
    await file_service.soft_delete_file(db, record)
    return MessageResponse(message="File deleted successfully")
