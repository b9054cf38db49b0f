from __future__ import annotations

import uuid
from datetime import datetime, time, timezone

from fastapi import APIRouter, Query

from fileshelf.api import deps
from fileshelf.api.routes.files import file_detail
from fileshelf.core.errors import NotFound, ValidationFailed
from fileshelf.models.file import FileRecord
from fileshelf.models.user import UserRole
from fileshelf.schemas.admin import (
    AdminFile,
    AdminFileListResponse,
    FileTotals,
    LedgerDriftEntry,
    OwnerRef,
    ReconcileResponse,
    RegistryTotals,
    SystemStats,
    SystemStatsResponse,
    TopUser,
    UserTotals,
)
from fileshelf.schemas.common import MessageResponse, page_count
from fileshelf.schemas.file import FileTypeStat
from fileshelf.schemas.user import AdminUserResponse, UserAdminUpdateRequest, UserEnvelope, UserListResponse
from fileshelf.services import files as file_service
from fileshelf.services import ledger
from fileshelf.services import users as user_service
from fileshelf.utils.formatting import format_bytes

router = APIRouter(tags=["admin"])


def _start_of_today() -> datetime:
    return datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def _admin_file(record: FileRecord) -> AdminFile:
    detail = file_detail(record)
    owner = record.owner
    return AdminFile(
        **detail.model_dump(),
        owner=OwnerRef(id=owner.id, name=owner.name, email=owner.email) if owner is not None else None,
        ip_address=record.ip_address,
    )


@router.get("/users", response_model=UserListResponse)
async def list_users(
    db: deps.DatabaseSessionDep,
    _: deps.CurrentAdminDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None),
    role: UserRole | None = Query(default=None),
) -> UserListResponse:
    users, total = await user_service.list_users(db, page=page, limit=limit, search=search, role=role)
    return UserListResponse(
        count=len(users),
        total=total,
        pages=page_count(total, limit),
        current_page=page,
        users=[AdminUserResponse.model_validate(user) for user in users],
    )


@router.get("/files", response_model=AdminFileListResponse)
async def list_all_files(
    db: deps.DatabaseSessionDep,
    _: deps.CurrentAdminDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    search: str | None = Query(default=None),
) -> AdminFileListResponse:
    records, total = await file_service.list_all_files(db, page=page, limit=limit, search=search)
    return AdminFileListResponse(
        count=len(records),
        total=total,
        pages=page_count(total, limit),
        current_page=page,
        stats=RegistryTotals(
            total_files=await file_service.count_files(db),
            total_storage=await file_service.total_storage(db),
        ),
        files=[_admin_file(record) for record in records],
    )


@router.get("/stats", response_model=SystemStatsResponse)
async def system_stats(db: deps.DatabaseSessionDep, _: deps.CurrentAdminDep) -> SystemStatsResponse:
    today = _start_of_today()
    breakdown = await file_service.file_type_breakdown(db, limit=10)
    top_users = await user_service.top_users_by_storage(db, limit=10)
    return SystemStatsResponse(
        stats=SystemStats(
            users=UserTotals(
                total=await user_service.count_users(db),
                active=await user_service.count_users(db, active=True),
                new_today=await user_service.count_users(db, since=today),
                active_today=await user_service.count_logged_in_since(db, today),
            ),
            files=FileTotals(
                total=await file_service.count_files(db),
                uploaded_today=await file_service.count_files(db, uploaded_since=today),
                total_storage=await file_service.total_storage(db),
            ),
            file_types=[FileTypeStat(type=kind, count=count, total_size=size) for kind, count, size in breakdown],
            top_users=[
                TopUser(
                    name=user.name,
                    email=user.email,
                    storage_used=user.storage_used,
                    file_count=user.file_count,
                    formatted_storage=format_bytes(user.storage_used),
                )
                for user in top_users
            ],
        )
    )


@router.put("/users/{user_id}", response_model=UserEnvelope)
async def update_user(
    user_id: uuid.UUID,
    payload: UserAdminUpdateRequest,
    db: deps.DatabaseSessionDep,
    current_admin: deps.CurrentAdminDep,
) -> UserEnvelope:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.id == current_admin.id:
        if payload.is_active is False:
            raise ValidationFailed("Cannot deactivate yourself")
        if payload.role is not None and payload.role != UserRole.ADMIN:
            raise ValidationFailed("Cannot remove your own admin role")

    update_kwargs: dict[str, object] = {}
    if payload.role is not None:
        update_kwargs["role"] = payload.role
    if payload.is_active is not None:
        update_kwargs["is_active"] = payload.is_active
    if "storage_limit" in payload.model_fields_set:
        update_kwargs["storage_limit"] = payload.storage_limit

    updated = await user_service.update_user(db, user, **update_kwargs)
    return UserEnvelope(message="User updated successfully", user=AdminUserResponse.model_validate(updated))


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    current_admin: deps.CurrentAdminDep,
) -> MessageResponse:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.id == current_admin.id:
        raise ValidationFailed("Cannot delete yourself")
    removed = await user_service.delete_user(db, user)
    return MessageResponse(message=f"User and {removed} files deleted successfully")


@router.delete("/files/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: uuid.UUID,
    db: deps.DatabaseSessionDep,
    _: deps.CurrentAdminDep,
) -> MessageResponse:
    record = await db.get(FileRecord, file_id)
    if record is None:
        raise NotFound("File not found")
    await file_service.hard_delete_file(db, record)
    return MessageResponse(message="File deleted successfully")


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_ledgers(db: deps.DatabaseSessionDep, _: deps.CurrentAdminDep) -> ReconcileResponse:
    drifts = await ledger.reconcile(db)
    return ReconcileResponse(
        message=f"Corrected {len(drifts)} ledger(s)",
        drifts=[
            LedgerDriftEntry(
                user_id=drift.user_id,
                recorded_storage_used=drift.recorded.storage_used,
                recorded_file_count=drift.recorded.file_count,
                storage_used=drift.actual.storage_used,
                file_count=drift.actual.file_count,
            )
            for drift in drifts
        ],
    )
