from __future__ import annotations

import uuid

from fileshelf.schemas.common import APIModel, PageMeta
from fileshelf.schemas.file import FileDetail, FileTypeStat


class OwnerRef(APIModel):
    id: uuid.UUID
    name: str
    email: str


class AdminFile(FileDetail):
    owner: OwnerRef | None = None
    ip_address: str | None = None


class RegistryTotals(APIModel):
    total_files: int
    total_storage: int


class AdminFileListResponse(PageMeta):
    stats: RegistryTotals
    files: list[AdminFile]


class UserTotals(APIModel):
    total: int
    active: int
    new_today: int
    active_today: int


class FileTotals(APIModel):
    total: int
    uploaded_today: int
    total_storage: int


class TopUser(APIModel):
    name: str
    email: str
    storage_used: int
    file_count: int
    formatted_storage: str


class SystemStats(APIModel):
    users: UserTotals
    files: FileTotals
    file_types: list[FileTypeStat]
    top_users: list[TopUser]


class SystemStatsResponse(APIModel):
    success: bool = True
    stats: SystemStats


class LedgerDriftEntry(APIModel):
    user_id: uuid.UUID
    recorded_storage_used: int
    recorded_file_count: int
    storage_used: int
    file_count: int


class ReconcileResponse(APIModel):
    success: bool = True
    message: str
    drifts: list[LedgerDriftEntry]
