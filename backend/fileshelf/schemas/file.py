from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field

from fileshelf.schemas.common import APIModel, PageMeta


class FileSummary(APIModel):
    id: uuid.UUID
    name: str
    size: int
    type: str
    uploaded_at: datetime
    url: str


class FileDetail(FileSummary):
    filename: str
    formatted_size: str
    download_count: int
    description: str | None = None
    tags: list[str] = []
    is_public: bool = False


class FileListResponse(PageMeta):
    stats: "LedgerStats"
    files: list[FileDetail]


class LedgerStats(APIModel):
    total_files: int
    storage_used: int
    last_login: datetime | None = None


class FileUploadResponse(APIModel):
    success: bool = True
    message: str
    file: FileSummary


class BatchUploadResponse(APIModel):
    success: bool = True
    message: str
    files: list[FileSummary]
    total_size: int


class FileEnvelope(APIModel):
    success: bool = True
    message: str | None = None
    file: FileDetail


class FileUpdateRequest(APIModel):
    description: str | None = Field(default=None, max_length=500)
    tags: str | list[str] | None = None
    is_public: bool | None = None


class FileTypeStat(APIModel):
    type: str
    count: int
    total_size: int


class RecentFile(APIModel):
    name: str
    type: str
    size: str
    uploaded_at: datetime


class UserStats(APIModel):
    total_files: int
    storage_used: int
    formatted_storage_used: str
    last_login: datetime | None = None
    account_created: datetime


class UserStatsResponse(APIModel):
    success: bool = True
    stats: UserStats
    file_types: list[FileTypeStat]
    recent_files: list[RecentFile]


class CleanupResponse(APIModel):
    success: bool = True
    message: str
    deleted_count: int
    freed_space: str
    freed_bytes: int


FileListResponse.model_rebuild()
