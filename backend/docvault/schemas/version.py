from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SaveVersionRequest(BaseModel):
    content: str
    change_description: str | None = Field(default=None, max_length=500)
    is_auto_save: bool = True


class RestoreVersionRequest(BaseModel):
    version_id: int


class MergeRequest(BaseModel):
    content: str
    client_version: int = Field(ge=0)


class VersionSummary(BaseModel):
    id: int
    document_id: int
    version_number: int
    content_size: int
    content_hash: str
    author_id: int
    change_description: str | None = None
    is_auto_save: bool
    is_restore: bool
    is_delta: bool
    base_version_id: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VersionDetail(VersionSummary):
    content: str


class VersionListResponse(BaseModel):
    versions: list[VersionSummary]
    total: int
    page: int
    page_size: int
    has_more: bool


class CleanVersionsResponse(BaseModel):
    deleted: int


class MessageResponse(BaseModel):
    message: str


class VersionRef(BaseModel):
    id: int
    version_number: int
    created_at: datetime

    model_config = {"from_attributes": True}


class DiffItem(BaseModel):
    type: Literal["equal", "insert", "delete"]
    text: str


class DiffStats(BaseModel):
    additions: int = 0
    deletions: int = 0
    unchanged: int = 0


class CompareResult(BaseModel):
    source_version: VersionRef
    target_version: VersionRef
    diffs: list[DiffItem]
    stats: DiffStats


class ConflictInfo(BaseModel):
    has_conflict: bool
    latest_version: VersionSummary | None
    your_version: int
    message: str


class MergeResult(BaseModel):
    # Last-write-wins: the client's content is always kept as-is.
    winner: Literal["client"] = "client"
    conflict_detected: bool
    merged: bool
    content: str
    new_version: int


class ConflictDetails(BaseModel):
    server_version: VersionSummary
    client_version: int
    conflicted_fields: list[str]


class DailyVersionsResult(BaseModel):
    checked_documents: int
    created_versions: int


class ThinningResult(BaseModel):
    deleted: int
    freed_bytes: int
    freed_mb: int
