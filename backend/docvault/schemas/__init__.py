from docvault.schemas.version import (
    CleanVersionsResponse,
    CompareResult,
    ConflictDetails,
    ConflictInfo,
    DailyVersionsResult,
    DiffItem,
    DiffStats,
    MergeRequest,
    MergeResult,
    MessageResponse,
    RestoreVersionRequest,
    SaveVersionRequest,
    ThinningResult,
    VersionDetail,
    VersionListResponse,
    VersionRef,
    VersionSummary,
)

__all__ = [
    "CleanVersionsResponse",
    "CompareResult",
    "ConflictDetails",
    "ConflictInfo",
    "DailyVersionsResult",
    "DiffItem",
    "DiffStats",
    "MergeRequest",
    "MergeResult",
    "MessageResponse",
    "RestoreVersionRequest",
    "SaveVersionRequest",
    "ThinningResult",
    "VersionDetail",
    "VersionListResponse",
    "VersionRef",
    "VersionSummary",
]
