import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.database import get_db
from docvault.dependencies import get_current_user
from docvault.middleware.rate_limit import restore_limiter, save_limiter
from docvault.models import User
from docvault.schemas.version import (
    CleanVersionsResponse,
    CompareResult,
    ConflictDetails,
    ConflictInfo,
    DailyVersionsResult,
    MergeRequest,
    MergeResult,
    MessageResponse,
    RestoreVersionRequest,
    SaveVersionRequest,
    ThinningResult,
    VersionDetail,
    VersionListResponse,
    VersionSummary,
)
from docvault.services import conflicts, documents, retention, version_compare, versions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["versions"])


@router.post("/versions/trigger-daily", response_model=DailyVersionsResult)
async def trigger_daily_versions(user: User = Depends(get_current_user)) -> DailyVersionsResult:
    """Run the daily snapshot job now (operational/testing hatch)."""
    logger.info("Daily snapshot job requested", extra={"user_id": user.id})
    return await retention.trigger_daily_versions_manually()


@router.post("/versions/trigger-cleanup", response_model=ThinningResult)
async def trigger_cleanup(user: User = Depends(get_current_user)) -> ThinningResult:
    logger.info("Version thinning requested", extra={"user_id": user.id})
    return await retention.thin_versions()


@router.post("/{document_id}/versions", response_model=VersionSummary, status_code=201)
@save_limiter
async def save_version(
    request: Request,
    document_id: int,
    data: SaveVersionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> VersionSummary:
    version = await versions.save_version(
        db,
        document_id,
        user.id,
        data.content,
        change_description=data.change_description,
        is_auto_save=data.is_auto_save,
    )
    await db.commit()
    return VersionSummary.model_validate(version)


@router.get("/{document_id}/versions", response_model=VersionListResponse)
async def list_versions(
    document_id: int,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=versions.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> VersionListResponse:
    await documents.get_document(db, document_id)
    result = await versions.get_versions(db, document_id, page=page, page_size=page_size)
    return VersionListResponse(
        versions=[VersionSummary.model_validate(v) for v in result.versions],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=result.has_more,
    )


@router.get("/{document_id}/versions/compare", response_model=CompareResult)
async def compare_versions(
    document_id: int,
    source_version_id: int,
    target_version_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CompareResult:
    return await version_compare.compare_versions(db, document_id, source_version_id, target_version_id)


@router.get("/{document_id}/versions/compare/html", response_class=HTMLResponse)
async def compare_versions_html(
    document_id: int,
    source_version_id: int,
    target_version_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> HTMLResponse:
    result = await version_compare.compare_versions(db, document_id, source_version_id, target_version_id)
    return HTMLResponse(version_compare.generate_compare_html(result))


@router.get("/{document_id}/versions/conflict", response_model=ConflictInfo)
async def detect_conflict(
    document_id: int,
    client_version: int = Query(ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ConflictInfo:
    return await conflicts.detect_conflict(db, document_id, client_version)


@router.get("/{document_id}/versions/conflict/details", response_model=ConflictDetails)
async def get_conflict_details(
    document_id: int,
    client_version: int = Query(ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ConflictDetails:
    details = await conflicts.get_conflict_details(db, document_id, client_version)
    if details is None:
        raise HTTPException(status_code=404, detail="Document has no versions")
    return details


@router.post("/{document_id}/versions/merge", response_model=MergeResult)
async def merge_conflict(
    document_id: int,
    data: MergeRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MergeResult:
    result = await conflicts.auto_merge_conflict(db, document_id, data.content, data.client_version)
    if result.conflict_detected:
        logger.info(
            "Conflict resolved by last write",
            extra={"document_id": document_id, "user_id": user.id, "client_version": data.client_version},
        )
    return result


@router.post("/{document_id}/versions/clean", response_model=CleanVersionsResponse)
async def clean_old_versions(
    document_id: int,
    keep_days: int = Query(default=30, ge=1),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CleanVersionsResponse:
    deleted = await versions.clean_old_versions(db, document_id, keep_days=keep_days)
    await db.commit()
    return CleanVersionsResponse(deleted=deleted)


@router.get("/{document_id}/versions/{version_id}", response_model=VersionDetail)
async def get_version_detail(
    document_id: int,
    version_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> VersionDetail:
    version, content = await versions.get_version_detail(db, document_id, version_id)
    summary = VersionSummary.model_validate(version)
    return VersionDetail(**summary.model_dump(), content=content)


@router.delete("/{document_id}/versions/{version_id}", response_model=MessageResponse)
async def delete_version(
    document_id: int,
    version_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MessageResponse:
    await versions.delete_version(db, document_id, version_id)
    await db.commit()
    return MessageResponse(message="Version deleted")


@router.post("/{document_id}/restore", response_model=VersionSummary)
@restore_limiter
async def restore_version(
    request: Request,
    document_id: int,
    data: RestoreVersionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> VersionSummary:
    version = await versions.restore_version(db, document_id, user.id, data.version_id)
    await db.commit()
    return VersionSummary.model_validate(version)
