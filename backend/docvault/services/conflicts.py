"""Lost-update detection for clients saving against a stale version.

Resolution is last-write-wins: the client's content is never altered.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from docvault.exceptions import ValidationError
from docvault.schemas.version import ConflictDetails, ConflictInfo, MergeResult, VersionSummary
from docvault.services.versions import get_latest_version


def _check_client_version(client_version: int) -> None:
    if client_version < 0:
        raise ValidationError("client_version must be >= 0")


async def detect_conflict(db: AsyncSession, document_id: int, client_version: int) -> ConflictInfo:
    _check_client_version(client_version)
    latest = await get_latest_version(db, document_id)
    if latest is None:
        return ConflictInfo(has_conflict=False, latest_version=None, your_version=client_version, message="No conflict")

    summary = VersionSummary.model_validate(latest)
    if latest.version_number > client_version:
        return ConflictInfo(
            has_conflict=True,
            latest_version=summary,
            your_version=client_version,
            message=f"Conflict: server version v{latest.version_number} is newer than client version v{client_version}",
        )
    return ConflictInfo(has_conflict=False, latest_version=summary, your_version=client_version, message="No conflict")


async def auto_merge_conflict(
    db: AsyncSession, document_id: int, client_content: str, client_version: int
) -> MergeResult:
    conflict = await detect_conflict(db, document_id, client_version)
    latest_number = conflict.latest_version.version_number if conflict.latest_version else 0
    return MergeResult(
        conflict_detected=conflict.has_conflict,
        merged=conflict.has_conflict,
        content=client_content,
        new_version=latest_number + 1,
    )


async def get_conflict_details(
    db: AsyncSession, document_id: int, client_version: int
) -> ConflictDetails | None:
    _check_client_version(client_version)
    latest = await get_latest_version(db, document_id)
    if latest is None:
        return None
    return ConflictDetails(
        server_version=VersionSummary.model_validate(latest),
        client_version=client_version,
        conflicted_fields=["content"],
    )
