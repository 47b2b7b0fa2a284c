"""Version ledger: save, list, read, restore and delete document versions.

Functions flush but never commit; the router or job that owns the session
decides when the transaction ends. Version numbers are assigned while the
owning document row is locked, so concurrent saves on one document are
serialized until the surrounding transaction commits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.config import settings
from docvault.exceptions import CorruptDataError, NotFoundError, ValidationError
from docvault.models import DocumentVersion
from docvault.services import content_codec, delta_codec, documents
from docvault.services.storage_strategy import decide_storage_strategy

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class VersionPage:
    versions: list[DocumentVersion]
    total: int
    page: int
    page_size: int
    has_more: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_content(content: str) -> None:
    if not isinstance(content, str):
        raise ValidationError("Content must be a string")
    if content_codec.content_size(content) > settings.version_max_content_bytes:
        raise ValidationError(
            f"Content exceeds the {settings.version_max_content_bytes} byte limit"
        )


async def _get_next_version(db: AsyncSession, document_id: int) -> int:
    latest = await get_latest_version_number(db, document_id)
    return latest + 1


async def get_latest_version(db: AsyncSession, document_id: int) -> DocumentVersion | None:
    result = await db.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id)
        .order_by(DocumentVersion.version_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_version_number(db: AsyncSession, document_id: int) -> int:
    latest = await db.scalar(
        select(func.max(DocumentVersion.version_number)).where(DocumentVersion.document_id == document_id)
    )
    return latest or 0


async def get_version(db: AsyncSession, document_id: int, version_id: int) -> DocumentVersion:
    result = await db.execute(
        select(DocumentVersion).where(
            DocumentVersion.id == version_id, DocumentVersion.document_id == document_id
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise NotFoundError("Version not found")
    return version


async def _find_by_hash(db: AsyncSession, document_id: int, digest: str) -> DocumentVersion | None:
    result = await db.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id, DocumentVersion.content_hash == digest)
        .order_by(DocumentVersion.version_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_content(db: AsyncSession, version: DocumentVersion) -> str:
    """Return the full text of a version, applying its patch when it is a delta.

    A delta's base must be a full snapshot; anything deeper is treated as
    corrupt data.
    """
    if not version.is_delta:
        return content_codec.decompress(version.stored_content)

    if version.base_version_id is None:
        raise CorruptDataError(f"Delta version {version.id} has no base version")
    base = await db.get(DocumentVersion, version.base_version_id)
    if base is None:
        raise CorruptDataError(f"Base version {version.base_version_id} of version {version.id} is missing")
    if base.is_delta:
        raise CorruptDataError(f"Base version {base.id} of version {version.id} is itself a delta")

    base_content = content_codec.decompress(base.stored_content)
    patches = delta_codec.deserialize(version.stored_content)
    return delta_codec.apply(base_content, patches)


async def _append_version(
    db: AsyncSession,
    document_id: int,
    author_id: int,
    content: str,
    stored_content: bytes,
    change_description: str | None,
    is_auto_save: bool,
    is_restore: bool = False,
    base_version_id: int | None = None,
    created_at: datetime | None = None,
) -> DocumentVersion:
    version = DocumentVersion(
        document_id=document_id,
        version_number=await _get_next_version(db, document_id),
        stored_content=stored_content,
        content_size=content_codec.content_size(content),
        content_hash=content_codec.content_hash(content),
        author_id=author_id,
        change_description=change_description,
        is_auto_save=is_auto_save,
        is_restore=is_restore,
        is_delta=base_version_id is not None,
        base_version_id=base_version_id,
    )
    if created_at is not None:
        version.created_at = created_at
        version.updated_at = created_at
    db.add(version)
    await db.flush()
    return version


async def create_full_version(
    db: AsyncSession,
    document_id: int,
    author_id: int,
    content: str,
    change_description: str | None = None,
    is_auto_save: bool = True,
    is_restore: bool = False,
    created_at: datetime | None = None,
) -> DocumentVersion:
    """Append a full snapshot. Caller must hold the document row lock."""
    return await _append_version(
        db, document_id, author_id, content,
        stored_content=content_codec.compress(content),
        change_description=change_description,
        is_auto_save=is_auto_save,
        is_restore=is_restore,
        created_at=created_at,
    )


async def save_version(
    db: AsyncSession,
    document_id: int,
    user_id: int,
    content: str,
    change_description: str | None = None,
    is_auto_save: bool = True,
) -> DocumentVersion:
    validate_content(content)
    await documents.get_document(db, document_id, for_update=True)

    digest = content_codec.content_hash(content)
    existing = await _find_by_hash(db, document_id, digest)
    if existing is not None:
        logger.debug(
            "Identical content already versioned",
            extra={"document_id": document_id, "version_number": existing.version_number},
        )
        return existing

    decision = None
    if settings.version_delta_storage:
        decision = await decide_storage_strategy(db, document_id, content)
        logger.debug(
            "Storage strategy decided",
            extra={"document_id": document_id, "strategy": decision.strategy, "reason": decision.reason},
        )

    if decision is not None and decision.strategy == "delta":
        version = await _append_version(
            db, document_id, user_id, content,
            stored_content=decision.delta_payload,
            change_description=change_description,
            is_auto_save=is_auto_save,
            base_version_id=decision.base_version_id,
        )
    else:
        version = await create_full_version(
            db, document_id, user_id, content,
            change_description=change_description,
            is_auto_save=is_auto_save,
        )

    logger.info(
        "Version saved",
        extra={"document_id": document_id, "version_number": version.version_number, "is_delta": version.is_delta},
    )
    return version


async def get_versions(
    db: AsyncSession, document_id: int, page: int = 1, page_size: int = 20
) -> VersionPage:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    total = await db.scalar(
        select(func.count(DocumentVersion.id)).where(DocumentVersion.document_id == document_id)
    ) or 0
    result = await db.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id)
        .order_by(DocumentVersion.version_number.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return VersionPage(
        versions=list(result.scalars().all()),
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


async def get_version_detail(
    db: AsyncSession, document_id: int, version_id: int
) -> tuple[DocumentVersion, str]:
    await documents.get_document(db, document_id)
    version = await get_version(db, document_id, version_id)
    return version, await resolve_content(db, version)


async def restore_version(
    db: AsyncSession, document_id: int, user_id: int, version_id: int
) -> DocumentVersion:
    await documents.get_document(db, document_id, for_update=True)
    target = await get_version(db, document_id, version_id)
    content = await resolve_content(db, target)

    await documents.update_document_content(db, document_id, content)
    version = await create_full_version(
        db, document_id, user_id, content,
        change_description=f"restored from version {target.version_number}",
        is_auto_save=False,
        is_restore=True,
    )
    logger.info(
        "Version restored",
        extra={
            "document_id": document_id,
            "from_version": target.version_number,
            "version_number": version.version_number,
        },
    )
    return version


async def _materialize_dependents(db: AsyncSession, base_ids: list[int]) -> int:
    """Rewrite deltas that depend on soon-deleted bases into full snapshots."""
    result = await db.execute(
        select(DocumentVersion).where(
            DocumentVersion.base_version_id.in_(base_ids),
            DocumentVersion.id.not_in(base_ids),
        )
    )
    dependents = result.scalars().all()
    for dependent in dependents:
        content = await resolve_content(db, dependent)
        dependent.stored_content = content_codec.compress(content)
        dependent.is_delta = False
        dependent.base_version_id = None
    if dependents:
        await db.flush()
        logger.info("Materialized delta versions before base deletion", extra={"count": len(dependents)})
    return len(dependents)


async def delete_version_rows(db: AsyncSession, version_ids: list[int]) -> list[int]:
    """Delete versions by id and return the ids actually removed.

    Ids that are already gone are ignored.
    """
    if not version_ids:
        return []
    await _materialize_dependents(db, version_ids)
    result = await db.execute(
        delete(DocumentVersion)
        .where(DocumentVersion.id.in_(version_ids))
        .returning(DocumentVersion.id)
    )
    return list(result.scalars().all())


async def delete_version_ids(db: AsyncSession, version_ids: list[int]) -> int:
    return len(await delete_version_rows(db, version_ids))


async def clean_old_versions(db: AsyncSession, document_id: int, keep_days: int = 30) -> int:
    if keep_days < 1:
        raise ValidationError("keep_days must be >= 1")
    await documents.get_document(db, document_id)
    cutoff = _utcnow() - timedelta(days=keep_days)
    result = await db.execute(
        select(DocumentVersion.id).where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.is_auto_save.is_(True),
            DocumentVersion.created_at < cutoff,
        )
    )
    deleted = await delete_version_ids(db, list(result.scalars().all()))
    logger.info("Old auto-save versions cleaned", extra={"document_id": document_id, "deleted": deleted})
    return deleted


async def delete_version(db: AsyncSession, document_id: int, version_id: int) -> None:
    await documents.get_document(db, document_id)
    version = await get_version(db, document_id, version_id)
    await delete_version_ids(db, [version.id])
    logger.info("Version deleted", extra={"document_id": document_id, "version_id": version_id})
