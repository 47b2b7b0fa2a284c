"""Scheduled version jobs: daily snapshots, density thinning, horizon purge.

Every run re-derives its work from the ledger; nothing is carried between
runs, so any worker can pick up the next one. A failure on one document is
logged and the run moves on to the next document.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docvault.config import settings
from docvault.database import async_session_maker
from docvault.models import Document, DocumentVersion
from docvault.models.document import ITEM_TYPE_DOCUMENT
from docvault.schemas.version import DailyVersionsResult, ThinningResult
from docvault.services import content_codec, documents, versions
from docvault.services.job_lock import job_lock

logger = logging.getLogger(__name__)

SessionMaker = async_sessionmaker[AsyncSession]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def filter_keep_one_per_day(rows: Iterable[Any]) -> list[Any]:
    """Return rows to delete, keeping the first row seen per document per day.

    Rows must be ordered newest first within each document, so the kept row
    is the latest of its day.
    """
    seen: set[tuple[int, Any]] = set()
    to_delete = []
    for row in rows:
        key = (row.document_id, row.created_at.date())
        if key in seen:
            to_delete.append(row)
        else:
            seen.add(key)
    return to_delete


def filter_keep_one_per_week(rows: Iterable[Any]) -> list[Any]:
    """Like filter_keep_one_per_day, bucketed by ISO year and week."""
    seen: set[tuple[int, int, int]] = set()
    to_delete = []
    for row in rows:
        iso = row.created_at.isocalendar()
        key = (row.document_id, iso[0], iso[1])
        if key in seen:
            to_delete.append(row)
        else:
            seen.add(key)
    return to_delete


async def create_daily_versions(
    session_maker: SessionMaker | None = None, now: datetime | None = None
) -> DailyVersionsResult:
    session_maker = session_maker or async_session_maker
    now = now or _utcnow()
    today = _start_of_day(now)
    yesterday = today - timedelta(days=1)

    async with session_maker() as db:
        result = await db.execute(
            select(Document.id, Document.content, Document.creator_id, Document.updated_at).where(
                Document.item_type == ITEM_TYPE_DOCUMENT,
                Document.is_deleted.is_(False),
                Document.updated_at >= yesterday,
                Document.updated_at < today,
            )
        )
        updated = result.all()
        logger.info("Daily snapshot candidates", extra={"count": len(updated), "day": yesterday.date().isoformat()})

        created = 0
        for document_id, content, creator_id, updated_at in updated:
            try:
                if await _create_daily_version(db, document_id, content, creator_id, updated_at, yesterday, now):
                    created += 1
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Daily snapshot failed", extra={"document_id": document_id})

    logger.info("Daily snapshots done", extra={"checked": len(updated), "created_versions": created})
    return DailyVersionsResult(checked_documents=len(updated), created_versions=created)


async def _create_daily_version(
    db: AsyncSession,
    document_id: int,
    content: str | None,
    creator_id: int,
    updated_at: datetime,
    day_start: datetime,
    now: datetime,
) -> bool:
    # An auto-save taken at or after the last edit already holds this content.
    existing = await db.scalar(
        select(DocumentVersion.id)
        .where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.is_auto_save.is_(True),
            DocumentVersion.created_at >= updated_at,
        )
        .limit(1)
    )
    if existing is not None:
        logger.debug("Daily snapshot already exists", extra={"document_id": document_id})
        return False
    if not content:
        logger.debug("Empty document skipped", extra={"document_id": document_id})
        return False

    versions.validate_content(content)
    await documents.get_document(db, document_id, for_update=True)
    latest = await versions.get_latest_version(db, document_id)
    if latest is not None and latest.content_hash == content_codec.content_hash(content):
        logger.debug("Document unchanged since latest version", extra={"document_id": document_id})
        return False

    version = await versions.create_full_version(
        db, document_id, creator_id, content,
        change_description=f"daily autosave for {day_start.date().isoformat()}",
        is_auto_save=True,
        created_at=now,
    )
    logger.info(
        "Daily snapshot created",
        extra={"document_id": document_id, "version_number": version.version_number},
    )
    return True


async def _delete_per_document(db: AsyncSession, rows: Sequence[Any]) -> tuple[int, int]:
    by_document: dict[int, list[Any]] = defaultdict(list)
    for row in rows:
        by_document[row.document_id].append(row)

    deleted = 0
    freed = 0
    for document_id, doc_rows in by_document.items():
        try:
            removed = set(await versions.delete_version_rows(db, [r.id for r in doc_rows]))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Version cleanup failed", extra={"document_id": document_id})
            continue
        deleted += len(removed)
        # Rows removed by someone else in the meantime free nothing here.
        freed += sum(r.stored_size or 0 for r in doc_rows if r.id in removed)
    return deleted, freed


def _version_rows_query():
    return select(
        DocumentVersion.id,
        DocumentVersion.document_id,
        DocumentVersion.created_at,
        func.length(DocumentVersion.stored_content).label("stored_size"),
    ).where(DocumentVersion.is_auto_save.is_(True))


async def thin_versions(
    session_maker: SessionMaker | None = None, now: datetime | None = None
) -> ThinningResult:
    """Thin auto-save versions: one per day past 30 days, one per ISO week past 90.

    Manual saves and restores are never part of the evaluation. Versions that
    serve as a delta base are never deleted here.
    """
    session_maker = session_maker or async_session_maker
    now = now or _utcnow()
    keep_all_from = now - timedelta(days=settings.version_keep_all_days)
    daily_from = now - timedelta(days=settings.version_daily_window_days)

    async with session_maker() as db:
        base_ids = set(
            (
                await db.execute(
                    select(DocumentVersion.base_version_id)
                    .where(DocumentVersion.base_version_id.is_not(None))
                    .distinct()
                )
            ).scalars().all()
        )

        medium = (
            await db.execute(
                _version_rows_query()
                .where(DocumentVersion.created_at >= daily_from, DocumentVersion.created_at < keep_all_from)
                .order_by(DocumentVersion.document_id.asc(), DocumentVersion.created_at.desc())
            )
        ).all()
        old = (
            await db.execute(
                _version_rows_query()
                .where(DocumentVersion.created_at < daily_from)
                .order_by(DocumentVersion.document_id.asc(), DocumentVersion.created_at.desc())
            )
        ).all()

        candidates = filter_keep_one_per_day(medium) + filter_keep_one_per_week(old)
        to_delete = [row for row in candidates if row.id not in base_ids]
        deleted, freed = await _delete_per_document(db, to_delete)

    logger.info("Version thinning done", extra={"deleted": deleted, "freed_bytes": freed})
    return ThinningResult(deleted=deleted, freed_bytes=freed, freed_mb=round(freed / (1024 * 1024)))


async def purge_expired_versions(
    session_maker: SessionMaker | None = None, now: datetime | None = None
) -> int:
    """Delete auto-save versions older than the retention horizon."""
    session_maker = session_maker or async_session_maker
    now = now or _utcnow()
    horizon = now - timedelta(days=settings.version_retention_days)

    async with session_maker() as db:
        rows = (
            await db.execute(
                _version_rows_query()
                .where(DocumentVersion.created_at < horizon)
                .order_by(DocumentVersion.document_id.asc())
            )
        ).all()
        deleted, _ = await _delete_per_document(db, rows)

    logger.info("Expired versions purged", extra={"deleted": deleted, "horizon": horizon.isoformat()})
    return deleted


async def trigger_daily_versions_manually() -> DailyVersionsResult:
    logger.info("Daily snapshot job triggered manually")
    return await create_daily_versions()


def _seconds_until(hour: int, now: datetime | None = None) -> float:
    now = now or _utcnow()
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _run_locked(name: str, job: Callable[[], Awaitable[Any]]) -> None:
    token = await job_lock.acquire(name, settings.version_job_lock_ttl)
    if token is None:
        logger.info("Job already running elsewhere, skipped", extra={"job": name})
        return
    try:
        result = await job()
        logger.info("Scheduled job finished", extra={"job": name, "result": result})
    finally:
        try:
            await job_lock.release(name, token)
        except Exception:
            logger.exception("Job lock release failed", extra={"job": name})


async def _daily_loop(name: str, hour: int, job: Callable[[], Awaitable[Any]]) -> None:
    while True:
        await asyncio.sleep(_seconds_until(hour))
        try:
            await _run_locked(name, job)
        except Exception:
            logger.exception("Scheduled job failed", extra={"job": name})


def start_retention_tasks() -> list[asyncio.Task]:
    """Start the daily job loops. Call from app lifespan."""
    return [
        asyncio.create_task(
            _daily_loop("daily_snapshot", settings.version_daily_snapshot_hour, create_daily_versions)
        ),
        asyncio.create_task(_daily_loop("thinning", settings.version_thinning_hour, thin_versions)),
        asyncio.create_task(_daily_loop("purge", settings.version_purge_hour, purge_expired_versions)),
    ]
