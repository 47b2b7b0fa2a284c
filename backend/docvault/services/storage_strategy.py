"""Decide whether a new version is stored as a full snapshot or a delta."""

import logging
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.config import settings
from docvault.models import DocumentVersion
from docvault.services import content_codec, delta_codec

logger = logging.getLogger(__name__)


@dataclass
class StorageDecision:
    strategy: Literal["full", "delta"]
    reason: str
    base_version_id: int | None = None
    delta_payload: bytes | None = field(default=None, repr=False)


def change_ratio(old: str, new: str) -> float:
    """Rough edit ratio: length difference plus same-index mismatches."""
    max_len = max(len(old), len(new))
    if max_len == 0:
        return 0.0
    changes = abs(len(old) - len(new))
    for a, b in zip(old, new):
        if a != b:
            changes += 1
    return changes / max_len


def compression_ratio(full_size: int, delta_size: int) -> int:
    """Percent of space a delta saves over a full snapshot."""
    if full_size <= 0:
        return 0
    return round((1 - delta_size / full_size) * 100)


async def get_last_full_version(db: AsyncSession, document_id: int) -> DocumentVersion | None:
    result = await db.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document_id, DocumentVersion.is_delta.is_(False))
        .order_by(DocumentVersion.version_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def decide_storage_strategy(db: AsyncSession, document_id: int, content: str) -> StorageDecision:
    last_full = await get_last_full_version(db, document_id)
    if last_full is None:
        return StorageDecision(strategy="full", reason="first version")

    interval = settings.version_full_interval
    since_full = await db.scalar(
        select(func.count(DocumentVersion.id)).where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.version_number >= last_full.version_number,
        )
    )
    if (since_full or 0) >= interval:
        return StorageDecision(strategy="full", reason=f"interval reached ({interval})")

    base_content = content_codec.decompress(last_full.stored_content)
    ratio = change_ratio(base_content, content)
    if ratio > settings.version_delta_threshold:
        return StorageDecision(strategy="full", reason=f"change ratio too high ({round(ratio * 100)}%)")

    delta_payload = delta_codec.serialize(delta_codec.make_patch(base_content, content))
    full_payload = content_codec.compress(content)
    saved = compression_ratio(len(full_payload), len(delta_payload))
    if saved < settings.version_min_delta_saving:
        return StorageDecision(strategy="full", reason=f"delta inefficient ({saved}%)")

    logger.debug(
        "Delta storage selected",
        extra={"document_id": document_id, "base_version_id": last_full.id, "saved": saved},
    )
    return StorageDecision(
        strategy="delta",
        reason=f"delta saves {saved}%",
        base_version_id=last_full.id,
        delta_payload=delta_payload,
    )
