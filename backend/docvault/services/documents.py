"""Contact points with the document store: read a document, overwrite its content."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.exceptions import NotFoundError
from docvault.models import Document

logger = logging.getLogger(__name__)


async def get_document(db: AsyncSession, document_id: int, for_update: bool = False) -> Document:
    q = select(Document).where(Document.id == document_id, Document.is_deleted.is_(False))
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found")
    return document


async def update_document_content(db: AsyncSession, document_id: int, content: str) -> Document:
    document = await get_document(db, document_id)
    document.content = content
    document.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
    await db.flush()
    logger.debug("Document content replaced", extra={"document_id": document_id})
    return document
