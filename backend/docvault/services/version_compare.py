import logging

from sqlalchemy.ext.asyncio import AsyncSession

from docvault.schemas.version import CompareResult, DiffItem, DiffStats, VersionRef
from docvault.services import delta_codec, documents
from docvault.services.versions import get_version, resolve_content

logger = logging.getLogger(__name__)

_DIFF_TYPES = {
    delta_codec.DIFF_INSERT: "insert",
    delta_codec.DIFF_DELETE: "delete",
    delta_codec.DIFF_EQUAL: "equal",
}


async def compare_versions(
    db: AsyncSession, document_id: int, source_version_id: int, target_version_id: int
) -> CompareResult:
    """Character diff between two stored versions, with semantic cleanup."""
    await documents.get_document(db, document_id)
    source = await get_version(db, document_id, source_version_id)
    target = await get_version(db, document_id, target_version_id)
    source_content = await resolve_content(db, source)
    target_content = await resolve_content(db, target)

    stats = DiffStats()
    items: list[DiffItem] = []
    for op, text in delta_codec.compute_diffs(source_content, target_content, semantic=True):
        kind = _DIFF_TYPES[op]
        if kind == "insert":
            stats.additions += len(text)
        elif kind == "delete":
            stats.deletions += len(text)
        else:
            stats.unchanged += len(text)
        items.append(DiffItem(type=kind, text=text))

    logger.debug(
        "Versions compared",
        extra={"document_id": document_id, "source": source.version_number, "target": target.version_number},
    )
    return CompareResult(
        source_version=VersionRef.model_validate(source),
        target_version=VersionRef.model_validate(target),
        diffs=items,
        stats=stats,
    )


def _escape_html(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
        .replace("\n", "<br>")
    )


def generate_compare_html(result: CompareResult) -> str:
    """Inline HTML rendering of a comparison, for notification emails."""
    parts = ['<div class="version-compare">']
    for diff in result.diffs:
        escaped = _escape_html(diff.text)
        if diff.type == "insert":
            parts.append(f"<ins>{escaped}</ins>")
        elif diff.type == "delete":
            parts.append(f"<del>{escaped}</del>")
        else:
            parts.append(f"<span>{escaped}</span>")
    parts.append("</div>")
    return "".join(parts)
