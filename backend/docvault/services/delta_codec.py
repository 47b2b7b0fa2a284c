"""Text diff and patch built on diff-match-patch.

Two cleanup passes are used: semantic cleanup for diffs shown to people
(fewer, larger spans) and efficiency cleanup for patches that are only
stored and replayed.
"""

import logging
from typing import Any

from diff_match_patch import diff_match_patch

from docvault.exceptions import CorruptDataError, PatchApplyError
from docvault.services import content_codec

logger = logging.getLogger(__name__)

DIFF_DELETE = diff_match_patch.DIFF_DELETE
DIFF_INSERT = diff_match_patch.DIFF_INSERT
DIFF_EQUAL = diff_match_patch.DIFF_EQUAL

PatchSet = list[Any]


def _dmp() -> diff_match_patch:
    dmp = diff_match_patch()
    dmp.Diff_Timeout = 2.0
    # Hunks only apply where the base text matches exactly; no fuzzy placement.
    dmp.Match_Threshold = 0.0
    dmp.Patch_DeleteThreshold = 0.0
    return dmp


def compute_diffs(old: str, new: str, semantic: bool = False) -> list[tuple[int, str]]:
    dmp = _dmp()
    diffs = dmp.diff_main(old, new)
    if semantic:
        dmp.diff_cleanupSemantic(diffs)
    else:
        dmp.diff_cleanupEfficiency(diffs)
    return [(op, text) for op, text in diffs]


def make_patch(old: str, new: str) -> PatchSet:
    dmp = _dmp()
    diffs = dmp.diff_main(old, new)
    dmp.diff_cleanupEfficiency(diffs)
    return dmp.patch_make(old, diffs)


def serialize(patches: PatchSet) -> bytes:
    return content_codec.compress(_dmp().patch_toText(patches))


def deserialize(data: bytes) -> PatchSet:
    patch_text = content_codec.decompress(data)
    try:
        return _dmp().patch_fromText(patch_text)
    except ValueError as e:
        raise CorruptDataError(f"Stored patch cannot be parsed: {e}") from e


def apply(old: str, patches: PatchSet) -> str:
    """Apply every hunk of ``patches`` to ``old``.

    Raises PatchApplyError when any hunk fails; a partially patched text is
    never returned.
    """
    result, applied = _dmp().patch_apply(patches, old)
    failed = [i for i, ok in enumerate(applied) if not ok]
    if failed:
        logger.error("Patch hunks failed to apply", extra={"failed": failed, "hunks": len(applied)})
        raise PatchApplyError(f"{len(failed)} of {len(applied)} patch hunks failed to apply")
    return result
