"""gzip compression and SHA-256 hashing of version content."""

import gzip
import hashlib
import zlib

from docvault.exceptions import CorruptDataError


def compress(text: str) -> bytes:
    # mtime=0 keeps the output byte-identical for equal input
    return gzip.compress(text.encode("utf-8"), mtime=0)


def decompress(data: bytes) -> str:
    try:
        return gzip.decompress(data).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise CorruptDataError(f"Stored content cannot be decompressed: {e}") from e


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_size(text: str) -> int:
    return len(text.encode("utf-8"))
