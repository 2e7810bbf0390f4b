"""
SHA-256 helpers shared by both upload paths.

Both pipelines go through ``sha256_hex`` / ``sha256_stream`` so identical
bytes always produce the same lowercase hex digest, whichever transport
carries them.
"""
import hashlib
import re
from typing import AsyncIterable


SHA256_HEX_RE = re.compile(r'^[0-9a-f]{64}$')


def sha256_hex(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


async def sha256_stream(chunks: AsyncIterable[bytes]) -> str:
    """Digest an async stream of chunks without holding it in memory."""
    hasher = hashlib.sha256()
    async for chunk in chunks:
        hasher.update(chunk)
    return hasher.hexdigest()


def is_sha256_hex(value: str) -> bool:
    """True for a 64 character lowercase hex string."""
    return bool(SHA256_HEX_RE.match(value or ''))
