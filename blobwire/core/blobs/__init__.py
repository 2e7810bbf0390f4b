"""Blob model and digest helpers."""
from .models import MediaBlob, new_blob_id
from .hashing import sha256_hex, sha256_stream, is_sha256_hex

__all__ = [
    'MediaBlob',
    'new_blob_id',
    'sha256_hex',
    'sha256_stream',
    'is_sha256_hex',
]
