"""Upload services module."""
from .file_service import (
    DEFAULT_CHUNK_SIZE,
    BytesUploadSource,
    FileValidator,
    PathUploadSource,
    as_upload_source,
    format_size,
    guess_mime,
)

__all__ = [
    'DEFAULT_CHUNK_SIZE',
    'BytesUploadSource',
    'FileValidator',
    'PathUploadSource',
    'as_upload_source',
    'format_size',
    'guess_mime',
]
