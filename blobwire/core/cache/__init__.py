"""Blob summaries, payload cache and previews."""
from .blob_cache import BlobCache, format_file_size
from .handles import (
    HandleFactory,
    MemoryHandleFactory,
    MemoryResourceHandle,
    ResourceHandle,
    TempFileHandleFactory,
    TempFileResourceHandle,
)
from .preview import BlobPreview, PreviewKind, PreviewState, ThumbnailService

__all__ = [
    'BlobCache',
    'format_file_size',
    'HandleFactory',
    'MemoryHandleFactory',
    'MemoryResourceHandle',
    'ResourceHandle',
    'TempFileHandleFactory',
    'TempFileResourceHandle',
    'BlobPreview',
    'PreviewKind',
    'PreviewState',
    'ThumbnailService',
]
