"""
File sources and validation services.

Single Responsibility: sources only read, the validator only checks.
"""
import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Optional, Tuple, Union

import aiofiles

from ...exceptions import UploadError, UploadErrorKind
from ..protocols import UploadSource


DEFAULT_CHUNK_SIZE = 1024 * 1024


def guess_mime(name: str) -> Optional[str]:
    """Guess a MIME type from a file name."""
    mime, _ = mimetypes.guess_type(name)
    return mime


def format_size(size: int) -> str:
    """Human readable size used in validation messages."""
    value = float(size)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024 or unit == 'GB':
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


class PathUploadSource:
    """
    A file on disk.

    Size and modification time are read once, at construction.
    Uses aiofiles for non-blocking reads.
    """

    def __init__(self, path: Union[str, Path], mime: Optional[str] = None):
        self.path, self.size = FileValidator().validate_path(path)
        self.name = self.path.name
        self.mime = mime or guess_mime(self.name)
        self.last_modified = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)

    async def read(self) -> bytes:
        async with aiofiles.open(self.path, 'rb') as f:
            return await f.read()

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        async with aiofiles.open(self.path, 'rb') as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def __repr__(self) -> str:
        return f"PathUploadSource({str(self.path)!r}, size={self.size})"


class BytesUploadSource:
    """An in-memory file."""

    def __init__(
        self,
        data: bytes,
        name: str,
        mime: Optional[str] = None,
        last_modified: Optional[datetime] = None
    ):
        self.data = bytes(data)
        self.name = name
        self.size = len(self.data)
        self.mime = mime or guess_mime(name)
        self.last_modified = last_modified

    async def read(self) -> bytes:
        return self.data

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        for start in range(0, self.size, chunk_size):
            yield self.data[start:start + chunk_size]

    def __repr__(self) -> str:
        return f"BytesUploadSource({self.name!r}, size={self.size})"


def as_upload_source(item: Any):
    """
    Coerce a caller supplied file into an upload source.

    Accepts an existing source, a path, or a ``(name, bytes)`` pair.

    Raises:
        UploadError: INVALID_FILE if a path does not point at a regular file
        TypeError: For unsupported values
    """
    if isinstance(item, (str, Path)):
        return PathUploadSource(item)
    if isinstance(item, tuple) and len(item) == 2 and isinstance(item[1], (bytes, bytearray)):
        return BytesUploadSource(item[1], item[0])
    if isinstance(item, UploadSource):
        return item
    raise TypeError(f"Unsupported upload source: {type(item).__name__}")


class FileValidator:
    """
    Validates files before upload.

    Every check raises ``UploadError`` with a validation kind and never
    touches the network.
    """

    def validate_path(self, file_path: Union[str, Path]) -> Tuple[Path, int]:
        """
        Validate a path for upload.

        Returns:
            Tuple of (validated Path, file size in bytes)
        """
        path = Path(file_path)

        if not path.exists():
            raise UploadError(UploadErrorKind.INVALID_FILE, f"File not found: {path}")

        if not path.is_file():
            raise UploadError(UploadErrorKind.INVALID_FILE, f"Path is not a file: {path}")

        return path, path.stat().st_size

    def check_not_empty(self, source) -> None:
        if source.size == 0:
            raise UploadError(UploadErrorKind.EMPTY_FILE, f'File "{source.name}" is empty.')

    def check_max_size(self, source, max_size: int) -> None:
        if source.size > max_size:
            raise UploadError(
                UploadErrorKind.FILE_TOO_LARGE,
                f'File "{source.name}" is too large ({format_size(source.size)}). '
                f"Maximum size is {format_size(max_size)}."
            )

    def check_min_size(self, source, min_size: int) -> None:
        if source.size < min_size:
            raise UploadError(
                UploadErrorKind.FILE_TOO_SMALL,
                f"File size {format_size(source.size)} is below the minimum of "
                f"{format_size(min_size)}"
            )

    def check_mime(self, source, allowed: Iterable[str]) -> None:
        allowed = tuple(allowed)
        if not allowed:
            return
        mime = source.mime or 'application/octet-stream'
        if mime not in allowed:
            raise UploadError(
                UploadErrorKind.INVALID_FILE,
                f'File type "{mime}" is not allowed. Allowed types: {", ".join(allowed)}'
            )

    def check_filename(self, source) -> None:
        name = source.name or ''
        if not name or '..' in name or '/' in name or '\\' in name:
            raise UploadError(UploadErrorKind.INVALID_FILE, "Invalid filename")
