"""
Releasable resource handles for cached payloads.

A handle owns one fetched payload and exposes a URI to it. Handles must be
released explicitly; the cache releases every handle it created on clear
and on teardown.
"""
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Protocol, Union


class ResourceHandle(ABC):
    """A cache-owned display resource."""

    def __init__(self, blob_id: str, mime: Optional[str], size: int):
        self.blob_id = blob_id
        self.mime = mime or 'application/octet-stream'
        self.size = size
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    @abstractmethod
    def uri(self) -> str:
        ...

    @abstractmethod
    def read(self) -> bytes:
        """Return the payload; raises RuntimeError once released."""

    def release(self) -> None:
        """Free the resource. Releasing twice is a no-op."""
        if self._released:
            return
        self._released = True
        self._free()

    def _free(self) -> None:
        pass

    def _check(self) -> None:
        if self._released:
            raise RuntimeError(f"Handle for blob {self.blob_id} has been released")

    def __repr__(self) -> str:
        state = 'released' if self._released else self.uri
        return f"{type(self).__name__}({self.blob_id}, {state})"


class MemoryResourceHandle(ResourceHandle):
    """Payload held in memory under a ``blob:`` URI."""

    def __init__(self, blob_id: str, data: bytes, mime: Optional[str] = None):
        super().__init__(blob_id, mime, len(data))
        self._data: Optional[bytes] = data
        self._uri = f"blob:blobwire/{uuid.uuid4()}"

    @property
    def uri(self) -> str:
        return self._uri

    def read(self) -> bytes:
        self._check()
        return self._data

    def _free(self) -> None:
        self._data = None


class TempFileResourceHandle(ResourceHandle):
    """Payload written to a temporary file; release deletes the file."""

    def __init__(self, blob_id: str, path: Path, mime: Optional[str], size: int):
        super().__init__(blob_id, mime, size)
        self.path = path

    @property
    def uri(self) -> str:
        return self.path.as_uri()

    def read(self) -> bytes:
        self._check()
        return self.path.read_bytes()

    def _free(self) -> None:
        self.path.unlink(missing_ok=True)


class HandleFactory(Protocol):
    """Creates handles for fetched payloads."""

    def create(self, blob_id: str, data: bytes, mime: Optional[str]) -> ResourceHandle:
        ...

    def close(self) -> None:
        ...


class MemoryHandleFactory:
    """Default factory: keeps payloads in memory."""

    def create(self, blob_id: str, data: bytes, mime: Optional[str]) -> ResourceHandle:
        return MemoryResourceHandle(blob_id, data, mime)

    def close(self) -> None:
        pass


class TempFileHandleFactory:
    """
    Writes payloads to files in a private temporary directory.

    The directory is created on first use and removed by ``close()``.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self._base = Path(directory) if directory is not None else None
        self._directory: Optional[Path] = None

    @property
    def directory(self) -> Optional[Path]:
        return self._directory

    def create(self, blob_id: str, data: bytes, mime: Optional[str]) -> ResourceHandle:
        if self._directory is None:
            if self._base is not None:
                self._base.mkdir(parents=True, exist_ok=True)
            self._directory = Path(tempfile.mkdtemp(prefix='blobwire-', dir=self._base))
        path = self._directory / f"{blob_id}-{uuid.uuid4().hex[:8]}"
        path.write_bytes(data)
        return TempFileResourceHandle(blob_id, path, mime, len(data))

    def close(self) -> None:
        if self._directory is not None:
            shutil.rmtree(self._directory, ignore_errors=True)
            self._directory = None
