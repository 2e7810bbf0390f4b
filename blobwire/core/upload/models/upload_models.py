"""
Data models for upload module.

Uses dataclasses for mutable task state and frozen progress snapshots.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ...exceptions import UploadError, UploadErrorKind


class UploadStatus(str, Enum):
    """Lifecycle of an upload task."""

    PENDING = 'pending'
    PROCESSING = 'processing'
    UPLOADING = 'uploading'
    COMPLETED = 'completed'
    ERROR = 'error'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.ERROR, UploadStatus.CANCELLED)


class UploadStage(str, Enum):
    """Progress stages shared by both transports."""

    PREPARING = 'preparing'
    HASHING = 'hashing'
    UPLOADING = 'uploading'
    COMPLETED = 'completed'
    ERROR = 'error'


class Transport(str, Enum):
    """Upload path chosen for a task."""

    CHANNEL = 'channel'
    BULK = 'bulk'


@dataclass(frozen=True)
class UploadProgress:
    """
    Upload progress information.

    Attributes:
        task_id: Task the progress belongs to
        stage: Current stage
        progress: Percentage 0-100
        bytes_uploaded: Bytes handed to the transport, when known
        total_bytes: File size
        error: Failure, for the ``error`` stage
    """
    task_id: str
    stage: UploadStage
    progress: int
    bytes_uploaded: Optional[int] = None
    total_bytes: Optional[int] = None
    error: Optional[UploadError] = None

    @property
    def is_complete(self) -> bool:
        """Returns True if upload is complete."""
        return self.stage == UploadStage.COMPLETED


@dataclass
class UploadTask:
    """
    A tracked unit of upload work bound to one file and one transport.

    ``progress`` never decreases within a run; ``reset_for_retry`` starts a
    new run from zero.

    Attributes:
        id: Task id
        source: File being uploaded (an ``UploadSource``)
        transport: Path chosen at submission, never revisited
        status: Current status
        progress: Percentage 0-100
        error: Failure of the last run
        result: Blob id (channel) or ``UploadResponse`` (bulk)
        attempt: Run number, starting at 1
        metadata: Caller supplied metadata sent with the blob
    """
    id: str
    source: Any
    transport: Transport
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: Optional[UploadError] = None
    result: Any = None
    attempt: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def file_name(self) -> str:
        return self.source.name

    @property
    def file_size(self) -> int:
        return self.source.size

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @property
    def can_retry(self) -> bool:
        return self.status in (UploadStatus.ERROR, UploadStatus.CANCELLED)

    def advance(self, progress: int, status: Optional[UploadStatus] = None) -> None:
        """Move progress forward (never backward) and optionally change status."""
        self.progress = max(self.progress, min(100, progress))
        if status is not None:
            self.status = status
        self.updated_at = time.time()

    def complete(self, result: Any) -> None:
        self.result = result
        self.error = None
        self.advance(100, UploadStatus.COMPLETED)

    def fail(self, error: UploadError) -> None:
        """Mark failed; progress is kept where the run stopped."""
        self.error = error
        self.status = UploadStatus.ERROR
        self.updated_at = time.time()

    def cancel(self) -> bool:
        """Mark cancelled unless already terminal."""
        if self.is_terminal:
            return False
        self.error = UploadError(UploadErrorKind.CANCELLED, "Cancelled by user")
        self.status = UploadStatus.CANCELLED
        self.updated_at = time.time()
        return True

    def reset_for_retry(self) -> None:
        """Start a fresh run over the same file and transport."""
        self.status = UploadStatus.PENDING
        self.progress = 0
        self.error = None
        self.result = None
        self.attempt += 1
        self.updated_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain summary dict."""
        return {
            'id': self.id,
            'file_name': self.file_name,
            'file_size': self.file_size,
            'transport': self.transport.value,
            'status': self.status.value,
            'progress': self.progress,
            'error': self.error_message,
            'error_kind': self.error.kind.value if self.error is not None else None,
            'attempt': self.attempt,
        }
