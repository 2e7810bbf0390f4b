"""
Custom exceptions for blobwire.

Three families are distinguished:

- validation errors: local, pre-flight checks that never touch the network
- transport errors: the channel or HTTP request failed
- protocol errors: a frame was valid JSON but not a valid message, or the
  server reported an application error

Configuration errors are the only ones raised eagerly, at construction time.
"""
from enum import Enum
from typing import Optional, Any, List, Dict


class BlobwireError(Exception):
    """Base exception for all blobwire errors."""

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            error_code: Machine readable code (if available)
        """
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigurationError(BlobwireError):
    """Raised when subsystem configuration is malformed."""
    pass


class UploadErrorKind(str, Enum):
    """Machine readable upload failure kinds."""

    FILE_TOO_SMALL = 'FILE_TOO_SMALL'
    FILE_TOO_LARGE = 'FILE_TOO_LARGE'
    EMPTY_FILE = 'EMPTY_FILE'
    INVALID_FILE = 'INVALID_FILE'
    HASH_CALCULATION_FAILED = 'HASH_CALCULATION_FAILED'
    NOT_CONNECTED = 'NOT_CONNECTED'
    NETWORK_ERROR = 'NETWORK_ERROR'
    SERVER_ERROR = 'SERVER_ERROR'
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'
    CONFLICT = 'CONFLICT'
    CANCELLED = 'CANCELLED'


# Kinds detected before any I/O happens
VALIDATION_KINDS = frozenset({
    UploadErrorKind.FILE_TOO_SMALL,
    UploadErrorKind.FILE_TOO_LARGE,
    UploadErrorKind.EMPTY_FILE,
    UploadErrorKind.INVALID_FILE,
    UploadErrorKind.HASH_CALCULATION_FAILED,
})


class UploadError(BlobwireError):
    """Exception raised when an upload task fails."""

    def __init__(
        self,
        kind: UploadErrorKind,
        message: str,
        original_error: Optional[BaseException] = None,
        status: Optional[int] = None
    ) -> None:
        """
        Initialize the exception.

        Args:
            kind: Failure kind
            message: Human readable message
            original_error: Underlying exception (if any)
            status: HTTP status code for bulk failures
        """
        self.kind = UploadErrorKind(kind)
        self.original_error = original_error
        self.status = status
        super().__init__(message, self.kind.value)

    @property
    def is_validation(self) -> bool:
        """True when the failure was detected before touching the network."""
        return self.kind in VALIDATION_KINDS and self.status is None

    def __repr__(self) -> str:
        return f"UploadError({self.kind.value}, {self.message!r})"


class TransportError(BlobwireError):
    """Base class for channel and HTTP transport failures."""
    pass


class ConnectionFailedError(TransportError):
    """Raised when an explicit connect attempt fails."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message, 'CONNECTION_FAILED')


class BulkRequestError(TransportError):
    """Raised for failed bulk endpoint calls outside of an upload task."""

    def __init__(self, kind: UploadErrorKind, message: str, status: Optional[int] = None) -> None:
        self.kind = UploadErrorKind(kind)
        self.status = status
        super().__init__(message, self.kind.value)


class ProtocolError(BlobwireError):
    """Base class for protocol level errors."""
    pass


class ProtocolValidationError(ProtocolError):
    """
    A frame that could not be turned into a valid message.

    Returned as a value by the parsing functions rather than raised.

    Attributes:
        reason: One of ``invalid_json``, ``not_an_object``, ``unknown_type``
            or ``schema``
        message_type: The ``type`` tag of the frame, if one was present
        details: Field level errors reported by the schema
        raw: The original frame
    """

    def __init__(
        self,
        reason: str,
        message: str,
        message_type: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
        raw: Any = None
    ) -> None:
        self.reason = reason
        self.message_type = message_type
        self.details = details or []
        self.raw = raw
        super().__init__(message, reason)


class ServerReportedError(ProtocolError):
    """An ``Error`` frame sent by the server."""
    pass
