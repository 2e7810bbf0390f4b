"""Bulk endpoint status codes and their upload error kinds."""
import json
from typing import Dict, Optional

from ...exceptions import UploadErrorKind, UploadError


class HTTPStatusMapping:
    """Maps bulk endpoint HTTP statuses to upload error kinds."""

    STATUS_KINDS: Dict[int, UploadErrorKind] = {
        400: UploadErrorKind.INVALID_FILE,
        401: UploadErrorKind.UNAUTHORIZED,
        403: UploadErrorKind.FORBIDDEN,
        409: UploadErrorKind.CONFLICT,
        413: UploadErrorKind.FILE_TOO_LARGE,
    }

    @classmethod
    def kind_for(cls, status: int) -> UploadErrorKind:
        """Gets error kind for a non-2xx status."""
        if status in cls.STATUS_KINDS:
            return cls.STATUS_KINDS[status]
        if status >= 500:
            return UploadErrorKind.SERVER_ERROR
        return UploadErrorKind.NETWORK_ERROR

    @staticmethod
    def message_from_body(status: int, reason: Optional[str], body: str) -> str:
        """
        Extract a message from an error body.

        Uses ``error`` or ``message`` from a JSON object body and falls back
        to the status line when the body is not JSON.
        """
        try:
            data = json.loads(body)
        except (ValueError, TypeError):
            return f"HTTP {status} {reason or ''}".strip()

        if isinstance(data, dict):
            message = data.get('error') or data.get('message')
            if isinstance(message, str) and message:
                return message
        return f"HTTP {status}"

    @classmethod
    def to_error(cls, status: int, reason: Optional[str], body: str) -> UploadError:
        """Build the UploadError for a failed response."""
        return UploadError(
            cls.kind_for(status),
            cls.message_from_body(status, reason, body),
            status=status
        )
