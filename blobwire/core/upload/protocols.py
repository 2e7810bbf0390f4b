"""
Protocol definitions for upload module.

Defines the interfaces the pipelines depend on, so the channel, the files
and the HTTP layer can be swapped for fakes.
"""
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Protocol, runtime_checkable


@runtime_checkable
class UploadSource(Protocol):
    """
    A file the caller picked.

    Attributes:
        name: File name (no directories)
        size: Size in bytes
        mime: MIME type, None when unknown
        last_modified: Modification time, None when unknown
    """

    name: str
    size: int
    mime: Optional[str]
    last_modified: Optional[datetime]

    async def read(self) -> bytes:
        """Read the whole file."""
        ...

    def iter_chunks(self, chunk_size: int = ...) -> AsyncIterator[bytes]:
        """Stream the file in chunks."""
        ...


class MessageSender(Protocol):
    """What the channel pipeline needs from the connection."""

    @property
    def is_connected(self) -> bool:
        ...

    async def send(self, message: Any) -> bool:
        """
        Send a client message.

        Returns:
            True if the message was handed to the channel
        """
        ...

