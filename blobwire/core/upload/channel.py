"""
Small-file upload over the realtime channel.

The whole file is read, digested and sent inline as one ``UploadBlob``
message. Progress checkpoints: 0 validate, 10 read, 30 hash, 60 build,
90 send, 100 done.
"""
from datetime import datetime, timezone
from typing import Optional

from ..api.config import ChannelUploadConfig
from ..blobs import MediaBlob, new_blob_id, sha256_hex
from ..exceptions import UploadError, UploadErrorKind
from ..protocol import upload_blob
from .models import Transport, UploadStage, UploadStatus, UploadTask
from .pipeline import UploadPipeline
from .protocols import MessageSender
from .services import FileValidator


DEFAULT_MIME = 'application/octet-stream'


class ChannelUploadPipeline(UploadPipeline):
    """
    Uploads small files as ``UploadBlob`` messages.

    Extra events:
        upload-processed    {'task_id', 'file', 'blob'}
        upload-sent         {'task_id', 'file', 'blob_id', 'blob'}

    Example:
        >>> pipeline = ChannelUploadPipeline(manager)
        >>> task = await pipeline.upload(("notes.txt", b"hello"))
        >>> task.status
        <UploadStatus.COMPLETED: 'completed'>
    """

    transport = Transport.CHANNEL
    logger_name = 'blobwire.upload.channel'

    def __init__(
        self,
        sender: MessageSender,
        config: Optional[ChannelUploadConfig] = None,
        validator: Optional[FileValidator] = None
    ):
        """
        Initialize channel pipeline.

        Args:
            sender: Connection used to send the blob
            config: Channel upload configuration
            validator: File validator
        """
        super().__init__(validator)
        self._sender = sender
        self._config = config or ChannelUploadConfig()
        self._config.validate()

    @property
    def config(self) -> ChannelUploadConfig:
        return self._config

    def validate(self, source) -> None:
        """Pre-flight checks; raises UploadError without any I/O."""
        self._validator.check_not_empty(source)
        self._validator.check_max_size(source, self._config.max_file_size)
        self._validator.check_mime(source, self._config.allowed_mime_types)

    async def _execute(self, task: UploadTask) -> None:
        source = task.source
        self._report(task, UploadStage.PREPARING, 0, UploadStatus.PROCESSING)
        self._events.emit('upload-started', {'task_id': task.id, 'file': source})
        self._logger.debug(f"Processing {source.name} ({source.size} bytes)")

        self.validate(source)
        self._report(task, UploadStage.HASHING, 10)

        try:
            data = await source.read()
        except OSError as e:
            raise UploadError(
                UploadErrorKind.INVALID_FILE, f"Failed to read file: {e}", original_error=e
            ) from e
        self._report(task, UploadStage.HASHING, 30)

        if not isinstance(data, (bytes, bytearray)):
            raise UploadError(
                UploadErrorKind.HASH_CALCULATION_FAILED,
                f"Failed to calculate file hash: read returned {type(data).__name__}, not bytes"
            )
        data = bytes(data)
        digest = sha256_hex(data)
        self._report(task, UploadStage.HASHING, 60)

        blob = self.build_blob(source, data, digest, task.metadata)
        self._report(task, UploadStage.UPLOADING, 90, UploadStatus.UPLOADING)
        self._events.emit('upload-processed', {'task_id': task.id, 'file': source, 'blob': blob})

        sent = await self._sender.send(upload_blob(blob))
        if not sent:
            raise UploadError(
                UploadErrorKind.NOT_CONNECTED,
                f'Could not send "{source.name}": channel not connected'
            )

        self._logger.debug(f"Blob {blob.id} sent for {source.name}")
        self._events.emit('upload-sent', {
            'task_id': task.id,
            'file': source,
            'blob_id': blob.id,
            'blob': blob,
        })
        self._complete(task, blob.id)

    def build_blob(self, source, data: bytes, digest: str, extra: Optional[dict] = None) -> MediaBlob:
        """Construct the MediaBlob sent for ``source``."""
        now = datetime.now(timezone.utc)
        metadata = {
            'originalName': source.name,
            'lastModified': _epoch_ms(source.last_modified or now),
            'uploadedAt': now.isoformat().replace('+00:00', 'Z'),
            'userAgent': self._config.user_agent,
        }
        metadata.update(extra or {})
        return MediaBlob(
            id=new_blob_id(),
            data=data,
            sha256=digest,
            size=len(data),
            mime=source.mime or DEFAULT_MIME,
            source_client_id=self._config.client_id,
            local_path=source.name,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)
