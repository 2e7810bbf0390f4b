"""
Large-file upload over HTTP.

One multipart ``POST`` per file: a JSON ``metadata`` part and the binary
``file`` part, streamed from the source. Progress checkpoints follow the
same contract as the channel path: preparing 0, hashing 10/50,
uploading 60/90, completed 100.
"""
import asyncio
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError

from ..api.config import BulkUploadConfig, DEFAULT_SIZE_THRESHOLD
from ..api.errors import HTTPStatusMapping
from ..api.schemas import UploadInfo, UploadList, UploadRequest, UploadResponse
from ..blobs import sha256_stream
from ..exceptions import BulkRequestError, UploadError, UploadErrorKind
from .models import Transport, UploadStage, UploadStatus, UploadTask
from .pipeline import UploadPipeline
from .services import DEFAULT_CHUNK_SIZE, FileValidator


DEFAULT_MIME = 'application/octet-stream'


def should_use_bulk(size: int, threshold: int = DEFAULT_SIZE_THRESHOLD) -> bool:
    """True when a file of ``size`` bytes belongs on the bulk path."""
    return size >= threshold


class BulkUploadPipeline(UploadPipeline):
    """
    Uploads large files to the bulk endpoint.

    Reuses one HTTP session for every request. The session is created on
    first use unless one is injected, and only an owned session is closed
    by ``close()``.

    Example:
        >>> async with BulkUploadPipeline(BulkUploadConfig(base_url="http://localhost:3000")) as bulk:
        ...     task = await bulk.upload("video.mp4")
        ...     task.result.id
    """

    transport = Transport.BULK
    logger_name = 'blobwire.upload.bulk'

    def __init__(
        self,
        config: Optional[BulkUploadConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        validator: Optional[FileValidator] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        """
        Initialize bulk pipeline.

        Args:
            config: Bulk upload configuration
            session: Optional shared session
            validator: File validator
            chunk_size: Read size used for hashing and streaming
        """
        super().__init__(validator)
        self._config = config or BulkUploadConfig()
        self._config.validate()
        self._session = session
        self._owns_session = False
        self._chunk_size = chunk_size

    @property
    def config(self) -> BulkUploadConfig:
        return self._config

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(**self._config.get_session_kwargs())
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Cancel active uploads and close the session if we own it."""
        self.cancel_all()
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
        self._owns_session = False

    async def __aenter__(self) -> 'BulkUploadPipeline':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def validate(self, source) -> None:
        """Pre-flight checks; raises UploadError without any I/O."""
        self._validator.check_not_empty(source)
        self._validator.check_min_size(source, self._config.min_file_size)
        self._validator.check_max_size(source, self._config.max_file_size)
        self._validator.check_filename(source)

    async def _execute(self, task: UploadTask) -> None:
        source = task.source
        self._report(task, UploadStage.PREPARING, 0, UploadStatus.PROCESSING)
        self._events.emit('upload-started', {'task_id': task.id, 'file': source})

        self.validate(source)
        self._logger.info(f"Starting bulk upload: {source.name} ({source.size / (1024 * 1024):.2f} MB)")

        self._report(task, UploadStage.HASHING, 10)
        digest = await self._hash(source)
        self._report(task, UploadStage.HASHING, 50)

        try:
            request = UploadRequest(
                filename=source.name,
                mime_type=source.mime or None,
                sha256=digest,
                size=source.size,
                metadata=task.metadata,
            )
        except ValidationError as e:
            raise UploadError(UploadErrorKind.INVALID_FILE, f"Invalid upload request: {e}") from e

        self._report(task, UploadStage.UPLOADING, 60, UploadStatus.UPLOADING)
        response = await self._post(source, request)
        self._report(task, UploadStage.UPLOADING, 90, bytes_uploaded=source.size)

        if response.sha256 != digest:
            self._logger.warning(
                f"Server digest {response.sha256} differs from local {digest} for {source.name}"
            )
        self._complete(task, response)

    async def _hash(self, source) -> str:
        try:
            return await sha256_stream(source.iter_chunks(self._chunk_size))
        except OSError as e:
            raise UploadError(
                UploadErrorKind.HASH_CALCULATION_FAILED,
                "Failed to calculate file hash",
                original_error=e
            ) from e

    async def _post(self, source, request: UploadRequest) -> UploadResponse:
        url = self._config.endpoint(self._config.upload_path)
        form = aiohttp.FormData()
        form.add_field(
            'metadata',
            request.model_dump_json(exclude_none=True),
            content_type='application/json'
        )
        form.add_field(
            'file',
            source.iter_chunks(self._chunk_size),
            filename=source.name,
            content_type=source.mime or DEFAULT_MIME
        )

        session = await self._get_session()
        try:
            async with session.post(url, data=form, **self._request_kwargs(url)) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    raise HTTPStatusMapping.to_error(response.status, response.reason, body)
        except asyncio.TimeoutError as e:
            raise UploadError(
                UploadErrorKind.NETWORK_ERROR,
                f"Upload timed out after {self._config.timeout.total:.0f}s",
                original_error=e
            ) from e
        except aiohttp.ClientError as e:
            raise UploadError(
                UploadErrorKind.NETWORK_ERROR, f"Network error: {e}", original_error=e
            ) from e

        try:
            return UploadResponse.model_validate_json(body)
        except ValidationError as e:
            raise UploadError(
                UploadErrorKind.SERVER_ERROR, "Invalid upload response from server", original_error=e
            ) from e

    def _request_kwargs(self, url: str) -> Dict[str, Any]:
        if url.startswith('https://'):
            return {'ssl': self._config.ssl.create_ssl_context()}
        return {}

    # Endpoint calls outside of an upload task

    async def get_upload_info(self, upload_id: str) -> UploadInfo:
        """
        Get stored metadata of an upload.

        Raises:
            BulkRequestError: On a failed request or invalid response
        """
        body = await self._request('GET', f"{self._config.upload_path}/{upload_id}")
        return self._parse(UploadInfo, body)

    async def list_uploads(self, limit: Optional[int] = None, offset: Optional[int] = None) -> UploadList:
        """
        List uploads with pagination.

        Raises:
            BulkRequestError: On a failed request or invalid response
        """
        params = {}
        if limit is not None:
            params['limit'] = str(limit)
        if offset is not None:
            params['offset'] = str(offset)
        body = await self._request('GET', self._config.list_path, params=params or None)
        return self._parse(UploadList, body)

    async def delete_upload(self, upload_id: str) -> None:
        """
        Delete an upload by id.

        Raises:
            BulkRequestError: On a failed request
        """
        await self._request('DELETE', f"{self._config.upload_path}/{upload_id}")
        self._logger.info(f"Deleted upload {upload_id}")

    async def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None) -> str:
        url = self._config.endpoint(path)
        session = await self._get_session()
        try:
            async with session.request(method, url, params=params, **self._request_kwargs(url)) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    error = HTTPStatusMapping.to_error(response.status, response.reason, body)
                    raise BulkRequestError(error.kind, error.message, status=response.status)
                return body
        except asyncio.TimeoutError as e:
            raise BulkRequestError(UploadErrorKind.NETWORK_ERROR, f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise BulkRequestError(UploadErrorKind.NETWORK_ERROR, f"Network error: {e}") from e

    @staticmethod
    def _parse(model, body: str):
        try:
            return model.model_validate_json(body)
        except ValidationError as e:
            raise BulkRequestError(
                UploadErrorKind.SERVER_ERROR, f"Invalid {model.__name__} response: {e}"
            ) from e
