"""
MediaClient - High-level async client for the media transport.

Example:
    >>> async with MediaClient(ClientConfig.for_server("http://localhost:3000")) as client:
    ...     task_ids = client.upload_files(["photo.jpg", "video.mp4"])
    ...     await client.wait_for_uploads(task_ids)
    ...     for blob in client.blobs:
    ...         print(client.display_info(blob)['size'])
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set, Union

import aiohttp

from .core.api.config import ClientConfig, LOG_LEVELS
from .core.api.events import EventEmitter
from .core.blobs import MediaBlob, sha256_hex
from .core.cache import BlobCache
from .core.connection import ConnectionManager, ConnectionStatus, ConnectionStatusEvent
from .core.exceptions import ConfigurationError
from .core.logging import get_logger
from .core.protocol import BlobData, BlobList, BlobMeta
from .core.upload import BulkUploadPipeline, ChannelUploadPipeline, SmartUploadRouter, UploadTask


_LOGGING_LEVELS = {
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
}


@dataclass(frozen=True)
class ActivityEntry:
    """One activity log line."""
    level: str
    message: str
    timestamp: float
    data: Any = None


class MediaClient:
    """
    Facade over the channel connection, the blob cache and the upload router.

    Events of the components are re-emitted under the same names, so any
    number of listeners can subscribe to one object. Additional events:

        log                 ActivityEntry
        log-cleared         {'timestamp'}
        integrity-error     {'id', 'expected', 'actual'}

    Example:
        >>> client = MediaClient(ClientConfig.for_server("http://localhost:3000"))
        >>> client.on('blobs-updated', lambda e: print(e['count'], 'blobs'))
        >>> await client.connect()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        connection: Optional[ConnectionManager] = None,
        cache: Optional[BlobCache] = None,
        router: Optional[SmartUploadRouter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        ws_factory: Optional[Callable] = None
    ):
        """
        Initialize client.

        Args:
            config: Client configuration (validated on construction)
            connection: Pre-built connection manager
            cache: Pre-built blob cache
            router: Pre-built upload router
            session: Shared aiohttp session for the channel and bulk requests
            ws_factory: Socket factory passed to the connection manager

        Raises:
            ConfigurationError: If the configuration is malformed
        """
        self._config = config or ClientConfig.default()
        self._config.validate()

        self._connection = connection or ConnectionManager(
            self._config.connection, ws_factory=ws_factory, session=session
        )
        self._cache = cache or BlobCache()
        self._router = router or SmartUploadRouter(
            ChannelUploadPipeline(self._connection, self._config.channel_config()),
            BulkUploadPipeline(self._config.bulk_config(), session=session),
            threshold=self._config.size_threshold,
        )

        self._events = EventEmitter('blobwire.client')
        self._logger = get_logger('blobwire.client')
        self._log_level = self._config.log_level
        self._activity: Deque[ActivityEntry] = deque(maxlen=self._config.log_limit)
        self._auto_list: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Future] = set()
        self._closed = False

        self._setup_event_handlers()

    # Events

    def on(self, event: str, callback: Callable) -> 'MediaClient':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def once(self, event: str, callback: Callable) -> 'MediaClient':
        self._events.once(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'MediaClient':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    # Components

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def cache(self) -> BlobCache:
        return self._cache

    @property
    def router(self) -> SmartUploadRouter:
        return self._router

    # Connection

    async def connect(self, url: Optional[str] = None) -> None:
        """
        Connect the channel.

        Raises:
            ConnectionFailedError: If the explicit attempt fails
        """
        self._log('info', 'Connecting to media server')
        await self._connection.connect(url)

    async def disconnect(self) -> None:
        self._log('info', 'Disconnecting from media server')
        self._cancel_auto_list()
        await self._connection.disconnect()

    async def ping(self) -> bool:
        self._log('debug', 'Sending ping')
        return await self._connection.ping()

    @property
    def status(self) -> ConnectionStatus:
        return self._connection.status

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def user_count(self) -> int:
        return self._connection.user_count

    @property
    def connection_id(self) -> str:
        return self._connection.connection_id

    # Blobs

    async def get_media_blobs(self, limit: int = 10, offset: int = 0) -> bool:
        """Request a page of blob summaries."""
        self._log('debug', f"Requesting media blobs (limit: {limit}, offset: {offset})")
        return await self._connection.send({
            'type': 'GetMediaBlobs',
            'data': {'limit': limit, 'offset': offset},
        })

    async def get_media_blob(self, blob_id: str) -> bool:
        """
        Request one blob summary.

        A malformed id emits ``validation-error`` and returns False.
        """
        self._log('debug', f"Requesting media blob: {blob_id}")
        return await self._connection.send({'type': 'GetMediaBlob', 'data': {'id': blob_id}})

    def load_blob_data(self, blob_id: str) -> bool:
        """
        Request a payload into the cache.

        Returns:
            False if it is already cached or loading
        """
        self._log('debug', f"Loading blob data: {blob_id}")
        return self._cache.request_blob_data(blob_id)

    async def download_blob(self, blob_id: str, destination: Optional[Union[str, Path]] = None) -> bool:
        """Save a cached payload, requesting it first when needed."""
        self._log('debug', f"Downloading blob: {blob_id}")
        return await self._cache.download_blob(blob_id, destination)

    @property
    def blobs(self) -> List[MediaBlob]:
        return self._cache.get_blobs()

    def get_blob(self, blob_id: str) -> Optional[MediaBlob]:
        return self._cache.get_blob(blob_id)

    def display_info(self, blob: MediaBlob) -> Dict[str, Any]:
        return self._cache.display_info(blob)

    def cache_stats(self) -> Dict[str, int]:
        return self._cache.cache_stats()

    def clear_cache(self) -> int:
        return self._cache.clear_cache()

    # Uploads

    def upload_files(self, files: Iterable[Any], metadata: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Submit files; each is routed by size.

        Returns:
            One task id per file
        """
        files = list(files)
        self._log('info', f"Starting upload of {len(files)} file(s)")
        return self._router.submit(files, metadata)

    async def wait_for_uploads(self, task_ids: Optional[Iterable[str]] = None) -> List[UploadTask]:
        return await self._router.wait(task_ids)

    def get_upload(self, task_id: str) -> Optional[UploadTask]:
        return self._router.get_task(task_id)

    def retry_upload(self, task_id: str) -> bool:
        return self._router.retry(task_id)

    def cancel_upload(self, task_id: str) -> bool:
        return self._router.cancel(task_id)

    def cancel_all_uploads(self) -> int:
        return self._router.cancel_all()

    def upload_stats(self) -> Dict[str, int]:
        return self._router.stats()

    def clear_completed_uploads(self) -> int:
        return self._router.clear_completed()

    # Activity log

    @property
    def log_level(self) -> str:
        return self._log_level

    def set_log_level(self, level: str) -> None:
        """Change verbosity (none, error, warn, info, debug)."""
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        self._log_level = level

    def activity_log(self) -> List[ActivityEntry]:
        """Most recent entries, oldest first."""
        return list(self._activity)

    def clear_activity_log(self) -> None:
        self._activity.clear()
        self._events.emit('log-cleared', {'timestamp': time.time()})

    def _should_log(self, level: str) -> bool:
        return LOG_LEVELS.index(level) <= LOG_LEVELS.index(self._log_level)

    def _log(self, level: str, message: str, data: Any = None) -> None:
        if not self._should_log(level):
            return
        entry = ActivityEntry(level=level, message=message, timestamp=time.time(), data=data)
        self._activity.append(entry)
        self._logger.log(_LOGGING_LEVELS[level], message)
        self._events.emit('log', entry)

    # Lifecycle

    async def __aenter__(self) -> 'MediaClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Stop uploads, disconnect, release every cached handle."""
        if self._closed:
            return
        self._closed = True
        self._log('info', 'Closing media client')
        self._cancel_auto_list()
        for future in list(self._background):
            future.cancel()
        await self._router.close()
        await self._router.bulk.close()
        await self._connection.close()
        self._cache.destroy()
        self._activity.clear()

    # Wiring

    def _setup_event_handlers(self) -> None:
        conn = self._connection
        conn.on('status-change', self._on_status_change)
        conn.on('message', self._on_message)
        conn.on('connection-error', self._relay('connection-error', 'error', 'Connection error'))
        conn.on('connection-closed', self._relay('connection-closed', 'info', 'Connection closed'))
        conn.on('reconnecting', self._relay('reconnecting', 'warn', 'Reconnecting'))
        conn.on('reconnect-failed', self._relay('reconnect-failed', 'error', 'Reconnection failed'))
        conn.on('welcome', self._relay('welcome', 'info', 'Welcome received'))
        conn.on('presence', self._relay('presence', 'debug', 'Presence update'))
        conn.on('heartbeat-ack', self._relay('heartbeat-ack', 'debug', 'Pong received'))
        conn.on('heartbeat-timeout', self._relay('heartbeat-timeout', 'warn', 'Heartbeat timed out'))
        conn.on('server-error', self._relay('server-error', 'error', 'Server error'))
        conn.on('validation-error', self._relay('validation-error', 'warn', 'Invalid message'))
        conn.on('error', self._relay('error', 'error', 'Channel error'))
        conn.on('message-sent', self._relay('message-sent'))

        cache = self._cache
        cache.on('blob-data-requested', self._on_blob_data_requested)
        cache.on('blobs-updated', self._relay('blobs-updated', 'info', 'Media blobs updated'))
        cache.on('blob-updated', self._relay('blob-updated', 'info', 'Media blob received'))
        cache.on('blob-data-cached', self._relay('blob-data-cached', 'debug', 'Blob data cached'))
        cache.on('blob-downloaded', self._relay('blob-downloaded', 'info', 'Blob saved'))
        cache.on('cache-cleared', self._relay('cache-cleared', 'debug', 'Blob cache cleared'))

        router = self._router
        router.on('task-created', self._on_task('task-created', 'info', 'Upload started'))
        router.on('task-completed', self._on_task('task-completed', 'info', 'Upload completed'))
        router.on('task-error', self._on_task('task-error', 'error', 'Upload failed'))
        router.on('task-cancelled', self._on_task('task-cancelled', 'info', 'Upload cancelled'))
        router.on('task-retried', self._on_task('task-retried', 'info', 'Upload retried'))
        router.on('task-progress', self._relay('task-progress'))
        router.on('tasks-cleared', self._relay('tasks-cleared'))

    def _relay(self, event: str, level: Optional[str] = None, message: str = '') -> Callable:
        def handler(payload=None):
            if level is not None:
                self._log(level, message, payload)
            self._events.emit(event, payload)
        return handler

    def _on_task(self, event: str, level: str, message: str) -> Callable:
        def handler(task: UploadTask):
            detail = f"{message}: {task.file_name} ({task.transport.value})"
            if task.error is not None and event == 'task-error':
                detail = f"{detail}: {task.error.message}"
            self._log(level, detail, task.to_dict())
            self._events.emit(event, task)
        return handler

    def _on_status_change(self, event: ConnectionStatusEvent) -> None:
        self._log('info', f"Connection status changed: {event.status.value}", {
            'user_count': event.user_count,
        })
        self._events.emit('status-change', event)

        if event.status == ConnectionStatus.CONNECTED:
            if self._config.auto_list_blobs:
                self._schedule_auto_list()
        else:
            self._cancel_auto_list()

    def _schedule_auto_list(self) -> None:
        self._cancel_auto_list()
        loop = asyncio.get_running_loop()
        self._auto_list = loop.call_later(self._config.auto_list_delay, self._run_auto_list)

    def _run_auto_list(self) -> None:
        self._auto_list = None
        if self._connection.is_connected:
            self._spawn(self.get_media_blobs(10, 0))

    def _cancel_auto_list(self) -> None:
        if self._auto_list is not None:
            self._auto_list.cancel()
            self._auto_list = None

    def _spawn(self, coro) -> None:
        future = asyncio.ensure_future(coro)
        self._background.add(future)
        future.add_done_callback(self._background.discard)

    def _on_message(self, event: Dict[str, Any]) -> None:
        message = event['message']
        if isinstance(message, BlobList):
            data = message.data
            self._log('info', f"Received {len(data.blobs)} media blobs (total: {data.total_count})")
            self._cache.update_blobs(data.blobs)
        elif isinstance(message, BlobMeta):
            self._cache.upsert_blob(message.data.blob)
        elif isinstance(message, BlobData):
            self._store_blob_data(message)
        self._events.emit('message', event)

    def _store_blob_data(self, message: BlobData) -> None:
        payload = message.data
        self._log('debug', f"Received blob data: {payload.id}")
        summary = self._cache.get_blob(payload.id)
        if summary is not None:
            actual = sha256_hex(payload.data)
            if actual != summary.sha256:
                self._log('error', f"Integrity check failed for blob {payload.id}")
                self._cache.abandon_request(payload.id)
                self._events.emit('integrity-error', {
                    'id': payload.id,
                    'expected': summary.sha256,
                    'actual': actual,
                })
                return
        self._cache.cache_blob_data(payload)

    async def _on_blob_data_requested(self, event: Dict[str, Any]) -> None:
        blob_id = event['id']
        self._events.emit('blob-data-requested', event)
        sent = await self._connection.send({'type': 'GetMediaBlobData', 'data': {'id': blob_id}})
        if not sent:
            self._log('warn', f"Could not request data for blob {blob_id}")
            self._cache.abandon_request(blob_id)
