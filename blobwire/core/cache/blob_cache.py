"""
Blob summary list and payload cache.

Payloads are fetched through a request/fulfil cycle: ``request_blob_data``
marks an id as loading and emits ``blob-data-requested`` for an external
fetch; ``cache_blob_data`` stores the payload as a resource handle and emits
``blob-data-cached``.
"""
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union

import aiofiles
from PIL import Image

from ..api.events import EventEmitter
from ..blobs import MediaBlob
from ..logging import get_logger
from .handles import HandleFactory, MemoryHandleFactory, ResourceHandle
from .preview import BlobPreview, PreviewKind, PreviewState, ThumbnailService, preview_label


def format_file_size(size: Optional[int]) -> str:
    """
    Human readable size with one decimal.

    Example:
        >>> format_file_size(1536)
        '1.5 KB'
        >>> format_file_size(0)
        'Unknown size'
    """
    if not size:
        return 'Unknown size'
    units = ('B', 'KB', 'MB', 'GB')
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.1f} {units[index]}"


class BlobCache:
    """
    Authoritative blob summaries plus a lazily populated payload cache.

    Events:
        blobs-updated           {'blobs', 'count'}
        blob-updated            {'blob', 'created'}
        blob-data-requested     {'id'}
        blob-data-cached        {'id', 'uri', 'mime', 'handle'}
        blob-downloaded         {'id', 'path'}
        cache-cleared           {'timestamp', 'released'}
    """

    def __init__(
        self,
        handle_factory: Optional[HandleFactory] = None,
        thumbnails: Optional[ThumbnailService] = None,
        generate_thumbnails: bool = True
    ):
        self._factory = handle_factory or MemoryHandleFactory()
        self._thumbnails = thumbnails or ThumbnailService()
        self._generate_thumbnails = generate_thumbnails
        self._blobs: List[MediaBlob] = []
        self._handles: Dict[str, ResourceHandle] = {}
        self._loading: Set[str] = set()
        self._thumbnail_cache: Dict[str, Optional[bytes]] = {}
        self._events = EventEmitter('blobwire.cache')
        self._logger = get_logger('blobwire.cache')

    def on(self, event: str, callback: Callable) -> 'BlobCache':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'BlobCache':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    # Summaries

    def update_blobs(self, blobs: List[MediaBlob]) -> None:
        """Replace the summary list."""
        self._blobs = list(blobs)
        self._logger.debug(f"Blob list updated ({len(self._blobs)} blobs)")
        self._events.emit('blobs-updated', {'blobs': self.get_blobs(), 'count': len(self._blobs)})

    def upsert_blob(self, blob: MediaBlob) -> bool:
        """
        Insert or replace one summary.

        Returns:
            True if the blob was new
        """
        for index, existing in enumerate(self._blobs):
            if existing.id == blob.id:
                self._blobs[index] = blob
                self._events.emit('blob-updated', {'blob': blob, 'created': False})
                return False
        self._blobs.insert(0, blob)
        self._events.emit('blob-updated', {'blob': blob, 'created': True})
        return True

    def get_blobs(self) -> List[MediaBlob]:
        return list(self._blobs)

    def get_blob(self, blob_id: str) -> Optional[MediaBlob]:
        return next((blob for blob in self._blobs if blob.id == blob_id), None)

    # Payloads

    def is_cached(self, blob_id: str) -> bool:
        return blob_id in self._handles

    def is_loading(self, blob_id: str) -> bool:
        return blob_id in self._loading

    def get_handle(self, blob_id: str) -> Optional[ResourceHandle]:
        return self._handles.get(blob_id)

    def get_data(self, blob_id: str) -> Optional[bytes]:
        handle = self._handles.get(blob_id)
        return handle.read() if handle is not None else None

    def request_blob_data(self, blob_id: str) -> bool:
        """
        Ask for a payload.

        Returns:
            True if a ``blob-data-requested`` event was emitted, False when
            the payload is already cached or loading
        """
        if self.is_cached(blob_id) or self.is_loading(blob_id):
            return False
        self._loading.add(blob_id)
        self._logger.debug(f"Requesting data for blob {blob_id}")
        self._events.emit('blob-data-requested', {'id': blob_id})
        return True

    def abandon_request(self, blob_id: str) -> None:
        """Clear the loading mark after a failed fetch so it can be requested again."""
        self._loading.discard(blob_id)

    def cache_blob_data(self, payload) -> ResourceHandle:
        """
        Store a fetched payload.

        Args:
            payload: A ``BlobDataPayload`` (``id``, ``data``, ``mime``)

        Returns:
            The handle created for the payload
        """
        blob_id = payload.id
        mime = payload.mime
        if mime is None:
            summary = self.get_blob(blob_id)
            mime = summary.mime if summary is not None else None

        handle = self._factory.create(blob_id, payload.data, mime)
        previous = self._handles.pop(blob_id, None)
        if previous is not None:
            previous.release()
        self._thumbnail_cache.pop(blob_id, None)

        self._handles[blob_id] = handle
        self._loading.discard(blob_id)
        self._logger.debug(f"Cached {len(payload.data)} bytes for blob {blob_id}")
        self._events.emit('blob-data-cached', {
            'id': blob_id,
            'uri': handle.uri,
            'mime': handle.mime,
            'handle': handle,
        })
        return handle

    async def download_blob(
        self,
        blob_id: str,
        destination: Optional[Union[str, Path]] = None
    ) -> bool:
        """
        Write a cached payload to disk.

        When the payload is not cached yet it is requested instead and
        nothing is written.

        Args:
            blob_id: Blob to save
            destination: Target file or directory (default: current directory)

        Returns:
            True if the file was written
        """
        handle = self._handles.get(blob_id)
        if handle is None:
            self.request_blob_data(blob_id)
            return False

        blob = self.get_blob(blob_id)
        filename = Path(blob.local_path).name if blob is not None and blob.local_path else f"blob-{blob_id}"
        target = Path(destination) if destination is not None else Path.cwd()
        if target.is_dir():
            target = target / filename

        async with aiofiles.open(target, 'wb') as f:
            await f.write(handle.read())

        self._logger.info(f"Saved blob {blob_id} to {target}")
        self._events.emit('blob-downloaded', {'id': blob_id, 'path': target})
        return True

    # Derivations

    format_file_size = staticmethod(format_file_size)

    def preview_state(self, blob_id: str) -> PreviewState:
        if self.is_cached(blob_id):
            return PreviewState.LOADED
        if self.is_loading(blob_id):
            return PreviewState.LOADING
        return PreviewState.NOT_LOADED

    def preview(self, blob: MediaBlob) -> BlobPreview:
        """Type and state specific preview of a blob."""
        kind = PreviewKind.for_mime(blob.mime)
        state = self.preview_state(blob.id)
        handle = self._handles.get(blob.id)
        thumbnail = None
        if kind == PreviewKind.IMAGE and handle is not None and self._generate_thumbnails:
            thumbnail = self._thumbnail(blob.id, handle)
        return BlobPreview(
            blob_id=blob.id,
            kind=kind,
            state=state,
            label=preview_label(kind, state),
            mime=blob.mime,
            uri=handle.uri if handle is not None else None,
            thumbnail=thumbnail,
        )

    def _thumbnail(self, blob_id: str, handle: ResourceHandle) -> Optional[bytes]:
        if blob_id not in self._thumbnail_cache:
            try:
                self._thumbnail_cache[blob_id] = self._thumbnails.generate(handle.read())
            except (OSError, ValueError, Image.DecompressionBombError) as e:
                self._logger.debug(f"No thumbnail for blob {blob_id}: {e}")
                self._thumbnail_cache[blob_id] = None
        return self._thumbnail_cache[blob_id]

    def display_info(self, blob: MediaBlob) -> Dict[str, Any]:
        """Presentation fields for one blob."""
        return {
            'id': blob.id,
            'mime': blob.mime or 'Unknown type',
            'size': format_file_size(blob.size),
            'sha256': blob.sha256,
            'client_id': blob.source_client_id or 'Unknown',
            'path': blob.local_path or 'None',
            'created_at': blob.created_at.astimezone().strftime('%Y-%m-%d %H:%M:%S'),
            'metadata': json.dumps(blob.metadata, default=str) if blob.metadata else '',
            'preview': self.preview(blob),
        }

    # Lifecycle

    def cache_stats(self) -> Dict[str, int]:
        return {
            'cached_count': len(self._handles),
            'loading_count': len(self._loading),
            'total_blobs': len(self._blobs),
        }

    def clear_cache(self) -> int:
        """
        Release every handle and forget loading marks.

        Returns:
            Number of handles released
        """
        released = 0
        for handle in self._handles.values():
            handle.release()
            released += 1
        self._handles.clear()
        self._loading.clear()
        self._thumbnail_cache.clear()
        self._logger.debug(f"Cache cleared ({released} handles released)")
        self._events.emit('cache-cleared', {'timestamp': time.time(), 'released': released})
        return released

    def destroy(self) -> None:
        """Clear everything, close the handle factory and drop listeners."""
        self.clear_cache()
        self._blobs = []
        self._factory.close()
        self._events.remove_all_listeners()
