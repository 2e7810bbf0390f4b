"""
Size based upload routing.

Files below the threshold go over the channel, files at or above it over
the bulk path. The decision is made once, at submission.
"""
import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..api.config import DEFAULT_SIZE_THRESHOLD
from ..api.events import EventEmitter
from ..blobs.models import new_blob_id
from ..exceptions import ConfigurationError
from ..logging import get_logger
from .bulk import BulkUploadPipeline, should_use_bulk
from .channel import ChannelUploadPipeline
from .models import Transport, UploadStatus, UploadTask
from .services import as_upload_source


class SmartUploadRouter:
    """
    Routes files to the channel or bulk pipeline and tracks every task.

    Events:
        task-created    UploadTask
        task-progress   {'task', 'progress'}
        task-completed  UploadTask
        task-error      UploadTask
        task-cancelled  UploadTask
        task-retried    UploadTask
        tasks-cleared   {'removed'}
    """

    def __init__(
        self,
        channel: ChannelUploadPipeline,
        bulk: BulkUploadPipeline,
        threshold: int = DEFAULT_SIZE_THRESHOLD
    ):
        """
        Initialize router.

        Args:
            channel: Pipeline for files below ``threshold``
            bulk: Pipeline for files at or above ``threshold``
            threshold: Size boundary in bytes

        Raises:
            ConfigurationError: If the threshold is not positive
        """
        if threshold <= 0:
            raise ConfigurationError("Upload threshold must be positive")
        self._channel = channel
        self._bulk = bulk
        self._threshold = threshold
        self._tasks: Dict[str, UploadTask] = {}
        self._runs: Dict[str, asyncio.Task] = {}
        self._events = EventEmitter('blobwire.upload.router')
        self._logger = get_logger('blobwire.upload.router')

        for pipeline in (channel, bulk):
            pipeline.on('upload-progress', self._on_progress)
            pipeline.on('upload-completed', self._forward('task-completed'))
            pipeline.on('upload-error', self._forward('task-error'))
            pipeline.on('upload-cancelled', self._forward('task-cancelled'))

    def on(self, event: str, callback: Callable) -> 'SmartUploadRouter':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'SmartUploadRouter':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def channel(self) -> ChannelUploadPipeline:
        return self._channel

    @property
    def bulk(self) -> BulkUploadPipeline:
        return self._bulk

    @property
    def tasks(self) -> List[UploadTask]:
        return list(self._tasks.values())

    def get_task(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.get(task_id)

    def select_transport(self, size: int) -> Transport:
        """Channel below the threshold, bulk at or above it."""
        return Transport.BULK if should_use_bulk(size, self._threshold) else Transport.CHANNEL

    def submit(self, files: Iterable[Any], metadata: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Submit files for upload.

        Every file becomes a task whose run starts immediately.

        Args:
            files: Paths, ``(name, bytes)`` pairs or upload sources
            metadata: Metadata attached to every blob

        Returns:
            One task id per file, in order

        Raises:
            UploadError: INVALID_FILE if a path does not exist
        """
        sources = [as_upload_source(f) for f in files]
        task_ids = []
        for source in sources:
            task = UploadTask(
                id=new_blob_id(),
                source=source,
                transport=self.select_transport(source.size),
                metadata=dict(metadata or {}),
            )
            self._tasks[task.id] = task
            self._logger.debug(
                f"{source.name} ({source.size} bytes) routed to {task.transport.value}"
            )
            self._events.emit('task-created', task)
            self._start(task)
            task_ids.append(task.id)
        return task_ids

    def retry(self, task_id: str) -> bool:
        """
        Start a fresh run of a failed or cancelled task.

        The same pipeline and file are reused.

        Returns:
            True if a new run was started
        """
        task = self._tasks.get(task_id)
        if task is None or not task.can_retry:
            return False
        task.reset_for_retry()
        self._logger.info(f"Retrying {task.file_name} (attempt {task.attempt})")
        self._events.emit('task-retried', task)
        self._start(task)
        return True

    def cancel(self, task_id: str) -> bool:
        """Cancel a non-terminal task."""
        task = self._tasks.get(task_id)
        if task is None or task.is_terminal:
            return False
        return self._pipeline_for(task).cancel(task_id)

    def cancel_all(self) -> int:
        """Cancel every non-terminal task."""
        return sum(1 for task in list(self._tasks.values()) if self.cancel(task.id))

    def clear_completed(self) -> int:
        """Forget terminal tasks, returning how many were removed."""
        removed = [tid for tid, task in self._tasks.items() if task.is_terminal]
        for tid in removed:
            del self._tasks[tid]
            self._runs.pop(tid, None)
        self._events.emit('tasks-cleared', {'removed': len(removed)})
        return len(removed)

    async def wait(self, task_ids: Optional[Iterable[str]] = None) -> List[UploadTask]:
        """
        Wait until the given (default: all) tasks finish their current run.

        Returns:
            The tasks, in the order requested
        """
        ids = list(task_ids) if task_ids is not None else list(self._tasks)
        runs = [self._runs[tid] for tid in ids if tid in self._runs]
        if runs:
            await asyncio.wait(runs)
        return [self._tasks[tid] for tid in ids if tid in self._tasks]

    def stats(self) -> Dict[str, int]:
        """Counts per status; cancelled tasks also count as errors."""
        def count(*statuses) -> int:
            return sum(1 for t in self._tasks.values() if t.status in statuses)

        return {
            'total': len(self._tasks),
            'pending': count(UploadStatus.PENDING),
            'processing': count(UploadStatus.PROCESSING),
            'uploading': count(UploadStatus.UPLOADING),
            'completed': count(UploadStatus.COMPLETED),
            'errors': count(UploadStatus.ERROR, UploadStatus.CANCELLED),
            'cancelled': count(UploadStatus.CANCELLED),
        }

    async def close(self) -> None:
        """Cancel everything still running."""
        self.cancel_all()
        runs = [run for run in self._runs.values() if not run.done()]
        if runs:
            await asyncio.wait(runs)

    def _start(self, task: UploadTask) -> None:
        self._runs[task.id] = self._pipeline_for(task).start(task)

    def _pipeline_for(self, task: UploadTask):
        return self._bulk if task.transport == Transport.BULK else self._channel

    def _on_progress(self, progress) -> None:
        task = self._tasks.get(progress.task_id)
        if task is not None:
            self._events.emit('task-progress', {'task': task, 'progress': progress})

    def _forward(self, event: str) -> Callable:
        def handler(payload: Dict[str, Any]) -> None:
            task = self._tasks.get(payload['task_id'])
            if task is not None:
                self._events.emit(event, task)
        return handler
