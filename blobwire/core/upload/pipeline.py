"""
Shared upload pipeline machinery.

Each run is its own ``asyncio.Task`` registered under the upload task id.
Cancelling that asyncio task is the cancellation signal; for bulk uploads it
aborts the in-flight HTTP request.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from ..api.events import EventEmitter
from ..blobs.models import new_blob_id
from ..exceptions import UploadError, UploadErrorKind
from ..logging import get_logger
from .models import Transport, UploadProgress, UploadStage, UploadStatus, UploadTask
from .services import FileValidator, as_upload_source


class UploadPipeline(ABC):
    """
    Base class for the channel and bulk pipelines.

    Subclasses implement ``_execute`` and report progress through
    ``_report``. Errors never escape a run: they are attached to the task
    and emitted as ``upload-error``.

    Events:
        upload-progress     UploadProgress
        upload-started      {'task_id', 'file'}
        upload-completed    {'task_id', 'file', 'result'}
        upload-error        {'task_id', 'file', 'error'}
        upload-cancelled    {'task_id', 'file'}
    """

    transport: Transport = Transport.CHANNEL
    logger_name = 'blobwire.upload'

    def __init__(self, validator: Optional[FileValidator] = None):
        self._validator = validator or FileValidator()
        self._events = EventEmitter(self.logger_name)
        self._logger = get_logger(self.logger_name)
        self._active: Dict[str, Tuple[asyncio.Task, UploadTask]] = {}

    def on(self, event: str, callback: Callable) -> 'UploadPipeline':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'UploadPipeline':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    @property
    def active_upload_count(self) -> int:
        """Number of runs currently in flight."""
        return len(self._active)

    def is_active(self, task_id: str) -> bool:
        return task_id in self._active

    def create_task(self, file: Any, metadata: Optional[Dict[str, Any]] = None) -> UploadTask:
        """Wrap a file in a pending task for this pipeline."""
        return UploadTask(
            id=new_blob_id(),
            source=as_upload_source(file),
            transport=self.transport,
            metadata=dict(metadata or {}),
        )

    def start(self, task: UploadTask) -> asyncio.Task:
        """
        Schedule a run of ``task``.

        Returns:
            The asyncio task executing the run
        """
        if task.id in self._active:
            raise RuntimeError(f"Upload {task.id} is already running")
        run = asyncio.create_task(self.run(task))
        self._active[task.id] = (run, task)

        def done(fut: asyncio.Task, task_id: str = task.id):
            entry = self._active.get(task_id)
            if entry is not None and entry[0] is fut:
                del self._active[task_id]

        run.add_done_callback(done)
        return run

    async def upload(self, file: Any, metadata: Optional[Dict[str, Any]] = None) -> UploadTask:
        """
        Upload one file and wait for the outcome.

        Returns:
            The finished task; inspect ``status`` and ``error``
        """
        task = self.create_task(file, metadata)
        run = self.start(task)
        try:
            await asyncio.wait({run})
        except asyncio.CancelledError:
            self.cancel(task.id)
            raise
        return task

    async def run(self, task: UploadTask) -> UploadTask:
        """Execute one run, attaching any failure to the task."""
        try:
            await self._execute(task)
        except UploadError as e:
            self._fail(task, e)
        except asyncio.CancelledError:
            self._mark_cancelled(task)
            raise
        except Exception as e:
            self._logger.exception(f"Unexpected failure uploading {task.file_name}")
            self._fail(task, UploadError(UploadErrorKind.SERVER_ERROR, str(e) or repr(e), original_error=e))
        return task

    @abstractmethod
    async def _execute(self, task: UploadTask) -> None:
        """Run one upload, reporting progress and completing the task."""

    def cancel(self, task_id: str) -> bool:
        """
        Cancel an in-flight run.

        Returns:
            True if a run was active and has been cancelled
        """
        entry = self._active.pop(task_id, None)
        if entry is None:
            return False
        run, task = entry
        self._mark_cancelled(task)
        run.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight run, returning how many were cancelled."""
        count = 0
        for task_id in list(self._active):
            if self.cancel(task_id):
                count += 1
        return count

    def _report(
        self,
        task: UploadTask,
        stage: UploadStage,
        progress: int,
        status: Optional[UploadStatus] = None,
        bytes_uploaded: Optional[int] = None
    ) -> None:
        task.advance(progress, status)
        self._events.emit('upload-progress', UploadProgress(
            task_id=task.id,
            stage=stage,
            progress=task.progress,
            bytes_uploaded=bytes_uploaded,
            total_bytes=task.file_size,
        ))

    def _complete(self, task: UploadTask, result: Any) -> None:
        task.complete(result)
        self._events.emit('upload-progress', UploadProgress(
            task_id=task.id,
            stage=UploadStage.COMPLETED,
            progress=100,
            bytes_uploaded=task.file_size,
            total_bytes=task.file_size,
        ))
        self._logger.info(f"Upload completed: {task.file_name} ({task.transport.value})")
        self._events.emit('upload-completed', {
            'task_id': task.id,
            'file': task.source,
            'result': result,
        })

    def _fail(self, task: UploadTask, error: UploadError) -> None:
        if task.status == UploadStatus.CANCELLED:
            return
        task.fail(error)
        log = self._logger.info if error.is_validation else self._logger.warning
        log(f"Upload failed: {task.file_name}: [{error.kind.value}] {error.message}")
        self._events.emit('upload-progress', UploadProgress(
            task_id=task.id,
            stage=UploadStage.ERROR,
            progress=task.progress,
            total_bytes=task.file_size,
            error=error,
        ))
        self._events.emit('upload-error', {
            'task_id': task.id,
            'file': task.source,
            'error': error,
        })

    def _mark_cancelled(self, task: UploadTask) -> None:
        if task.cancel():
            self._logger.info(f"Upload cancelled: {task.file_name}")
            self._events.emit('upload-cancelled', {'task_id': task.id, 'file': task.source})
