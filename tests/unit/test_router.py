"""Tests for size based upload routing."""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from blobwire.core.api.config import BulkUploadConfig, ChannelUploadConfig, DEFAULT_SIZE_THRESHOLD, MB
from blobwire.core.api.schemas import UploadResponse
from blobwire.core.exceptions import ConfigurationError, UploadError, UploadErrorKind
from blobwire.core.upload import (
    BulkUploadPipeline,
    ChannelUploadPipeline,
    SmartUploadRouter,
    Transport,
    UploadStatus,
)


@pytest.fixture
def sender():
    mock = Mock()
    mock.is_connected = True
    mock.send = AsyncMock(return_value=True)
    return mock


def make_router(sender, threshold=DEFAULT_SIZE_THRESHOLD):
    channel = ChannelUploadPipeline(sender, ChannelUploadConfig(max_file_size=threshold))
    bulk = BulkUploadPipeline(BulkUploadConfig(min_file_size=threshold))
    return SmartUploadRouter(channel, bulk, threshold=threshold)


def record(router, event):
    events = []
    router.on(event, events.append)
    return events


class TestSelectTransport:
    """Test suite for the routing decision."""

    def test_boundary(self, sender):
        """Test below the threshold is channel, at it is bulk."""
        router = make_router(sender, threshold=1000)

        assert router.select_transport(999) == Transport.CHANNEL
        assert router.select_transport(1000) == Transport.BULK
        assert router.select_transport(1001) == Transport.BULK

    def test_invalid_threshold(self, sender):
        """Test non-positive thresholds are rejected."""
        channel = ChannelUploadPipeline(sender)
        bulk = BulkUploadPipeline()

        with pytest.raises(ConfigurationError):
            SmartUploadRouter(channel, bulk, threshold=0)


class TestSubmit:
    """Test suite for submit and wait."""

    @pytest.mark.asyncio
    async def test_small_file_uses_channel(self, sender):
        """Test a small file completes over the channel."""
        router = make_router(sender)
        created = record(router, 'task-created')
        completed = record(router, 'task-completed')

        task_ids = router.submit([('a.txt', b'hello')])
        tasks = await router.wait(task_ids)

        assert tasks[0].transport == Transport.CHANNEL
        assert tasks[0].status == UploadStatus.COMPLETED
        assert created[0] is tasks[0]
        assert completed[0] is tasks[0]

    @pytest.mark.asyncio
    async def test_large_file_uses_bulk(self, sender, tmp_path):
        """Test a 50 MB file with the default threshold goes over HTTP."""
        path = tmp_path / 'movie.mp4'
        with open(path, 'wb') as f:
            f.truncate(50 * MB)
        router = make_router(sender)
        response = UploadResponse(
            id='0f8fad5b-d9cb-469f-a165-70867728950e',
            sha256='0' * 64,
            size=50 * MB,
            created_at=datetime.now(timezone.utc),
        )
        statuses = []
        progress = record(router, 'task-progress')
        router.on('task-created', lambda task: statuses.append(task.status))
        router.on('task-progress', lambda event: statuses.append(event['task'].status))

        with patch.object(router.bulk, '_post', AsyncMock(return_value=response)):
            task_ids = router.submit([path])
            [task] = await router.wait(task_ids)

        assert task.transport == Transport.BULK
        assert task.status == UploadStatus.COMPLETED
        assert task.result is response
        assert progress[-1]['progress'].progress == 100
        assert statuses[0] == UploadStatus.PENDING
        assert UploadStatus.UPLOADING in statuses
        assert statuses[-1] == UploadStatus.COMPLETED
        sender.send.assert_not_called()

    def test_missing_path_raises(self, sender):
        """Test unknown paths are rejected at submission."""
        router = make_router(sender)

        with pytest.raises(UploadError) as exc_info:
            router.submit(['/does/not/exist.txt'])

        assert exc_info.value.kind == UploadErrorKind.INVALID_FILE
        assert router.tasks == []

    @pytest.mark.asyncio
    async def test_metadata_applies_to_every_file(self, sender):
        """Test shared metadata."""
        router = make_router(sender)

        task_ids = router.submit([('a.txt', b'a'), ('b.txt', b'b')], metadata={'batch': 1})
        await router.wait(task_ids)

        blobs = [call.args[0].data.blob for call in sender.send.call_args_list]
        assert [b.metadata['batch'] for b in blobs] == [1, 1]


class TestRetryAndCancel:
    """Test suite for retry, cancel and bookkeeping."""

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, sender):
        """Test a failed task can be retried on the same transport."""
        sender.send.side_effect = [False, True]
        router = make_router(sender)
        retried = record(router, 'task-retried')

        [task_id] = router.submit([('a.txt', b'hello')])
        [task] = await router.wait([task_id])
        assert task.status == UploadStatus.ERROR
        assert task.error.kind == UploadErrorKind.NOT_CONNECTED

        assert router.retry(task_id) is True
        await router.wait([task_id])

        assert task.status == UploadStatus.COMPLETED
        assert task.attempt == 2
        assert task.error is None
        assert retried == [task]

    @pytest.mark.asyncio
    async def test_retry_completed_task(self, sender):
        """Test completed tasks cannot be retried."""
        router = make_router(sender)
        [task_id] = router.submit([('a.txt', b'hello')])
        await router.wait()

        assert router.retry(task_id) is False
        assert router.retry('missing') is False

    @pytest.mark.asyncio
    async def test_cancel(self, sender):
        """Test cancelling a running task."""
        release = asyncio.Event()

        async def slow_send(message):
            await release.wait()
            return True

        sender.send = slow_send
        router = make_router(sender)
        cancelled = record(router, 'task-cancelled')

        [task_id] = router.submit([('a.txt', b'hello')])
        await asyncio.sleep(0.01)

        assert router.cancel(task_id) is True
        [task] = await router.wait([task_id])

        assert task.status == UploadStatus.CANCELLED
        assert cancelled == [task]
        assert router.cancel(task_id) is False
        stats = router.stats()
        assert stats['errors'] == 1
        assert stats['cancelled'] == 1

        assert router.retry(task_id) is True
        release.set()
        await router.wait([task_id])
        assert task.status == UploadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stats_and_clear_completed(self, sender):
        """Test counts and clearing terminal tasks."""
        router = make_router(sender)
        cleared = record(router, 'tasks-cleared')

        router.submit([('a.txt', b'a'), ('empty.txt', b'')])
        await router.wait()

        stats = router.stats()
        assert stats['total'] == 2
        assert stats['completed'] == 1
        assert stats['errors'] == 1

        assert router.clear_completed() == 2
        assert router.tasks == []
        assert cleared == [{'removed': 2}]

    @pytest.mark.asyncio
    async def test_close_cancels_running(self, sender):
        """Test close stops every run."""
        release = asyncio.Event()

        async def slow_send(message):
            await release.wait()
            return True

        sender.send = slow_send
        router = make_router(sender)
        router.submit([('a.txt', b'a'), ('b.txt', b'b')])
        await asyncio.sleep(0.01)

        await router.close()

        assert router.stats()['cancelled'] == 2
