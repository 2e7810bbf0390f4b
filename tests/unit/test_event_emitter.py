"""Tests for EventEmitter."""
import asyncio

import pytest

from blobwire.core.api.events import EventEmitter


class TestEventEmitter:
    """Test suite for EventEmitter."""

    def test_on_and_emit(self):
        """Test listeners receive payloads in registration order."""
        emitter = EventEmitter()
        calls = []
        emitter.on('x', lambda v: calls.append(('a', v)))
        emitter.on('x', lambda v: calls.append(('b', v)))

        assert emitter.emit('x', 1) == 2
        assert calls == [('a', 1), ('b', 1)]

    def test_once(self):
        """Test once listeners fire a single time."""
        emitter = EventEmitter()
        calls = []
        emitter.once('x', calls.append)

        emitter.emit('x', 1)
        emitter.emit('x', 2)

        assert calls == [1]
        assert emitter.listener_count('x') == 0

    def test_off(self):
        """Test removing one or all listeners."""
        emitter = EventEmitter()
        first, second = [], []
        emitter.on('x', first.append)
        emitter.on('x', second.append)

        emitter.off('x', first.append)
        emitter.emit('x', 1)
        emitter.off('x')
        emitter.emit('x', 2)

        assert first == []
        assert second == [1]

    def test_failing_listener_does_not_stop_others(self):
        """Test isolation between listeners."""
        emitter = EventEmitter()
        calls = []

        def broken(value):
            raise ValueError("boom")

        emitter.on('x', broken)
        emitter.on('x', calls.append)

        emitter.emit('x', 1)

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_async_listener(self):
        """Test coroutine listeners are scheduled and drained."""
        emitter = EventEmitter()
        calls = []

        async def listener(value):
            await asyncio.sleep(0)
            calls.append(value)

        emitter.on('x', listener)
        emitter.emit('x', 1)
        assert calls == []

        await emitter.drain()

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_cancel_pending(self):
        """Test unfinished coroutine listeners can be cancelled."""
        emitter = EventEmitter()
        done = []

        async def listener():
            await asyncio.sleep(10)
            done.append(True)

        emitter.on('x', listener)
        emitter.emit('x')
        emitter.cancel_pending()
        await emitter.drain()

        assert done == []
