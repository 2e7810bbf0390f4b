"""Pytest fixtures for blobwire tests."""
import asyncio
import json
from datetime import datetime, timezone

import aiohttp
import pytest

from blobwire.core.blobs import MediaBlob


class FakeWebSocket:
    """In-process stand-in for an aiohttp client websocket."""

    def __init__(self, url: str = 'ws://test/ws'):
        self.url = url
        self.sent = []
        self.closed = False
        self.close_code = None
        self._queue: asyncio.Queue = asyncio.Queue()

    def feed(self, frame) -> None:
        """Deliver a frame from the server; dicts are JSON encoded."""
        text = frame if isinstance(frame, str) else json.dumps(frame)
        self._queue.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, text, None))

    def drop(self, code: int = 1006) -> None:
        """Server side closure."""
        self.closed = True
        self.close_code = code
        self._queue.put_nowait(None)

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, message: bytes = b'') -> bool:
        if self.closed:
            return False
        self.closed = True
        self.close_code = code
        self._queue.put_nowait(None)
        return True

    def sent_frames(self):
        return [json.loads(data) for data in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._queue.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class FakeSocketFactory:
    """Opens FakeWebSockets; ``failures`` attempts are refused first.

    A non-zero ``delay`` makes every open take that many seconds.
    """

    def __init__(self):
        self.sockets = []
        self.urls = []
        self.failures = 0
        self.delay = 0.0

    def open_sockets(self):
        return [ws for ws in self.sockets if not ws.closed]

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        ws = FakeWebSocket(url)
        self.sockets.append(ws)
        return ws


@pytest.fixture
def ws_factory():
    """Socket factory for ConnectionManager tests."""
    return FakeSocketFactory()


@pytest.fixture
def settle():
    """Let scheduled callbacks and tasks run."""
    async def run(rounds: int = 10):
        for _ in range(rounds):
            await asyncio.sleep(0)
    return run


@pytest.fixture
def sample_blob():
    """A persisted blob summary (no payload)."""
    return MediaBlob.from_bytes(
        b'hello world',
        id='0f8fad5b-d9cb-469f-a165-70867728950e',
        mime='text/plain',
        source_client_id='web-client',
        local_path='hello.txt',
        created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    ).without_data()


@pytest.fixture
def png_bytes():
    """A small RGBA PNG image."""
    import io
    from PIL import Image

    img = Image.new('RGBA', (200, 120), (255, 0, 0, 128))
    output = io.BytesIO()
    img.save(output, format='PNG')
    return output.getvalue()
