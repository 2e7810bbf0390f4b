"""
Realtime channel connection manager.

Owns one logical WebSocket connection: lifecycle, automatic reconnection,
heartbeat and inbound frame dispatch. Everything is reported through events
so any number of listeners can observe the channel.

Events:
    status-change       ConnectionStatusEvent
    open                {'url'}
    connection-closed   {'code', 'reason'}
    connection-error    {'error', 'url'}
    reconnecting        {'attempt', 'max_attempts', 'delay'}
    reconnect-failed    {'attempts'}
    message             {'message', 'raw'}
    message-sent        {'message'}
    welcome             {'connection_id', 'user_id', 'message'}
    presence            {'connected', 'user_count'}
    heartbeat-ack       {'timestamp'}
    heartbeat-timeout   {'timeout'}
    server-error        {'error', 'code'}
    validation-error    {'error', 'direction', 'raw'}
    error               {'error', 'kind'}
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Set

import aiohttp

from ..api.config import ConnectionConfig, validate_url
from ..api.events import EventEmitter
from ..api.retry import ReconnectStrategy
from ..exceptions import ConfigurationError, ConnectionFailedError
from ..logging import get_logger
from ..protocol import (
    BlobData,
    Error,
    HeartbeatAck,
    PresenceUpdate,
    Welcome,
    encode,
    heartbeat,
    parse_client_frame,
    parse_server_frame,
)
from .status import ConnectionStatus, ConnectionStatusEvent


NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
HEARTBEAT_TIMEOUT_CLOSURE = 4000

WebSocketFactory = Callable[[str], Awaitable[Any]]


class ConnectionManager:
    """
    Manages the realtime channel.

    The channel socket is produced by ``ws_factory`` (an ``aiohttp``
    ``ws_connect`` by default), which makes the manager testable with an
    in-process fake.

    Example:
        >>> manager = ConnectionManager(ConnectionConfig(url="ws://localhost:3000/ws"))
        >>> manager.on('message', lambda event: print(event['message']))
        >>> await manager.connect()
        >>> await manager.send(list_blobs(limit=10))
        True
    """

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        ws_factory: Optional[WebSocketFactory] = None,
        reconnect_strategy: Optional[ReconnectStrategy] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize connection manager.

        Args:
            config: Channel configuration
            ws_factory: Coroutine function opening a socket for a URL
            reconnect_strategy: Overrides the strategy built from config
            session: Optional shared aiohttp session

        Raises:
            ConfigurationError: If the configuration is malformed
        """
        self._config = config or ConnectionConfig()
        self._config.validate()
        self._url = self._config.url
        self._ws_factory = ws_factory or self._open_aiohttp
        self._strategy = reconnect_strategy or self._config.reconnect.create_strategy()
        self._auto_reconnect = self._config.reconnect.enabled
        self._session = session
        self._owns_session = session is None

        self._status = ConnectionStatus.DISCONNECTED
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._ack_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._opening: Optional[asyncio.Task] = None
        self._generation = 0
        self._background: Set[asyncio.Future] = set()
        self._reconnect_attempts = 0
        self._forced_close_code: Optional[int] = None

        self._connection_id = ''
        self._user_id: Optional[str] = None
        self._user_count = 0

        self._events = EventEmitter('blobwire.connection')
        self._logger = get_logger('blobwire.connection')

    # Events

    def on(self, event: str, callback: Callable) -> 'ConnectionManager':
        """Register an event handler."""
        self._events.on(event, callback)
        return self

    def once(self, event: str, callback: Callable) -> 'ConnectionManager':
        self._events.once(event, callback)
        return self

    def off(self, event: str, callback: Optional[Callable] = None) -> 'ConnectionManager':
        """Remove an event handler."""
        self._events.off(event, callback)
        return self

    # State

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return (
            self._status == ConnectionStatus.CONNECTED
            and self._ws is not None
            and not self._ws.closed
        )

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def user_count(self) -> int:
        return self._user_count

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def auto_reconnect(self) -> bool:
        return self._auto_reconnect

    async def __aenter__(self) -> 'ConnectionManager':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Lifecycle

    async def connect(self, url: Optional[str] = None) -> None:
        """
        Open the channel.

        Returns immediately when already connected. A failure of this
        explicit attempt is raised; reconnection attempts scheduled after
        it are not. A call made while another explicit attempt is in flight
        waits for that attempt; a pending reconnection attempt is cancelled.

        Args:
            url: Channel URL, overriding the configured one

        Raises:
            ConfigurationError: If no valid URL is known
            ConnectionFailedError: If the socket could not be opened
        """
        if url is not None:
            validate_url(url, ('ws', 'wss'))
            self._url = url
        if self.is_connected:
            return
        if not self._url:
            raise ConfigurationError("No channel URL configured")

        self._auto_reconnect = self._config.reconnect.enabled
        self._cancel_reconnect()
        if self._opening is None or self._opening.done():
            self._opening = asyncio.create_task(self._open(explicit=True))
        await asyncio.shield(self._opening)

    async def disconnect(self) -> None:
        """Close the channel normally and stop reconnecting."""
        self._auto_reconnect = False
        self._generation += 1
        self._cancel_timers()

        ws = self._ws
        reader = self._reader_task
        if ws is not None:
            self._forced_close_code = NORMAL_CLOSURE
            await self._close_quietly(ws)

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if ws is not None and ws is self._ws:
            self._on_closed(ws, NORMAL_CLOSURE, 'Manual disconnect')

        self._set_status(ConnectionStatus.DISCONNECTED)

    async def close(self) -> None:
        """Disconnect and release the HTTP session if owned."""
        await self.disconnect()
        for future in list(self._background):
            future.cancel()
        self._events.cancel_pending()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def destroy(self) -> None:
        """Close and drop every listener."""
        await self.close()
        self._events.remove_all_listeners()

    # Sending

    async def send(self, message) -> bool:
        """
        Validate and send a client message.

        Never raises. Not being connected or a socket failure emits
        ``error``; a message that fails validation emits
        ``validation-error``.

        Args:
            message: A client message model or an equivalent dict

        Returns:
            True if the frame was handed to the socket
        """
        ws = self._ws
        if not self.is_connected:
            self._logger.debug("Send rejected: channel not connected")
            self._events.emit('error', {
                'error': 'Cannot send message: not connected',
                'kind': 'transport',
            })
            return False

        result = parse_client_frame(message)
        if not result.ok:
            self._logger.warning(f"Outbound message rejected: {result.error}")
            self._events.emit('validation-error', {
                'error': result.error,
                'direction': 'outbound',
                'raw': message,
            })
            return False

        try:
            await ws.send_str(encode(result.message))
        except (ConnectionError, RuntimeError, aiohttp.ClientError) as e:
            self._logger.warning(f"Send failed: {e}")
            self._events.emit('error', {'error': f"Send error: {e}", 'kind': 'transport'})
            return False

        self._events.emit('message-sent', {'message': result.message})
        return True

    async def ping(self) -> bool:
        """Send a heartbeat and arm the ack timer when configured."""
        sent = await self.send(heartbeat())
        if sent:
            self._arm_ack_timer()
        return sent

    # Internals

    async def _open_aiohttp(self, url: str):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        ssl_option = self._config.ssl.create_ssl_context() if url.startswith('wss://') else True
        return await self._session.ws_connect(
            url,
            headers=self._config.headers or None,
            ssl=ssl_option,
            autoping=True,
        )

    async def _open(self, explicit: bool) -> bool:
        generation = self._generation
        self._set_status(ConnectionStatus.CONNECTING)
        self._logger.info(f"Connecting to {self._url}")

        try:
            ws = await asyncio.wait_for(
                self._ws_factory(self._url),
                timeout=self._config.open_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.warning(f"Connection attempt to {self._url} failed: {e!r}")
            self._events.emit('connection-error', {'error': e, 'url': self._url})
            if generation == self._generation:
                self._set_status(ConnectionStatus.ERROR)
                self._schedule_reconnect()
            if explicit:
                raise ConnectionFailedError(
                    f"Could not connect to {self._url}: {e}", url=self._url
                ) from e
            return False

        if generation != self._generation:
            # disconnect() ran while the socket was opening
            self._logger.debug(f"Discarding channel to {self._url} opened after disconnect")
            await self._close_quietly(ws)
            if explicit:
                raise ConnectionFailedError(
                    f"Connection to {self._url} aborted by disconnect", url=self._url
                )
            return False

        self._ws = ws
        self._forced_close_code = None
        self._reconnect_attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        self._logger.info(f"Connected to {self._url}")
        self._start_heartbeat()
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._events.emit('open', {'url': self._url})
        return True

    async def _read_loop(self, ws) -> None:
        error = None
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = msg.data
                    break
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, ConnectionError, asyncio.TimeoutError) as e:
            error = e

        if error is not None:
            self._logger.warning(f"Channel error: {error!r}")
            self._events.emit('connection-error', {'error': error, 'url': self._url})
            if not ws.closed:
                try:
                    await ws.close()
                except (aiohttp.ClientError, ConnectionError):
                    pass

        code = self._forced_close_code or getattr(ws, 'close_code', None)
        self._on_closed(ws, code, '')

    def _handle_frame(self, raw) -> None:
        result = parse_server_frame(raw)
        if not result.ok:
            self._logger.warning(f"Dropping invalid frame: {result.error}")
            self._events.emit('validation-error', {
                'error': result.error,
                'direction': 'inbound',
                'raw': raw,
            })
            return

        message = result.message
        if isinstance(message, Welcome):
            self._connection_id = message.data.connection_id
            self._user_id = message.data.user_id
            self._events.emit('welcome', {
                'connection_id': self._connection_id,
                'user_id': self._user_id,
                'message': message.data.message,
            })
        elif isinstance(message, PresenceUpdate):
            self._user_count = message.data.user_count
            self._events.emit('presence', {
                'connected': message.data.connected,
                'user_count': self._user_count,
            })
        elif isinstance(message, HeartbeatAck):
            self._disarm_ack_timer()
            self._events.emit('heartbeat-ack', {'timestamp': time.time()})
        elif isinstance(message, Error):
            self._logger.warning(f"Server error: {message.data.message}")
            self._events.emit('server-error', {
                'error': message.data.message,
                'code': message.data.code,
            })
        elif isinstance(message, BlobData):
            self._logger.debug(f"Blob data received: {message.data.id} ({message.data.size} bytes)")

        self._events.emit('message', {'message': message, 'raw': raw})

    def _on_closed(self, ws, code: Optional[int], reason: str) -> None:
        if ws is not self._ws:
            return
        self._ws = None
        self._reader_task = None
        self._stop_heartbeat()

        code = code if code is not None else ABNORMAL_CLOSURE
        self._logger.info(f"Channel closed (code {code})")
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._events.emit('connection-closed', {'code': code, 'reason': reason})

        if code != NORMAL_CLOSURE:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self._auto_reconnect:
            return
        if self._reconnect_task is not None and self._reconnect_task is not asyncio.current_task():
            return
        if not self._strategy.should_retry(self._reconnect_attempts):
            self._logger.warning(
                f"Giving up after {self._reconnect_attempts} reconnect attempt(s)"
            )
            self._events.emit('reconnect-failed', {'attempts': self._reconnect_attempts})
            return

        self._reconnect_attempts += 1
        delay = self._strategy.delay(self._reconnect_attempts)
        self._logger.info(
            f"Reconnecting in {delay:.2f}s (attempt {self._reconnect_attempts}"
            f"/{self._strategy.max_attempts or 'unlimited'})"
        )
        self._events.emit('reconnecting', {
            'attempt': self._reconnect_attempts,
            'max_attempts': self._strategy.max_attempts,
            'delay': delay,
        })
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        # Stays registered until the open finishes so disconnect() can cancel it
        try:
            await asyncio.sleep(delay)
            if self._auto_reconnect and not self.is_connected:
                await self._open(explicit=False)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        if self._config.heartbeat.interval > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def _heartbeat_loop(self) -> None:
        interval = self._config.heartbeat.interval
        while True:
            await asyncio.sleep(interval)
            if self.is_connected:
                await self.ping()

    def _arm_ack_timer(self) -> None:
        timeout = self._config.heartbeat.ack_timeout
        if timeout is None or self._ack_timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._ack_timer = loop.call_later(timeout, self._on_ack_timeout)

    def _disarm_ack_timer(self) -> None:
        if self._ack_timer is not None:
            self._ack_timer.cancel()
            self._ack_timer = None

    def _on_ack_timeout(self) -> None:
        self._ack_timer = None
        ws = self._ws
        if ws is None or ws.closed:
            return
        timeout = self._config.heartbeat.ack_timeout
        self._logger.warning(f"No heartbeat ack within {timeout}s, closing channel")
        self._events.emit('heartbeat-timeout', {'timeout': timeout})
        self._forced_close_code = HEARTBEAT_TIMEOUT_CLOSURE
        future = asyncio.ensure_future(
            ws.close(code=HEARTBEAT_TIMEOUT_CLOSURE, message=b'Heartbeat timeout')
        )
        self._background.add(future)
        future.add_done_callback(self._background.discard)

    async def _close_quietly(self, ws) -> None:
        if ws.closed:
            return
        try:
            await ws.close(code=NORMAL_CLOSURE, message=b'Manual disconnect')
        except (aiohttp.ClientError, ConnectionError) as e:
            self._logger.debug(f"Error while closing channel: {e}")

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            if self._heartbeat_task is not asyncio.current_task():
                self._heartbeat_task.cancel()
            self._heartbeat_task = None
        self._disarm_ack_timer()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _cancel_timers(self) -> None:
        """Heartbeat, ack and reconnect timers always go together."""
        self._stop_heartbeat()
        self._cancel_reconnect()

    def _set_status(self, status: ConnectionStatus) -> None:
        if self._status == status:
            return
        previous = self._status
        self._status = status
        self._events.emit('status-change', ConnectionStatusEvent(
            status=status,
            user_count=self._user_count,
            connection_id=self._connection_id,
            previous=previous,
        ))
