"""Event emitter implementation using Observer Pattern."""
import asyncio
import inspect
from typing import Dict, List, Callable, Optional, Set

from ...logging import get_logger


class EventEmitter:
    """
    Event emitter using Observer Pattern.

    Listeners may be plain callables or coroutine functions. Coroutine
    listeners are scheduled on the running loop and tracked until they
    finish, so ``drain()`` can wait for them.

    A listener that raises is logged and does not stop the remaining
    listeners from being called.
    """

    def __init__(self, logger_name: str = 'blobwire.events'):
        """Initializes event emitter."""
        self._events: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Future] = set()
        self._logger = get_logger(logger_name)

    def on(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers an event handler."""
        if event not in self._events:
            self._events[event] = []
        self._events[event].append(callback)
        return self

    def once(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers a handler that is removed after its first call."""
        def wrapper(*args, **kwargs):
            self.off(event, wrapper)
            return callback(*args, **kwargs)

        return self.on(event, wrapper)

    def emit(self, event: str, *args, **kwargs) -> int:
        """
        Emits an event.

        Returns:
            Number of listeners called
        """
        listeners = list(self._events.get(event, ()))
        for callback in listeners:
            try:
                result = callback(*args, **kwargs)
            except Exception:
                self._logger.exception(f"Listener for '{event}' failed")
                continue
            if inspect.isawaitable(result):
                self._track(event, result)
        return len(listeners)

    def _track(self, event: str, awaitable) -> None:
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)

        def done(fut: asyncio.Future):
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                self._logger.error(
                    f"Async listener for '{event}' failed: {fut.exception()!r}"
                )

        future.add_done_callback(done)

    def off(self, event: str, callback: Optional[Callable] = None) -> 'EventEmitter':
        """Removes an event handler."""
        if event not in self._events:
            return self

        if callback is None:
            del self._events[event]
        else:
            self._events[event] = [cb for cb in self._events[event] if cb != callback]

        return self

    def remove_all_listeners(self) -> None:
        """Removes every handler for every event."""
        self._events.clear()

    def listener_count(self, event: str) -> int:
        """Returns the number of handlers registered for an event."""
        return len(self._events.get(event, ()))

    async def drain(self) -> None:
        """Waits for all scheduled coroutine listeners to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        """Cancels scheduled coroutine listeners that have not finished."""
        for future in list(self._pending):
            future.cancel()
