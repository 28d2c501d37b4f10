"""
MODULE OVERVIEW:
The response handle a long-poll request parks in the broadcaster's pool.

WHAT IS HAPPENING HERE:
An HTTP route cannot hand the broadcaster its raw Response: the body is not known
yet. Instead it creates a `PendingResponse`, gives it to the broadcaster, and then
awaits it. The handle makes exactly one state transition in its life:

    open -> finished   (someone called `json(value)`, the route returns that value)
    open -> closed     (the client went away, or the body could not be delivered)

Listeners registered for "finish" or "close" fire once, on that transition.
Anything after it is either an error (`json` on a completed handle) or a no-op
(`close` on a completed handle).

`json()` serializes right away. The bytes the route sends are produced here, so a
payload that cannot be encoded fails the delivery instead of the HTTP response.
The handle remembers the event loop it was created on; completing it from
another thread hands the wake-up to that loop.
"""

import asyncio
import threading
from typing import Any, Callable, Dict, List
from loguru import logger

from pollcast.shared.models import LatestMessage

Listener = Callable[["PendingResponse"], None]

OPEN = "open"
FINISHED = "finished"
CLOSED = "closed"


class HandleClosedError(RuntimeError):
    """Raised when writing to a handle that already finished or closed."""


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class PendingResponse:
    def __init__(self, client_id: str):
        self.client_id = client_id
        self.state = OPEN
        self.body: LatestMessage | None = None
        self.content: str | None = None
        self.error: str | None = None
        self._loop = _running_loop()
        self._lock = threading.Lock()
        self._done = asyncio.Event()
        self._listeners: Dict[str, List[Listener]] = {"finish": [], "close": []}

    @property
    def done(self) -> bool:
        return self.state != OPEN

    @property
    def closed(self) -> bool:
        return self.state == CLOSED

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def json(self, value: Any) -> None:
        """Serialize the response body and complete the exchange."""
        if self.done:
            raise HandleClosedError(f"client_id={self.client_id} handle already {self.state}")
        content = LatestMessage.model_validate(value).model_dump_json()
        with self._lock:
            if self.done:
                raise HandleClosedError(f"client_id={self.client_id} handle already {self.state}")
            self.content = content
            # Our own copy, decoded from exactly what goes on the wire
            self.body = LatestMessage.model_validate_json(content)
            self.state = FINISHED
        self._fire("finish")

    def close(self) -> None:
        """Client-initiated close. Safe to call more than once."""
        with self._lock:
            if self.done:
                return
            self.state = CLOSED
        self._fire("close")

    def fail(self, reason: str) -> None:
        """Close because the body could not be delivered, not because the client left."""
        with self._lock:
            if self.done:
                return
            self.error = reason
            self.state = CLOSED
        self._fire("close")

    def _fire(self, event: str) -> None:
        self._wake()
        # Copy: listeners usually deregister themselves while we iterate
        for listener in list(self._listeners[event]):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"client_id={self.client_id} event={event} reason='listener failed: {e}'")

    def _wake(self) -> None:
        if self._loop is None or self._loop is _running_loop():
            self._done.set()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._done.set)

    async def wait(self) -> LatestMessage:
        """Suspend until the handle completes. Raises HandleClosedError if it was closed instead."""
        await self._done.wait()
        if self.body is None:
            raise HandleClosedError(f"client_id={self.client_id} closed before delivery")
        return self.body

    def __repr__(self) -> str:
        return f"PendingResponse(client_id={self.client_id!r}, state={self.state!r})"
