"""Broadcast hub: single-channel publish/subscribe with in-process listeners."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("sqlite_mcp.eventbus")

Deliver = Callable[[Any], None]


@dataclass(frozen=True)
class Listener:
    listener_id: int
    deliver: Deliver = field(compare=False, repr=False)


class BroadcastHub:
    """Fan out every published message to every currently attached listener.

    Delivery is synchronous, in attachment order, fire-and-forget. Nothing is
    buffered by the hub: a listener attached after a publish never sees it.
    """

    def __init__(self) -> None:
        self._listeners: dict[int, Listener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def attach(self, deliver: Deliver) -> Listener:
        with self._lock:
            listener = Listener(listener_id=next(self._ids), deliver=deliver)
            self._listeners[listener.listener_id] = listener
        logger.debug("listener attached", extra={"extra": {"listener_id": listener.listener_id}})
        return listener

    def detach(self, listener: Listener) -> None:
        with self._lock:
            removed = self._listeners.pop(listener.listener_id, None)
        if removed is not None:
            logger.debug("listener detached", extra={"extra": {"listener_id": listener.listener_id}})

    def publish(self, message: Any) -> int:
        """Deliver ``message`` to the attached listeners; returns the delivery count."""
        with self._lock:
            targets = list(self._listeners.values())
        delivered = 0
        for listener in targets:
            try:
                listener.deliver(message)
            except Exception:
                logger.warning(
                    "listener delivery failed, detaching",
                    exc_info=True,
                    extra={"extra": {"listener_id": listener.listener_id}},
                )
                self.detach(listener)
                continue
            delivered += 1
        return delivered

    def subscribe(self) -> Subscription:
        """Attach a queue-backed listener bound to the running event loop."""
        return Subscription(self, asyncio.get_running_loop())


class Subscription:
    """Async view over one listener; detaches on close or context exit."""

    def __init__(self, hub: BroadcastHub, loop: asyncio.AbstractEventLoop):
        self._hub = hub
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.listener = hub.attach(lambda message: loop.call_soon_threadsafe(self._queue.put_nowait, message))
        self.closed = False

    async def next(self, timeout: float | None = None) -> Any:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._hub.detach(self.listener)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        return await self.next()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
