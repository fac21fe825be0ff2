"""Broadcast channel decoupling poller ticks from event consumers.

Each subscriber owns a bounded buffer with drop-oldest backpressure:
publishing never blocks a poller, and a slow consumer loses its oldest
undelivered events rather than stalling the watermark.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubscriptionClosed(Exception):
    """Raised by :meth:`Subscription.get` once the subscription is closed and drained."""


class Subscription(Generic[T]):
    """A consumer handle on an :class:`EventChannel`.

    Usage::

        sub = engine.subscribe_messages()
        async for message in sub:
            print(message.content)
    """

    def __init__(self, channel: EventChannel[T], capacity: int) -> None:
        self._channel = channel
        self._buffer: deque[T] = deque()
        self._capacity = capacity
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def _push(self, item: T) -> None:
        if self._closed:
            return
        if len(self._buffer) >= self._capacity:
            self._buffer.popleft()
            self.dropped += 1
            logger.debug("Subscription buffer full, dropped oldest event")
        self._buffer.append(item)
        self._ready.set()

    def get_nowait(self) -> T:
        """Pop the oldest buffered event; raise ``asyncio.QueueEmpty`` if none."""
        if not self._buffer:
            raise asyncio.QueueEmpty
        return self._buffer.popleft()

    async def get(self) -> T:
        """Wait for the next event."""
        while not self._buffer:
            if self._closed:
                raise SubscriptionClosed
            self._ready.clear()
            await self._ready.wait()
        return self._buffer.popleft()

    def close(self) -> None:
        """Detach from the channel.  Buffered events can still be drained."""
        if self._closed:
            return
        self._closed = True
        self._channel._detach(self)
        self._ready.set()

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration from None


class EventChannel(Generic[T]):
    """Fan-out of published events to every open subscription."""

    def __init__(self, capacity: int = 256) -> None:
        self._capacity = capacity
        self._subscribers: list[Subscription[T]] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, capacity: int | None = None) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, capacity or self._capacity)
        self._subscribers.append(sub)
        return sub

    def publish(self, item: T) -> int:
        """Buffer *item* for every subscriber; return the subscriber count."""
        for sub in list(self._subscribers):
            sub._push(item)
        return len(self._subscribers)

    def close(self) -> None:
        """Close every subscription."""
        for sub in list(self._subscribers):
            sub.close()

    def _detach(self, sub: Subscription[T]) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
