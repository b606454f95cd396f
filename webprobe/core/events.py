"""
Event Channels
==============

Publish/subscribe channels with bounded per-subscriber buffers.

Each subscriber gets its own buffer. Items are delivered to an optional
push callback and kept in the buffer for pull consumers; when the buffer is
full the oldest item is dropped and counted, so a slow consumer never
blocks a publisher.

Usage:
    channel: EventChannel[TelemetryEvent] = EventChannel("events")

    sub = channel.subscribe(callback=print, maxsize=100)
    channel.publish(event)

    pending = sub.drain()
    sub.unsubscribe()
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger("webprobe.core.events")

T = TypeVar("T")

DEFAULT_BUFFER_SIZE = 1000


class Subscription(Generic[T]):
    """Handle returned by :meth:`EventChannel.subscribe`."""

    def __init__(
        self,
        channel: EventChannel[T],
        callback: Callable[[T], None] | None = None,
        maxsize: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.callback = callback
        self.maxsize = maxsize
        self.dropped = 0
        self.delivered = 0
        self._channel = channel
        self._buffer: deque[T] = deque(maxlen=maxsize)
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def _deliver(self, item: T) -> None:
        with self._lock:
            if len(self._buffer) == self.maxsize:
                self.dropped += 1
            self._buffer.append(item)
            self.delivered += 1

        if self.callback is not None:
            try:
                self.callback(item)
            except Exception as e:
                logger.error(f"Error in subscriber {self.id} on {self._channel.name}: {e}")

    def drain(self) -> list[T]:
        """Return and clear everything buffered so far."""
        with self._lock:
            items = list(self._buffer)
            self._buffer.clear()
        return items

    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def unsubscribe(self) -> bool:
        if not self._active:
            return False
        self._active = False
        return self._channel.unsubscribe(self.id)

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class EventChannel(Generic[T]):
    """A named fan-out channel."""

    def __init__(self, name: str, default_maxsize: int = DEFAULT_BUFFER_SIZE) -> None:
        self.name = name
        self.default_maxsize = default_maxsize
        self._subscribers: dict[str, Subscription[T]] = {}
        self._lock = threading.RLock()

    def subscribe(
        self,
        callback: Callable[[T], None] | None = None,
        maxsize: int | None = None,
    ) -> Subscription[T]:
        subscription = Subscription(self, callback, maxsize or self.default_maxsize)
        with self._lock:
            self._subscribers[subscription.id] = subscription
        logger.debug(f"Subscribed {subscription.id} to {self.name}")
        return subscription

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            removed = self._subscribers.pop(subscription_id, None)
        if removed is not None:
            removed._active = False
            logger.debug(f"Unsubscribed {subscription_id} from {self.name}")
            return True
        return False

    def publish(self, item: T) -> int:
        """Deliver ``item`` to every subscriber; returns the subscriber count."""
        with self._lock:
            subscribers = list(self._subscribers.values())

        for subscription in subscribers:
            subscription._deliver(item)
        return len(subscribers)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscription in subscribers:
            subscription._active = False
