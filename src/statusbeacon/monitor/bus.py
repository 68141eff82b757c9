"""Publication bus fanning snapshots out to independent subscribers.

Every subscription owns a bounded buffer. Publishing never waits on a
subscriber: when a buffer is full its oldest pending snapshot is dropped,
so a slow consumer only ever loses its own backlog.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable
from typing import Any

from ..sources import Source
from .snapshots import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 16

_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised when reading from a closed subscription with nothing left to read."""

    pass


class Subscription:
    """A consumer-held stream of snapshot updates.

    Iterate it with ``async for`` or call ``get()``. Closing it (directly,
    via the bus, or by leaving its context manager) ends iteration once the
    buffered snapshots are consumed.
    """

    def __init__(
        self,
        bus: "PublicationBus",
        sources: frozenset[Source],
        maxsize: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._bus = bus
        self.sources = sources
        self.maxsize = maxsize
        self.dropped = 0
        self._closed = False
        self._lock = threading.Lock()
        # Bound is enforced by hand so the close marker always fits
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, source: Source) -> bool:
        return source in self.sources

    def pending(self) -> int:
        """Number of snapshots waiting to be read."""
        size = self._queue.qsize()
        return max(0, size - 1) if self._closed else size

    def _deliver(self, snapshot: Snapshot) -> None:
        """Hand a snapshot to this subscription from any thread."""
        if self._closed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is None or running is self._loop:
            self._offer(snapshot)
        else:
            self._loop.call_soon_threadsafe(self._offer, snapshot)

    def _offer(self, snapshot: Snapshot) -> None:
        # Loopless subscriptions are fed from publisher threads directly
        with self._lock:
            if self._closed:
                return
            if self._queue.qsize() >= self.maxsize:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass
            self._queue.put_nowait(snapshot)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._loop is None or self._loop.is_closed():
            with self._lock:
                self._queue.put_nowait(_CLOSED)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(_CLOSED)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)

    def close(self) -> None:
        """Stop receiving updates."""
        self._bus.unsubscribe(self)

    async def get(self) -> Snapshot:
        """Wait for the next snapshot.

        Raises:
            SubscriptionClosed: If the subscription is closed and drained
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter
            self._queue.put_nowait(_CLOSED)
            raise SubscriptionClosed("Subscription closed")
        return item

    def get_nowait(self) -> Snapshot | None:
        """Return the next buffered snapshot, or None when nothing is pending."""
        with self._lock:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration from None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class PublicationBus:
    """Multi-consumer broadcast of snapshot updates."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(
        self,
        sources: Iterable[Source] | None = None,
        maxsize: int = DEFAULT_BUFFER_SIZE,
    ) -> Subscription:
        """Start observing one or more sources.

        Args:
            sources: Sources to receive (all sources when omitted)
            maxsize: Buffered snapshots kept before the oldest is dropped

        Returns:
            A new subscription bound to the calling event loop, if any
        """
        selected = frozenset(sources) if sources is not None else frozenset(Source)
        subscription = Subscription(self, selected, maxsize=maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        logger.debug(
            "Subscribed to %s", ", ".join(sorted(source.value for source in selected))
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
        subscription._mark_closed()

    def publish(self, snapshot: Snapshot) -> int:
        """Deliver a snapshot to every interested subscriber without blocking.

        Args:
            snapshot: The snapshot to broadcast

        Returns:
            Number of subscriptions the snapshot was handed to
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscription in subscribers:
            if not subscription.accepts(snapshot.source):
                continue
            try:
                subscription._deliver(snapshot)
                delivered += 1
            except RuntimeError as e:
                # The subscriber's event loop is gone
                logger.warning("Dropping subscription with closed event loop: %s", e)
                self.unsubscribe(subscription)
        return delivered

    def close(self) -> None:
        """Close every subscription."""
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscription in subscribers:
            subscription._mark_closed()
