"""Refresh coordinator: single-flight dispatch and snapshot consistency per source.

The coordinator is the only writer of source state and snapshots. Each
dispatch runs the source's fetcher in its own asyncio task; completion
updates the store, the timestamps and the in-flight flag under one lock
and then publishes the new snapshot on the bus.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import datetime, timezone

from ..exceptions import UpstreamError
from ..fetchers.base import BaseFetcher, FetchContext, FetchResult
from ..sources import FailurePolicy, Source, SourceState, clamp_base_interval, derive_interval
from .bus import PublicationBus
from .snapshots import Snapshot, SnapshotStore, failed, succeeded

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RefreshCoordinator:
    """Decides whether a source may fetch now and records what it fetched.

    Dispatch must happen on the event loop thread; reading snapshots and
    states is safe from any thread.
    """

    def __init__(
        self,
        fetchers: Mapping[Source, BaseFetcher],
        base_interval: float,
        store: SnapshotStore | None = None,
        bus: PublicationBus | None = None,
        policies: Mapping[Source, FailurePolicy] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the coordinator.

        Args:
            fetchers: One fetcher per source to poll
            base_interval: Base polling period in seconds
            store: Snapshot store (created when omitted)
            bus: Publication bus (created when omitted)
            policies: Per-source failure policy overrides (default RETAIN_STALE)
            clock: Source of the current time
        """
        self.fetchers = dict(fetchers)
        self.sources: list[Source] = [source for source in Source if source in self.fetchers]
        self.store = store or SnapshotStore(self.sources)
        self.bus = bus or PublicationBus()
        self.policies = {source: FailurePolicy.RETAIN_STALE for source in self.sources}
        self.policies.update(policies or {})
        self.clock = clock

        self._lock = threading.Lock()
        self._base_interval = clamp_base_interval(base_interval)
        self._states: dict[Source, SourceState] = {
            source: SourceState(source=source, interval=derive_interval(source, base_interval))
            for source in self.sources
        }
        self._tasks: dict[Source, asyncio.Task[None]] = {}

    @property
    def base_interval(self) -> float:
        return self._base_interval

    def state(self, source: Source) -> SourceState:
        """Copy of a source's current state."""
        with self._lock:
            return replace(self._states[source])

    def states(self) -> dict[Source, SourceState]:
        with self._lock:
            return {source: replace(state) for source, state in self._states.items()}

    def in_flight(self, source: Source) -> bool:
        with self._lock:
            return self._states[source].in_flight

    def is_due(self, source: Source, now: datetime | None = None) -> bool:
        with self._lock:
            return self._states[source].is_due(now or self.clock())

    def set_base_interval(self, base_interval: float) -> None:
        """Re-derive every source interval; timestamps are left untouched."""
        with self._lock:
            self._base_interval = clamp_base_interval(base_interval)
            for source, state in self._states.items():
                state.interval = derive_interval(source, base_interval)
        logger.debug(
            "Updated refresh intervals - %s",
            ", ".join(f"{s.value}: {self._states[s].interval:g}s" for s in self.sources),
        )

    def try_dispatch(self, source: Source) -> bool:
        """Start a fetch for ``source`` unless one is already running.

        Args:
            source: Source to fetch

        Returns:
            True if a fetch was started, False if one was already in flight
        """
        with self._lock:
            state = self._states[source]
            if state.in_flight:
                logger.debug("Skipping %s: fetch already in flight", source.value)
                return False
            state.in_flight = True
            state.attempts += 1
            state.last_attempt_at = self.clock()
            context = FetchContext(
                source=source, attempt=state.attempts, requested_at=state.last_attempt_at
            )

        try:
            task = asyncio.get_running_loop().create_task(
                self._run(source, context), name=f"fetch-{source.value}"
            )
        except RuntimeError:
            with self._lock:
                self._states[source].in_flight = False
            raise
        self._tasks[source] = task
        task.add_done_callback(lambda t, s=source: self._forget(s, t))
        logger.debug("Dispatched %s (attempt %d)", source.value, context.attempt)
        return True

    def force_refresh_all(self) -> list[Source]:
        """Dispatch every source now, skipping any already in flight.

        Returns:
            Sources for which a fetch was started
        """
        logger.debug("Refreshing all sources")
        return self.dispatch_many(self.sources)

    def dispatch_many(self, sources: Iterable[Source]) -> list[Source]:
        return [source for source in sources if self.try_dispatch(source)]

    async def _run(self, source: Source, context: FetchContext) -> None:
        fetcher = self.fetchers[source]
        try:
            result: FetchResult = await fetcher.fetch(context)
        except asyncio.CancelledError:
            with self._lock:
                self._states[source].in_flight = False
            raise
        except Exception as e:
            logger.exception("Fetcher for %s raised instead of returning a result", source.value)
            result = FetchResult.failure(UpstreamError(f"Unexpected error: {e}"))
        self._complete(source, result)

    def _forget(self, source: Source, task: asyncio.Task[None]) -> None:
        # A newer dispatch may already have replaced this task
        if self._tasks.get(source) is task:
            del self._tasks[source]

    def _complete(self, source: Source, result: FetchResult) -> Snapshot:
        """Record a finished fetch and publish it."""
        with self._lock:
            now = self.clock()
            state = self._states[source]
            if result.error is None:
                snapshot = succeeded(source, result.value, now)
                state.last_success_at = now
                state.last_error = None
            else:
                snapshot = failed(self.store.get(source), result.error, now, self.policies[source])
                state.last_error = result.error
            self.store.set(snapshot)
            state.in_flight = False

        if result.error is None:
            logger.debug("%s updated successfully", source.value)
        else:
            logger.error("Failed to refresh %s: %r", source.value, result.error)
        self.bus.publish(snapshot)
        return snapshot

    def snapshot(self, source: Source) -> Snapshot:
        return self.store.get(source)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight fetches to finish.

        Args:
            timeout: Seconds to wait (no limit when None)

        Returns:
            True if nothing is left in flight
        """
        tasks = list(self._tasks.values())
        if not tasks:
            return True
        _done, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending
