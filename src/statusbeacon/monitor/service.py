"""Monitor service wiring fetchers, coordinator, scheduler and bus together.

The service is the host-facing entry point:
- Builds one fetcher per source from Settings
- Starts and stops the poll scheduler
- Exposes snapshots and subscriptions to presentation layers
- Accepts refresh and interval requests from other threads

Usage:
    service = MonitorService.from_settings(settings)
    await service.run()          # until SIGINT/SIGTERM or stop()
"""

import asyncio
import logging
import signal
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..config import Settings
from ..fetchers import BaseFetcher, build_fetchers
from ..sources import FailurePolicy, Source
from .bus import DEFAULT_BUFFER_SIZE, PublicationBus, Subscription
from .coordinator import Clock, RefreshCoordinator, utc_now
from .scheduler import DEFAULT_TICK_SECONDS, PollScheduler, SchedulerState
from .snapshots import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class MonitorInfo:
    """Summary of the monitor state."""

    state: SchedulerState
    base_interval: float
    started_at: datetime | None
    in_flight: list[Source]
    subscribers: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.state.value,
            "base_interval": self.base_interval,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "in_flight": [source.value for source in self.in_flight],
            "subscribers": self.subscribers,
        }


class MonitorService:
    """Owns the polling pipeline for the lifetime of the process."""

    def __init__(
        self,
        fetchers: Mapping[Source, BaseFetcher],
        base_interval: float,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        policies: Mapping[Source, FailurePolicy] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the service.

        Args:
            fetchers: One fetcher per source to poll
            base_interval: Base polling period in seconds
            tick_seconds: Scheduler tick granularity
            policies: Per-source failure policy overrides
            clock: Source of the current time
        """
        self.bus = PublicationBus()
        self.store = SnapshotStore([source for source in Source if source in fetchers])
        self.coordinator = RefreshCoordinator(
            fetchers,
            base_interval,
            store=self.store,
            bus=self.bus,
            policies=policies,
            clock=clock,
        )
        self.scheduler = PollScheduler(self.coordinator, tick_seconds=tick_seconds)
        self.started_at: datetime | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_event = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorService":
        """Create a service polling every source configured in settings."""
        return cls(
            build_fetchers(settings),
            settings.base_interval,
            tick_seconds=settings.tick_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    async def start(self, base_interval: float | None = None) -> None:
        """Start polling on the running event loop.

        Args:
            base_interval: Base interval override in seconds
        """
        self._loop = asyncio.get_running_loop()
        self._shutdown_event.clear()
        self.started_at = self.coordinator.clock()
        await self.scheduler.start(base_interval)

    def stop(self) -> None:
        """Stop polling. Safe to call from any thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed() and not self._on_loop():
            loop.call_soon_threadsafe(self.stop)
            return
        self.scheduler.stop()
        self._shutdown_event.set()

    async def run(self, base_interval: float | None = None) -> None:
        """Poll until a shutdown signal arrives or ``stop`` is called.

        In-flight fetches are given a short grace period; subscriptions are
        closed on the way out.

        Args:
            base_interval: Base interval override in seconds
        """
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread, or not supported by this loop
                logger.debug("Could not install handler for %s", sig.name)

        try:
            await self.start(base_interval)
            logger.info("Monitor running. Waiting for shutdown signal...")
            await self._shutdown_event.wait()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self._cleanup()

    def _handle_signal(self) -> None:
        """Handle shutdown signal."""
        logger.info("Received shutdown signal")
        self.stop()

    async def _cleanup(self, grace: float = 5.0) -> None:
        logger.info("Cleaning up...")
        self.scheduler.stop()
        if not await self.coordinator.drain(timeout=grace):
            logger.warning("Fetches still in flight after %gs, leaving them", grace)
        self.bus.close()
        logger.info("Monitor stopped")

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _call_on_loop(self, callback: Any, *args: Any) -> None:
        if self._loop is None or self._on_loop():
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)

    def force_refresh_all(self) -> list[Source]:
        """Refresh every source now (on the event loop thread)."""
        return self.coordinator.force_refresh_all()

    def set_base_interval(self, base_interval: float) -> None:
        """Change the base interval (on the event loop thread)."""
        self.scheduler.update_interval(base_interval)

    def request_refresh(self) -> None:
        """Ask for a full refresh from any thread."""
        self._call_on_loop(self.force_refresh_all)

    def request_base_interval(self, base_interval: float) -> None:
        """Ask for a new base interval from any thread."""
        self._call_on_loop(self.set_base_interval, base_interval)

    def subscribe(
        self,
        sources: Iterable[Source] | None = None,
        maxsize: int = DEFAULT_BUFFER_SIZE,
    ) -> Subscription:
        """Subscribe to snapshot updates.

        See PublicationBus.subscribe.
        """
        return self.bus.subscribe(sources, maxsize=maxsize)

    def snapshot(self, source: Source) -> Snapshot:
        return self.store.get(source)

    def snapshots(self) -> dict[Source, Snapshot]:
        return self.store.all()

    def info(self) -> MonitorInfo:
        """Get current monitor state."""
        return MonitorInfo(
            state=self.scheduler.state,
            base_interval=self.coordinator.base_interval,
            started_at=self.started_at,
            in_flight=[s for s in self.coordinator.sources if self.coordinator.in_flight(s)],
            subscribers=self.bus.subscriber_count,
        )


async def check_once(
    service: MonitorService,
    sources: Iterable[Source] | None = None,
    timeout: float | None = None,
) -> dict[Source, Snapshot]:
    """Refresh sources once without starting the scheduler.

    Args:
        service: Service to refresh
        sources: Sources to refresh (all when omitted)
        timeout: Seconds to wait for the fetches

    Returns:
        The resulting snapshots of the refreshed sources
    """
    selected = list(sources) if sources is not None else list(service.coordinator.sources)
    service.coordinator.dispatch_many(selected)
    await service.coordinator.drain(timeout=timeout)
    return {source: service.snapshot(source) for source in selected}
