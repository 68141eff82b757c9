"""Polling scheduler driving every source from one tick loop.

Uses an APScheduler AsyncIOScheduler with a single interval job. On each
tick every source whose interval has elapsed since its last success is
handed to the coordinator. Checking elapsed time, rather than keeping one
timer per source, keeps sources with very different periods in step and
makes catch-up after sleep automatic.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..sources import Source
from .coordinator import RefreshCoordinator

logger = logging.getLogger(__name__)

TICK_JOB_ID = "poll-tick"

# Default scheduler granularity in seconds
DEFAULT_TICK_SECONDS = 1.0


class SchedulerState(Enum):
    """Lifecycle of the polling scheduler."""

    STOPPED = "stopped"
    RUNNING = "running"


class PollScheduler:
    """Runs the tick loop and dispatches due sources to the coordinator.

    The tick decision is non-blocking; fetches run in their own tasks.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        """Initialize the scheduler.

        Args:
            coordinator: Coordinator owning source state and dispatch
            tick_seconds: Seconds between ticks
        """
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self.coordinator = coordinator
        self.tick_seconds = tick_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._state = SchedulerState.STOPPED

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the tick loop is running."""
        return self._state is SchedulerState.RUNNING

    def _trigger(self) -> IntervalTrigger:
        return IntervalTrigger(seconds=self.tick_seconds)

    async def start(self, base_interval: float | None = None) -> None:
        """Start polling.

        Refreshes every source once immediately, then starts the tick loop.

        Args:
            base_interval: Base interval in seconds (keeps the current one when None)
        """
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        if base_interval is not None:
            self.coordinator.set_base_interval(base_interval)

        logger.info(
            "Starting poll scheduler (base interval %gs, tick %gs)",
            self.coordinator.base_interval,
            self.tick_seconds,
        )
        self.coordinator.force_refresh_all()

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self._scheduler.add_job(
            self._tick_job,
            self._trigger(),
            id=TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._state = SchedulerState.RUNNING
        logger.info("Poll scheduler started")

    def update_interval(self, base_interval: float) -> None:
        """Change the base interval at runtime.

        Intervals are re-derived and the tick loop restarted; no refresh is
        forced and snapshots and timestamps are kept.

        Args:
            base_interval: New base interval in seconds
        """
        self.coordinator.set_base_interval(base_interval)
        if self.is_running and self._scheduler is not None:
            self._scheduler.reschedule_job(TICK_JOB_ID, trigger=self._trigger())
            logger.info("Tick loop restarted with base interval %gs", self.coordinator.base_interval)

    def stop(self) -> None:
        """Stop the tick loop.

        In-flight fetches are left to finish and still record their results.
        """
        if not self.is_running or self._scheduler is None:
            return

        logger.info("Stopping poll scheduler...")
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._state = SchedulerState.STOPPED
        logger.info("Poll scheduler stopped")

    def tick(self, now: datetime | None = None) -> list[Source]:
        """Dispatch every due source.

        Args:
            now: Time to evaluate due-ness at (coordinator clock when None)

        Returns:
            Sources for which a fetch was started
        """
        now = now or self.coordinator.clock()
        due = [source for source in self.coordinator.sources if self.coordinator.is_due(source, now)]
        dispatched = self.coordinator.dispatch_many(due)
        if dispatched:
            logger.debug("Tick dispatched: %s", ", ".join(s.value for s in dispatched))
        return dispatched

    async def _tick_job(self) -> None:
        # Coroutine so APScheduler runs it on the event loop, not in a worker thread
        self.tick()
