"""Polled sources and their derived intervals."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .exceptions import FetchError

# The base interval is clamped so that a misconfigured value cannot turn the
# tool checks into a busy loop.
MIN_BASE_INTERVAL = 10.0


class Source(Enum):
    """An independently polled external signal."""

    PULL_REQUESTS = "pull_requests"
    TOOLS = "tools"
    CLUSTER_CONTEXT = "cluster_context"
    VERSION = "version"

    @property
    def multiplier(self) -> int:
        """Fixed ratio between this source's interval and the base interval."""
        return SOURCE_MULTIPLIERS[self]

    def interval(self, base_interval: float) -> float:
        """Seconds between required fetches for the given base interval."""
        return derive_interval(self, base_interval)


SOURCE_MULTIPLIERS: dict[Source, int] = {
    Source.TOOLS: 1,
    Source.CLUSTER_CONTEXT: 3,
    Source.PULL_REQUESTS: 5,
    Source.VERSION: 30,
}


class FailurePolicy(Enum):
    """What a failed fetch does to the previously published value."""

    RETAIN_STALE = "retain_stale"  # Keep the last good value, attach the error
    REPLACE = "replace"  # Drop the value, publish only the error


def clamp_base_interval(base_interval: float) -> float:
    return max(MIN_BASE_INTERVAL, float(base_interval))


def derive_interval(source: Source, base_interval: float) -> float:
    """Derive a source's interval from the base interval.

    Args:
        source: The source to derive for
        base_interval: Base polling period in seconds (clamped to MIN_BASE_INTERVAL)

    Returns:
        Interval in seconds
    """
    return SOURCE_MULTIPLIERS[source] * clamp_base_interval(base_interval)


@dataclass
class SourceState:
    """Scheduling state of one source, owned by the coordinator."""

    source: Source
    interval: float
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: FetchError | None = None
    in_flight: bool = False
    attempts: int = 0

    @property
    def last_attempt_failed(self) -> bool:
        return self.last_error is not None

    def is_due(self, now: datetime) -> bool:
        """Check whether the source should be fetched at ``now``.

        A source is due when it has never succeeded or when its interval has
        elapsed since the last success. After a failed attempt the interval is
        measured from that attempt, so a failing source is retried once per
        interval instead of on every tick.
        """
        reference = self.last_success_at
        if self.last_attempt_failed and self.last_attempt_at is not None:
            reference = self.last_attempt_at
        if reference is None:
            return True
        return (now - reference).total_seconds() >= self.interval
