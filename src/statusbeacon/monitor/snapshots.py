"""Snapshots and the last-value store."""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..exceptions import FetchError
from ..sources import FailurePolicy, Source


@dataclass(frozen=True)
class Snapshot:
    """The most recently completed fetch result for a source.

    Snapshots are immutable and replaced as a whole, so ``value`` and
    ``observed_at`` always come from the same fetch.
    """

    source: Source
    value: Any = None
    error: FetchError | None = None
    observed_at: datetime | None = None
    last_success_at: datetime | None = None
    stale: bool = False

    @classmethod
    def empty(cls, source: Source) -> "Snapshot":
        """Snapshot for a source that has never been fetched."""
        return cls(source=source)

    @property
    def ok(self) -> bool:
        return self.observed_at is not None and self.error is None

    @property
    def never_fetched(self) -> bool:
        return self.observed_at is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a display-friendly dictionary (value left as-is)."""
        return {
            "source": self.source.value,
            "value": self.value,
            "error": self.error.to_dict() if self.error else None,
            "observed_at": self.observed_at.isoformat() if self.observed_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "stale": self.stale,
        }


def succeeded(source: Source, value: Any, observed_at: datetime) -> Snapshot:
    """Build the snapshot for a successful fetch."""
    return Snapshot(
        source=source,
        value=value,
        observed_at=observed_at,
        last_success_at=observed_at,
    )


def failed(
    previous: Snapshot,
    error: FetchError,
    observed_at: datetime,
    policy: FailurePolicy,
) -> Snapshot:
    """Build the snapshot for a failed fetch according to the failure policy.

    Args:
        previous: Snapshot currently in the store
        error: The failure to record
        observed_at: Completion time of the failed fetch
        policy: Whether the previous value survives the failure

    Returns:
        Replacement snapshot
    """
    if policy is FailurePolicy.RETAIN_STALE and previous.last_success_at is not None:
        return replace(previous, error=error, observed_at=observed_at, stale=True)
    return Snapshot(
        source=previous.source,
        error=error,
        observed_at=observed_at,
        last_success_at=previous.last_success_at,
    )


class SnapshotStore:
    """Thread-safe last-value cache, one slot per source.

    Only the coordinator writes; anyone may read from any thread.
    """

    def __init__(self, sources: list[Source] | None = None) -> None:
        self._lock = threading.Lock()
        self._slots: dict[Source, Snapshot] = {
            source: Snapshot.empty(source) for source in (sources or list(Source))
        }

    def get(self, source: Source) -> Snapshot:
        with self._lock:
            return self._slots[source]

    def set(self, snapshot: Snapshot) -> None:
        with self._lock:
            if snapshot.source not in self._slots:
                raise KeyError(f"Unknown source: {snapshot.source}")
            self._slots[snapshot.source] = snapshot

    def all(self) -> dict[Source, Snapshot]:
        """Consistent copy of every slot."""
        with self._lock:
            return dict(self._slots)
