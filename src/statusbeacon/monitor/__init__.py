"""Polling monitor keeping a fresh snapshot of every status source.

This module provides:
- Poll scheduler ticking once a second and dispatching due sources
- Refresh coordinator enforcing one fetch in flight per source
- Snapshot store holding the latest result for each source
- Publication bus fanning snapshots out to subscribers

Architecture:
    ┌─────────────────────────────────────────────┐
    │               MonitorService                │
    │  ┌──────────────┐  ┌──────────────────────┐ │
    │  │PollScheduler │─▶│  RefreshCoordinator  │ │
    │  │ (APScheduler)│  │   (single-flight)    │ │
    │  └──────────────┘  └──────────────────────┘ │
    │                       │            │        │
    │                       ▼            ▼        │
    │              ┌──────────────┐ ┌──────────┐  │
    │              │   Fetchers   │ │  Store   │  │
    │              └──────────────┘ └──────────┘  │
    │                                    │        │
    │                                    ▼        │
    │                          ┌────────────────┐ │
    │                          │ PublicationBus │ │
    │                          └────────────────┘ │
    └─────────────────────────────────────────────┘
"""

from .bus import PublicationBus, Subscription, SubscriptionClosed
from .coordinator import RefreshCoordinator
from .scheduler import PollScheduler, SchedulerState
from .service import MonitorInfo, MonitorService, check_once
from .snapshots import Snapshot, SnapshotStore

__all__ = [
    # Scheduling
    "PollScheduler",
    "SchedulerState",
    "RefreshCoordinator",
    # Snapshots
    "Snapshot",
    "SnapshotStore",
    # Publication
    "PublicationBus",
    "Subscription",
    "SubscriptionClosed",
    # Service
    "MonitorInfo",
    "MonitorService",
    "check_once",
]
