"""Per-source fetchers polled by the monitor."""

from .base import BaseFetcher, CommandOutput, FetchContext, FetchResult, run_command
from .factory import build_fetchers
from .github import PullRequestFetcher
from .kubernetes import ClusterContextFetcher, MarkerStableClusterPolicy, StableClusterPolicy
from .tools import ToolCheckFetcher
from .version import VersionFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    "CommandOutput",
    "FetchContext",
    "FetchResult",
    "run_command",
    # Fetchers
    "ClusterContextFetcher",
    "PullRequestFetcher",
    "ToolCheckFetcher",
    "VersionFetcher",
    # Cluster selection
    "MarkerStableClusterPolicy",
    "StableClusterPolicy",
    # Wiring
    "build_fetchers",
]
