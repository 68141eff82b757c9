"""Domain records produced by the fetchers."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .exceptions import FetchError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PullRequestState(Enum):
    """State of a pull request."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"

    @property
    def is_active(self) -> bool:
        return self is PullRequestState.OPEN


@dataclass(frozen=True)
class PullRequest:
    """A GitHub pull request."""

    id: int
    number: int
    title: str
    repository: str  # "owner/name"
    url: str
    author: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    state: PullRequestState = PullRequestState.OPEN

    @property
    def repository_owner(self) -> str:
        """Owner part of the repository, e.g. "octocat" for "octocat/hello-world"."""
        return self.repository.split("/")[0] if self.repository else ""

    @property
    def repository_name(self) -> str:
        """Name part of the repository, e.g. "hello-world" for "octocat/hello-world"."""
        parts = self.repository.split("/")
        return parts[1] if len(parts) > 1 else self.repository

    def is_authored_by(self, user: str) -> bool:
        return self.author.lower() == user.lower()

    def is_in_repository(self, pattern: str) -> bool:
        return pattern.lower() in self.repository.lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "repository": self.repository,
            "url": self.url,
            "author": self.author,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class ToolStatus:
    """Availability of one command-line tool."""

    id: str
    name: str
    available: bool
    help_text: str
    check_command: str
    checked_at: datetime = field(default_factory=_now)
    error: FetchError | None = None

    @property
    def error_message(self) -> str | None:
        return self.error.detail if self.error else None


@dataclass(frozen=True)
class KubernetesContext:
    """A Kubernetes context, either the local current context or the stable cluster."""

    name: str
    cluster: str
    is_active: bool
    is_stable: bool
    namespace: str | None = None
    updated_at: datetime = field(default_factory=_now)

    def with_stable(self, is_stable: bool) -> "KubernetesContext":
        """Return a copy with the stable flag updated."""
        return replace(self, is_stable=is_stable)


@dataclass(frozen=True)
class ClusterContexts:
    """The local and stable contexts fetched together.

    Either side may be missing when its half of the fetch failed; the
    corresponding error is kept so the UI can explain why.
    """

    local: KubernetesContext | None
    stable: KubernetesContext | None
    local_error: FetchError | None = None
    stable_error: FetchError | None = None

    @property
    def on_stable(self) -> bool:
        """Whether the local context already points at the stable cluster."""
        return self.local is not None and self.local.is_stable


@dataclass(frozen=True)
class VersionInfo:
    """Result of comparing the running version with the latest release."""

    current_version: str
    latest_version: str
    update_available: bool
    release_url: str | None = None
