"""Fetcher exceptions.

Centralized error taxonomy for everything a poll can go wrong with.
Fetchers raise these internally; the base fetcher turns them into a
FetchResult so they never escape into the coordinator.
"""

from enum import Enum


class FetchErrorKind(Enum):
    """Categories of fetch failure."""

    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    UPSTREAM = "upstream"
    PARSE = "parse"
    EXECUTION = "execution"


class FetchError(Exception):
    """Base exception for fetch failures."""

    kind: FetchErrorKind = FetchErrorKind.UPSTREAM

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FetchError):
            return NotImplemented
        return type(self) is type(other) and self.detail == other.detail

    def __hash__(self) -> int:
        return hash((type(self), self.detail))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.detail!r})"

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for display or JSON serialization."""
        return {"kind": self.kind.value, "detail": self.detail}


class NotConfiguredError(FetchError):
    """Raised when a source has no credentials or configuration."""

    kind = FetchErrorKind.NOT_CONFIGURED


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its time budget."""

    kind = FetchErrorKind.TIMEOUT


class UpstreamError(FetchError):
    """Raised when a remote API or service reports a failure."""

    kind = FetchErrorKind.UPSTREAM


class ParseError(FetchError):
    """Raised when a response cannot be understood."""

    kind = FetchErrorKind.PARSE


class ExecutionError(FetchError):
    """Raised when a subprocess cannot be launched or exits non-zero."""

    kind = FetchErrorKind.EXECUTION
