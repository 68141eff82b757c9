"""Base class for per-source fetchers."""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from ..exceptions import ExecutionError, FetchError, FetchTimeoutError, UpstreamError
from ..sources import Source

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default time budget for one fetch, in seconds
DEFAULT_FETCH_TIMEOUT = 30.0


@dataclass(frozen=True)
class FetchContext:
    """Per-call information handed to a fetcher."""

    source: Source
    attempt: int = 1
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of one fetch: a value or a typed error, never both."""

    value: T | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult[T]":
        return cls(error=error)


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of a shell command."""

    returncode: int
    stdout: str
    stderr: str


class BaseFetcher(ABC, Generic[T]):
    """Base class for all fetchers.

    Subclasses implement ``_fetch`` and may raise FetchError subclasses from
    it. ``fetch`` wraps that call with the fetcher's timeout and converts
    every failure into a FetchResult, so callers never see an exception.
    """

    source: Source
    timeout: float = DEFAULT_FETCH_TIMEOUT

    async def fetch(self, context: FetchContext) -> FetchResult[T]:
        """Run one poll and return its typed result.

        Args:
            context: Per-call fetch information

        Returns:
            FetchResult holding either the value or the error
        """
        try:
            value = await asyncio.wait_for(self._fetch(context), timeout=self.timeout)
        except FetchError as e:
            logger.warning("%s fetch failed: %r", self.source.value, e)
            return FetchResult.failure(e)
        except TimeoutError:
            logger.warning("%s fetch timed out after %.0f seconds", self.source.value, self.timeout)
            return FetchResult.failure(
                FetchTimeoutError(f"Timed out after {self.timeout:g} seconds")
            )
        except OSError as e:
            logger.error("%s fetch could not execute: %s", self.source.value, e)
            return FetchResult.failure(ExecutionError(str(e)))
        except Exception as e:
            logger.exception("Unexpected error in %s fetcher", self.source.value)
            return FetchResult.failure(UpstreamError(f"Unexpected error: {e}"))
        return FetchResult.success(value)

    @abstractmethod
    async def _fetch(self, context: FetchContext) -> T:
        """Fetch implementation.

        Returns:
            The source-specific value

        Raises:
            FetchError: On any failure that should be reported to consumers
        """
        pass


async def run_command(command: str, timeout: float) -> CommandOutput:
    """Run a shell command with a timeout.

    The process is killed when the timeout expires.

    Args:
        command: Command line passed to the shell
        timeout: Seconds to wait before killing the process

    Returns:
        CommandOutput with exit code and decoded output

    Raises:
        FetchTimeoutError: If the command does not finish in time
        ExecutionError: If the shell cannot be launched
    """
    logger.debug("Running command: %s", command)
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ExecutionError(f"Failed to execute check: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        _kill(process)
        await process.wait()
        logger.warning("Command timed out after %g seconds: %s", timeout, command)
        raise FetchTimeoutError("Command timed out") from None
    except asyncio.CancelledError:
        # The whole fetch hit its deadline; don't leave the child behind
        _kill(process)
        raise

    returncode = process.returncode if process.returncode is not None else -1
    return CommandOutput(
        returncode=returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _kill(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()


def describe_failure(output: CommandOutput) -> str:
    """Human-readable reason for a non-zero exit."""
    stderr = output.stderr.strip()
    return stderr if stderr else f"exit code {output.returncode}"


def as_dict(value: Any) -> dict[str, Any]:
    """Return ``value`` if it is a dict, otherwise an empty one."""
    return value if isinstance(value, dict) else {}
