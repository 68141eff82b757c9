"""Shared test fixtures for statusbeacon."""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from statusbeacon.exceptions import FetchError
from statusbeacon.fetchers.base import BaseFetcher, FetchContext
from statusbeacon.sources import Source

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Time ``seconds`` after the start of the test."""
        return T0 + timedelta(seconds=seconds)


class StubFetcher(BaseFetcher[Any]):
    """Fetcher returning scripted values or raising scripted errors.

    When ``gated`` is set each fetch waits for ``release()`` before finishing.
    """

    def __init__(self, source: Source, results: list[Any] | None = None, gated: bool = False) -> None:
        self.source = source
        self.results = list(results or [])
        self.calls: list[FetchContext] = []
        self.gated = gated
        self._gate = asyncio.Event()
        self.timeout = 5.0

    def release(self) -> None:
        self._gate.set()

    async def _fetch(self, context: FetchContext) -> Any:
        self.calls.append(context)
        if self.gated:
            await self._gate.wait()
        result = self.results.pop(0) if self.results else f"{self.source.value}-{len(self.calls)}"
        if isinstance(result, FetchError):
            raise result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kubeconfig(tmp_path: Path) -> Path:
    """Write a kubeconfig whose current context points at an EKS cluster ARN."""
    path = tmp_path / "config"
    path.write_text(
        """
apiVersion: v1
kind: Config
current-context: dev
contexts:
  - name: dev
    context:
      cluster: arn:aws:eks:eu-west-1:123456789012:cluster/dev-1
      namespace: payments
  - name: prod
    context:
      cluster: arn:aws:eks:eu-west-1:123456789012:cluster/stable-1
"""
    )
    return path


async def settle() -> None:
    """Let pending tasks run to completion of their next steps."""
    for _ in range(5):
        await asyncio.sleep(0)
