"""Tests for sources, interval derivation and due-ness."""

from datetime import timedelta

import pytest

from statusbeacon.exceptions import UpstreamError
from statusbeacon.sources import (
    MIN_BASE_INTERVAL,
    Source,
    SourceState,
    clamp_base_interval,
    derive_interval,
)

from conftest import T0


class TestIntervals:
    """Test interval derivation from the base interval."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            (Source.TOOLS, 60.0),
            (Source.CLUSTER_CONTEXT, 180.0),
            (Source.PULL_REQUESTS, 300.0),
            (Source.VERSION, 1800.0),
        ],
        ids=["tools", "cluster", "pull-requests", "version"],
    )
    def test_derive_interval(self, source: Source, expected: float) -> None:
        assert derive_interval(source, 60) == expected
        assert source.interval(60) == expected

    def test_base_interval_is_clamped(self) -> None:
        """Test a tiny base interval cannot produce a busy loop."""
        assert clamp_base_interval(1) == MIN_BASE_INTERVAL
        assert derive_interval(Source.TOOLS, 0) == MIN_BASE_INTERVAL
        assert derive_interval(Source.PULL_REQUESTS, 2) == 5 * MIN_BASE_INTERVAL

    def test_multipliers(self) -> None:
        assert Source.TOOLS.multiplier == 1
        assert Source.CLUSTER_CONTEXT.multiplier == 3
        assert Source.PULL_REQUESTS.multiplier == 5
        assert Source.VERSION.multiplier == 30


class TestSourceState:
    """Test SourceState.is_due."""

    def test_never_fetched_is_due(self) -> None:
        state = SourceState(source=Source.TOOLS, interval=10)
        assert state.is_due(T0)

    def test_due_after_interval_since_success(self) -> None:
        state = SourceState(source=Source.TOOLS, interval=10, last_attempt_at=T0, last_success_at=T0)
        assert not state.is_due(T0 + timedelta(seconds=9.9))
        assert state.is_due(T0 + timedelta(seconds=10))

    def test_catch_up_after_gap(self) -> None:
        """Test a source is due exactly once after a long suspension."""
        state = SourceState(source=Source.VERSION, interval=300, last_attempt_at=T0, last_success_at=T0)
        assert state.is_due(T0 + timedelta(hours=6))

    def test_failed_attempt_measured_from_attempt(self) -> None:
        """Test a failing source waits one interval after the failed attempt."""
        state = SourceState(
            source=Source.PULL_REQUESTS,
            interval=50,
            last_attempt_at=T0 + timedelta(seconds=100),
            last_success_at=T0,
            last_error=UpstreamError("GitHub API error: HTTP 502"),
        )
        assert state.last_attempt_failed
        assert not state.is_due(T0 + timedelta(seconds=120))
        assert state.is_due(T0 + timedelta(seconds=150))

    def test_failed_first_attempt_waits_interval(self) -> None:
        state = SourceState(
            source=Source.TOOLS,
            interval=10,
            last_attempt_at=T0,
            last_error=UpstreamError("down"),
        )
        assert not state.is_due(T0 + timedelta(seconds=5))
        assert state.is_due(T0 + timedelta(seconds=10))
