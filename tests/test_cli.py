"""CLI smoke tests for statusbeacon."""

from unittest.mock import patch

from typer.testing import CliRunner

from statusbeacon.cli import app
from statusbeacon.config import Settings
from statusbeacon.exceptions import NotConfiguredError
from statusbeacon.models import ClusterContexts, KubernetesContext
from statusbeacon.monitor.snapshots import Snapshot, succeeded
from statusbeacon.sources import Source

from conftest import T0

runner = CliRunner()


def fake_check(results: dict[Source, Snapshot]):
    async def check_once(service, sources=None, timeout=None):
        return {source: snapshot for source, snapshot in results.items() if sources is None or source in sources}

    return patch("statusbeacon.cli.check_once", new=check_once)


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_app_shows_help(self) -> None:
        """Test app shows help when no args provided."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "status monitor" in result.output

    def test_version_flag(self) -> None:
        """Test --version flag shows version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "statusbeacon" in result.output

    def test_watch_help(self) -> None:
        result = runner.invoke(app, ["watch", "--help"])
        assert result.exit_code == 0
        assert "--base-interval" in result.output


class TestCheckCommand:
    """Test the check command with refreshes stubbed out."""

    def test_all_ok(self) -> None:
        results = {Source.VERSION: succeeded(Source.VERSION, "1.0", T0)}
        with fake_check(results):
            result = runner.invoke(app, ["check", "--source", "version"])
        assert result.exit_code == 0
        assert "version" in result.output

    def test_failure_exits_nonzero(self) -> None:
        results = {
            Source.PULL_REQUESTS: Snapshot(
                source=Source.PULL_REQUESTS,
                error=NotConfiguredError("GitHub service is not configured"),
                observed_at=T0,
            )
        }
        with fake_check(results):
            result = runner.invoke(app, ["check", "--source", "pull_requests"])
        assert result.exit_code == 1
        assert "GitHub service is not configured" in result.output

    def test_unknown_source(self) -> None:
        result = runner.invoke(app, ["check", "--source", "weather"])
        assert result.exit_code == 1
        assert "Unknown source 'weather'" in result.output


class TestUseStableCluster:
    """Test the use-stable-cluster command."""

    def test_success(self) -> None:
        stable = KubernetesContext(name="stable-1", cluster="stable-1", is_active=False, is_stable=True)
        local = KubernetesContext(name="prod", cluster="stable-1", is_active=True, is_stable=True)

        async def switch(self):
            return ClusterContexts(local=local, stable=stable)

        with patch("statusbeacon.fetchers.kubernetes.ClusterContextFetcher.use_stable_cluster", new=switch):
            result = runner.invoke(app, ["use-stable-cluster"])
        assert result.exit_code == 0
        assert "stable-1" in result.output

    def test_failure(self) -> None:
        async def switch(self):
            raise NotConfiguredError("Kubernetes config file not found")

        with patch("statusbeacon.fetchers.kubernetes.ClusterContextFetcher.use_stable_cluster", new=switch):
            result = runner.invoke(app, ["use-stable-cluster"])
        assert result.exit_code == 1
        assert "Kubernetes config file not found" in result.output


class TestInvalidConfiguration:
    """Test commands exit cleanly on settings that cannot build a monitor."""

    @staticmethod
    def bad_settings():
        return patch("statusbeacon.cli.settings", new=Settings(github_repositories="not a repo", _env_file=None))

    def test_check_reports_invalid_repository(self) -> None:
        with self.bad_settings():
            result = runner.invoke(app, ["check", "--source", "version"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert not isinstance(result.exception, ValueError)

    def test_watch_reports_invalid_repository(self) -> None:
        with self.bad_settings():
            result = runner.invoke(app, ["watch"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert not isinstance(result.exception, ValueError)
