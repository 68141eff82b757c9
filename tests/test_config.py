"""Tests for configuration management."""

import json
from pathlib import Path

import pytest

from statusbeacon import __version__
from statusbeacon.config import GITHUB_TOKEN_ENV_VARS, Settings, ToolConfig


def make_settings(**overrides) -> Settings:
    """Create a Settings instance that ignores any local .env file."""
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


@pytest.fixture
def no_token_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Clear token variables and point the home directory at an empty tmp dir."""
    for var_name in GITHUB_TOKEN_ENV_VARS:
        monkeypatch.delenv(var_name, raising=False)
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    return tmp_path


class TestSettings:
    """Test Settings class."""

    def test_default_values(self) -> None:
        """Test that settings have expected defaults."""
        settings = make_settings()
        assert settings.base_interval == 60.0
        assert settings.tick_seconds == 1.0
        assert settings.eks_region == "eu-west-1"
        assert settings.stable_cluster_marker == "stable"
        assert settings.current_version == __version__
        assert settings.release_repository == ""

    def test_default_tools(self) -> None:
        settings = make_settings()
        assert set(settings.tools) == {"kubectl", "helm", "aws", "git"}
        assert settings.tools["kubectl"].check_command == "which kubectl"
        assert settings.tools["aws"].title == "aws-cli"

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATUSBEACON_BASE_INTERVAL", "30")
        monkeypatch.setenv("STATUSBEACON_RELEASE_REPOSITORY", "acme/statusbeacon")
        settings = make_settings()
        assert settings.base_interval == 30.0
        assert settings.release_repository == "acme/statusbeacon"

    def test_tools_from_environment_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "STATUSBEACON_TOOLS",
            json.dumps({"jq": {"title": "jq", "check_command": "which jq"}}),
        )
        settings = make_settings()
        assert settings.tools == {"jq": ToolConfig(title="jq", check_command="which jq")}

    @pytest.mark.parametrize(
        ("repositories", "organisation", "expected"),
        [
            ("acme/web, acme/api", "", ["acme/web", "acme/api"]),
            ("  acme/web  ,  ", "", ["acme/web"]),
            ("", "", []),
            ("web, other/api", "acme", ["acme/web", "other/api"]),
        ],
        ids=["csv", "whitespace", "empty", "organisation"],
    )
    def test_github_repositories_list(
        self, repositories: str, organisation: str, expected: list[str]
    ) -> None:
        """Test github_repositories string is parsed to a list."""
        settings = make_settings(github_repositories=repositories, github_organisation=organisation)
        assert settings.github_repositories_list == expected

    @pytest.mark.parametrize(
        "repository",
        ["web", "acme/web/extra", "acme/../web?x=1", "-acme/web"],
        ids=["bare-without-org", "too-deep", "path-injection", "leading-dash"],
    )
    def test_invalid_repository_rejected(self, repository: str) -> None:
        settings = make_settings(github_repositories=repository)
        with pytest.raises(ValueError, match="Invalid GitHub repository"):
            _ = settings.github_repositories_list


class TestGitHubToken:
    """Test token resolution order."""

    def test_explicit_setting_wins(self, no_token_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        assert make_settings(github_token="explicit").github_token_resolved == "explicit"

    def test_environment_fallback_order(self, no_token_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GH_API_TOKEN", "last")
        monkeypatch.setenv("GH_TOKEN", "second")
        assert make_settings().github_token_resolved == "second"

    def test_token_file_fallback(self, no_token_env: Path) -> None:
        token_file = no_token_env / ".config" / "gh" / "token"
        token_file.parent.mkdir(parents=True)
        token_file.write_text("from-file\n")
        assert make_settings().github_token_resolved == "from-file"

    def test_no_token(self, no_token_env: Path) -> None:
        assert make_settings().github_token_resolved == ""
