"""Configuration management using pydantic-settings."""

import os
import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__

# Validation pattern for GitHub repositories ("owner/name")
# Owners and names: alphanumeric, underscores, dots, hyphens
GITHUB_REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*/[A-Za-z0-9._-]+$")

# Conventional token variables, checked in order
GITHUB_TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN", "GITHUB_API_TOKEN", "GH_API_TOKEN")

# Token files relative to the home directory, checked in order
GITHUB_TOKEN_FILES = (".github_token", ".github/token", ".config/gh/token")


class ToolConfig(BaseModel):
    """Configuration for a single tool availability check."""

    title: str
    help: str = ""
    check_command: str


def _default_tools() -> dict[str, ToolConfig]:
    return {
        "kubectl": ToolConfig(title="kubectl", help="Check kubectl status", check_command="which kubectl"),
        "helm": ToolConfig(title="helm", help="Check helm status", check_command="which helm"),
        "aws": ToolConfig(title="aws-cli", help="Check AWS CLI status", check_command="which aws"),
        "git": ToolConfig(title="git", help="Check Git status", check_command="which git"),
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STATUSBEACON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Polling
    base_interval: float = 60.0  # Seconds; per-source intervals are multiples of this
    tick_seconds: float = 1.0  # Granularity of the scheduler loop

    # GitHub pull requests
    github_user: str = ""
    github_organisation: str = ""  # Owner for repositories listed without one
    github_repositories: str = ""  # Comma-separated "owner/name" (or bare "name") list
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 30.0

    # Tool checker (JSON mapping in the environment)
    tools: dict[str, ToolConfig] = Field(default_factory=_default_tools)
    tool_timeout: float = 5.0

    # Cluster context
    kubeconfig_path: Path = Path.home() / ".kube" / "config"
    eks_region: str = "eu-west-1"
    stable_cluster_marker: str = "stable"
    stable_cluster_fallback_to_first: bool = True
    cluster_timeout: float = 30.0

    # Version check
    release_repository: str = ""  # e.g. "acme/statusbeacon"; empty disables the check
    current_version: str = __version__
    version_timeout: float = 15.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Path | None = None

    @staticmethod
    def _split_csv(value: str) -> list[str]:
        """Split a comma-separated string into a trimmed list."""
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def github_repositories_list(self) -> list[str]:
        """Get monitored repositories as a validated list.

        Bare names are qualified with ``github_organisation``. Each entry is
        validated so it can be interpolated into API paths safely.

        Returns:
            List of "owner/name" strings

        Raises:
            ValueError: If any repository is not in "owner/name" form
        """
        repositories = [
            f"{self.github_organisation}/{entry}"
            if "/" not in entry and self.github_organisation
            else entry
            for entry in self._split_csv(self.github_repositories)
        ]
        for repository in repositories:
            if not GITHUB_REPOSITORY_PATTERN.match(repository):
                raise ValueError(
                    f"Invalid GitHub repository: '{repository}'. "
                    "Repositories must be given as 'owner/name'."
                )
        return repositories

    @property
    def github_token_resolved(self) -> str:
        """Get the GitHub token from settings, the environment, or a token file."""
        # Check explicit setting first
        if self.github_token:
            return self.github_token

        for var_name in GITHUB_TOKEN_ENV_VARS:
            value = os.environ.get(var_name, "").strip()
            if value:
                return value

        home = Path.home()
        for relative in GITHUB_TOKEN_FILES:
            token_path = home / relative
            try:
                token = token_path.read_text(encoding="utf-8").strip()
            except OSError:
                continue
            if token:
                return token
        return ""


# Global settings instance
settings = Settings()
