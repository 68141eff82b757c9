"""Build the fetcher set from settings."""

from ..config import Settings
from ..sources import Source
from .base import BaseFetcher
from .github import PullRequestFetcher
from .kubernetes import ClusterContextFetcher, MarkerStableClusterPolicy
from .tools import ToolCheckFetcher
from .version import VersionFetcher


def build_cluster_fetcher(settings: Settings) -> ClusterContextFetcher:
    return ClusterContextFetcher(
        kubeconfig_path=settings.kubeconfig_path,
        region=settings.eks_region,
        policy=MarkerStableClusterPolicy(
            marker=settings.stable_cluster_marker,
            fallback_to_first=settings.stable_cluster_fallback_to_first,
        ),
        timeout=settings.cluster_timeout,
    )


def build_fetchers(settings: Settings) -> dict[Source, BaseFetcher]:
    """Create one fetcher per source.

    Sources without configuration still get a fetcher; it reports
    NotConfiguredError on each poll so the UI can say why nothing shows up.

    Args:
        settings: Application settings

    Returns:
        Mapping of every Source to its fetcher
    """
    token = settings.github_token_resolved
    return {
        Source.PULL_REQUESTS: PullRequestFetcher(
            user=settings.github_user,
            repositories=settings.github_repositories_list,
            token=token,
            api_url=settings.github_api_url,
            timeout=settings.github_timeout,
        ),
        Source.TOOLS: ToolCheckFetcher(settings.tools, command_timeout=settings.tool_timeout),
        Source.CLUSTER_CONTEXT: build_cluster_fetcher(settings),
        Source.VERSION: VersionFetcher(
            repository=settings.release_repository,
            current_version=settings.current_version,
            token=token,
            api_url=settings.github_api_url,
            timeout=settings.version_timeout,
        ),
    }
