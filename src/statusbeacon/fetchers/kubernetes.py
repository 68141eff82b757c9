"""Kubernetes context fetcher: the local current context and the stable EKS cluster."""

import asyncio
import json
import logging
import re
import shlex
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import yaml

from ..exceptions import ExecutionError, FetchError, NotConfiguredError, ParseError, UpstreamError
from ..models import ClusterContexts, KubernetesContext
from ..sources import Source
from .base import BaseFetcher, FetchContext, as_dict, describe_failure, run_command

logger = logging.getLogger(__name__)

# AWS region names, e.g. eu-west-1 or us-gov-east-1
AWS_REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d$")

# Time budget for one aws CLI call, in seconds
AWS_COMMAND_TIMEOUT = 25.0


class StableClusterPolicy(Protocol):
    """Chooses the stable cluster from the clusters the account exposes."""

    def select(self, clusters: Sequence[str]) -> str | None: ...


class MarkerStableClusterPolicy:
    """Pick the first cluster whose name contains a marker string.

    When nothing matches and ``fallback_to_first`` is set, the first cluster
    is used instead.
    """

    def __init__(self, marker: str = "stable", fallback_to_first: bool = True) -> None:
        self.marker = marker.lower()
        self.fallback_to_first = fallback_to_first

    def select(self, clusters: Sequence[str]) -> str | None:
        for cluster in clusters:
            if self.marker and self.marker in cluster.lower():
                return cluster
        if self.fallback_to_first and clusters:
            logger.info("No cluster name contains %r, using first cluster", self.marker)
            return clusters[0]
        return None


def strip_arn_prefix(cluster: str) -> str:
    """Reduce an EKS cluster ARN to the bare cluster name.

    ``arn:aws:eks:eu-west-1:123456789012:cluster/stable-1`` becomes
    ``stable-1``; anything else is returned unchanged.
    """
    if cluster.startswith("arn:aws:eks:") and "/" in cluster:
        return cluster.rsplit("/", 1)[-1]
    return cluster


def parse_local_context(kubeconfig: Any) -> KubernetesContext:
    """Extract the current context from a parsed kubeconfig document.

    Args:
        kubeconfig: Result of loading the kubeconfig YAML

    Returns:
        The active context (stable flag not yet resolved)

    Raises:
        ParseError: If the document has no usable current context
    """
    config = as_dict(kubeconfig)
    if not config:
        raise ParseError("Invalid Kubernetes config file")

    current = config.get("current-context")
    if not current or not isinstance(current, str):
        raise ParseError("No current context defined in Kubernetes config")

    contexts = config.get("contexts")
    if not isinstance(contexts, list) or not contexts:
        raise ParseError("No contexts found in Kubernetes config")

    details: dict[str, Any] | None = None
    for entry in contexts:
        entry = as_dict(entry)
        if entry.get("name") == current:
            details = as_dict(entry.get("context"))
            break
    if details is None:
        raise ParseError("Context details not found for current context")

    cluster = details.get("cluster")
    if not cluster or not isinstance(cluster, str):
        raise ParseError("Cluster name not found in current context")

    namespace = details.get("namespace")
    return KubernetesContext(
        name=current,
        cluster=strip_arn_prefix(cluster),
        is_active=True,
        is_stable=False,
        namespace=namespace if isinstance(namespace, str) else None,
    )


def parse_cluster_list(output: str) -> list[str]:
    """Parse ``aws eks list-clusters`` JSON output.

    Raises:
        ParseError: If the output is not the expected JSON shape
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid output from EKS command: {e}") from e
    clusters = as_dict(data).get("clusters")
    if not isinstance(clusters, list) or not all(isinstance(c, str) for c in clusters):
        raise ParseError("Invalid output from EKS command")
    return clusters


class ClusterContextFetcher(BaseFetcher[ClusterContexts]):
    """Fetch the local kubeconfig context and the stable EKS cluster together.

    Both halves run concurrently. The fetch fails only when both halves fail;
    otherwise the missing half carries its error on the result.
    """

    source = Source.CLUSTER_CONTEXT
    timeout = 30.0

    def __init__(
        self,
        kubeconfig_path: Path,
        region: str = "eu-west-1",
        policy: StableClusterPolicy | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the fetcher.

        Args:
            kubeconfig_path: Path to the kubeconfig file
            region: AWS region passed to the aws CLI
            policy: Stable cluster selection policy
            timeout: Total time budget for one fetch

        Raises:
            ValueError: If the region is not a valid AWS region name
        """
        if not AWS_REGION_PATTERN.match(region):
            raise ValueError(f"Invalid AWS region: '{region}'")
        self.kubeconfig_path = Path(kubeconfig_path).expanduser()
        self.region = region
        self.policy: StableClusterPolicy = policy or MarkerStableClusterPolicy()
        self.timeout = timeout
        self.command_timeout = min(AWS_COMMAND_TIMEOUT, timeout)

    async def _fetch(self, context: FetchContext) -> ClusterContexts:
        local_result, stable_result = await asyncio.gather(
            self.fetch_local_context(),
            self.fetch_stable_context(),
            return_exceptions=True,
        )

        # Only FetchErrors are expected here; anything else is a bug
        for result in (local_result, stable_result):
            if isinstance(result, BaseException) and not isinstance(result, FetchError):
                raise result

        local_error = local_result if isinstance(local_result, FetchError) else None
        stable_error = stable_result if isinstance(stable_result, FetchError) else None

        if local_error is not None and stable_error is not None:
            logger.error(
                "Both context refreshes failed - local: %r, stable: %r", local_error, stable_error
            )
            raise local_error

        local = local_result if isinstance(local_result, KubernetesContext) else None
        stable = stable_result if isinstance(stable_result, KubernetesContext) else None
        if local is not None and stable is not None:
            local = local.with_stable(local.cluster == stable.name)

        logger.debug(
            "Contexts refreshed - local: %s, stable: %s", local is not None, stable is not None
        )
        return ClusterContexts(
            local=local,
            stable=stable,
            local_error=local_error,
            stable_error=stable_error,
        )

    def _read_kubeconfig(self) -> Any:
        if not self.kubeconfig_path.exists():
            logger.warning("Kubeconfig file not found at %s", self.kubeconfig_path)
            raise NotConfiguredError("Kubernetes config file not found")
        try:
            with open(self.kubeconfig_path, encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid Kubernetes config file: {e}") from e
        except OSError as e:
            raise ExecutionError(f"Could not read Kubernetes config: {e}") from e

    async def fetch_local_context(self) -> KubernetesContext:
        """Read the current context from the kubeconfig file."""
        document = await asyncio.to_thread(self._read_kubeconfig)
        context = parse_local_context(document)
        logger.debug("Local context: %s (%s)", context.name, context.cluster)
        return context

    async def fetch_stable_context(self) -> KubernetesContext:
        """Ask the aws CLI for clusters and pick the stable one."""
        output = await run_command(
            f"aws eks list-clusters --region {shlex.quote(self.region)} --output json",
            timeout=self.command_timeout,
        )
        if output.returncode != 0:
            raise UpstreamError(f"EKS command failed: {describe_failure(output)}")

        clusters = parse_cluster_list(output.stdout)
        if not clusters:
            raise UpstreamError("No EKS clusters found")

        name = self.policy.select(clusters)
        if not name:
            raise UpstreamError("No stable EKS cluster found")

        logger.debug("Stable context: %s", name)
        return KubernetesContext(name=name, cluster=name, is_active=False, is_stable=True)

    async def use_stable_cluster(self) -> ClusterContexts:
        """Point the kubeconfig at the stable cluster and re-read both contexts.

        Returns:
            The refreshed contexts

        Raises:
            FetchError: If the stable cluster cannot be determined or the update fails
        """
        stable = await self.fetch_stable_context()
        logger.info("Updating kubeconfig to use stable context: %s", stable.name)
        output = await run_command(
            f"aws eks update-kubeconfig --name {shlex.quote(stable.name)} "
            f"--region {shlex.quote(self.region)}",
            timeout=self.command_timeout,
        )
        if output.returncode != 0:
            raise ExecutionError(f"Failed to update kubeconfig: {describe_failure(output)}")

        local = await self.fetch_local_context()
        logger.info("Kubeconfig updated successfully")
        return ClusterContexts(local=local.with_stable(local.cluster == stable.name), stable=stable)
