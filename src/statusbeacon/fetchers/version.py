"""Release version check against GitHub releases."""

import logging
import re

import httpx

from ..exceptions import FetchTimeoutError, NotConfiguredError, ParseError, UpstreamError
from ..models import VersionInfo
from ..sources import Source
from .base import BaseFetcher, FetchContext, as_dict
from .github import GITHUB_API_URL, GITHUB_HEADERS

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"\d+")


def normalize_version(tag: str) -> str:
    """Strip a leading "v" from a release tag."""
    tag = tag.strip()
    return tag[1:] if tag[:1] in ("v", "V") else tag


def _components(version: str) -> list[int]:
    parts = []
    for part in normalize_version(version).split("."):
        match = _NUMBER.match(part)
        if match is None:
            break
        parts.append(int(match.group()))
    return parts


def is_newer_version(candidate: str, current: str) -> bool:
    """Compare dotted versions numerically.

    Missing components count as zero, so "1.2" equals "1.2.0".

    Args:
        candidate: Version that may be newer
        current: Version currently running

    Returns:
        True if candidate is strictly newer than current
    """
    left = _components(candidate)
    right = _components(current)
    width = max(len(left), len(right))
    left += [0] * (width - len(left))
    right += [0] * (width - len(right))
    return left > right


class VersionFetcher(BaseFetcher[VersionInfo]):
    """Compare the running version with the latest published release."""

    source = Source.VERSION
    timeout = 15.0

    def __init__(
        self,
        repository: str,
        current_version: str,
        token: str = "",
        api_url: str = GITHUB_API_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.repository = repository
        self.current_version = current_version
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def releases_url(self) -> str:
        return f"{self.api_url}/repos/{self.repository}/releases/latest"

    async def _fetch(self, context: FetchContext) -> VersionInfo:
        if not self.repository:
            raise NotConfiguredError("No release repository configured")

        headers = GITHUB_HEADERS.copy()
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        else:
            logger.debug("No GitHub token available for version check")

        logger.info("Checking for updates at %s", self.releases_url)
        try:
            async with httpx.AsyncClient(
                headers=headers, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(self.releases_url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchTimeoutError("Release check timed out") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"HTTP error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Network error checking for updates: {e}") from e

        try:
            release = as_dict(response.json())
            tag = release["tag_name"]
        except (ValueError, KeyError) as e:
            raise ParseError(f"Failed to parse release info: {e}") from e
        if not isinstance(tag, str) or not tag.strip():
            raise ParseError("Release has no tag name")

        latest = normalize_version(tag)
        info = VersionInfo(
            current_version=self.current_version,
            latest_version=latest,
            update_available=is_newer_version(latest, self.current_version),
            release_url=release.get("html_url"),
        )
        logger.debug(
            "Update check complete - latest: %s, update available: %s",
            info.latest_version,
            info.update_available,
        )
        return info
