"""GitHub pull request fetcher."""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ..exceptions import FetchTimeoutError, NotConfiguredError, ParseError, UpstreamError
from ..models import PullRequest, PullRequestState
from ..sources import Source
from .base import BaseFetcher, FetchContext, as_dict

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_HEADERS = {
    "Accept": "application/vnd.github.v3+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _repository_from_api_url(url: str) -> str:
    """Extract "owner/name" from an API or HTML repository URL."""
    marker = "/repos/"
    if marker in url:
        return "/".join(url.split(marker, 1)[1].split("/")[:2])
    # https://github.com/owner/name/pull/1
    parts = url.split("github.com/", 1)
    if len(parts) == 2:
        return "/".join(parts[1].split("/")[:2])
    return ""


def _pull_request_state(item: dict[str, Any]) -> PullRequestState:
    pull = as_dict(item.get("pull_request"))
    if item.get("merged_at") or pull.get("merged_at"):
        return PullRequestState.MERGED
    if item.get("state") == "closed":
        return PullRequestState.CLOSED
    return PullRequestState.OPEN


def parse_pull_request(item: dict[str, Any], repository: str | None = None) -> PullRequest:
    """Build a PullRequest from a search item or a pulls-endpoint item.

    Args:
        item: JSON object from the GitHub API
        repository: Repository to use when the item does not carry one

    Returns:
        Parsed PullRequest

    Raises:
        ParseError: If required fields are missing
    """
    try:
        repo = repository or _repository_from_api_url(
            item.get("repository_url") or item.get("html_url", "")
        )
        return PullRequest(
            id=int(item["id"]),
            number=int(item["number"]),
            title=str(item["title"]),
            repository=repo,
            url=str(item["html_url"]),
            author=str(as_dict(item.get("user")).get("login", "")),
            created_at=_parse_timestamp(item.get("created_at")),
            updated_at=_parse_timestamp(item.get("updated_at")),
            state=_pull_request_state(item),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Error parsing GitHub response: {e}") from e


class PullRequestFetcher(BaseFetcher[list[PullRequest]]):
    """Fetch open pull requests relevant to the configured user.

    Combines review requests and authored pull requests from the search API
    with the open pull requests of each monitored repository, de-duplicated
    by id and sorted by last update.
    """

    source = Source.PULL_REQUESTS
    timeout = 30.0

    def __init__(
        self,
        user: str,
        repositories: list[str],
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            user: GitHub username (review requests and authored PRs)
            repositories: "owner/name" repositories to list open PRs for
            token: API token
            api_url: GitHub API base URL
            timeout: Total time budget for one fetch
            transport: Optional httpx transport (tests)
        """
        self.user = user
        self.repositories = repositories
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        headers = GITHUB_HEADERS.copy()
        headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _fetch(self, context: FetchContext) -> list[PullRequest]:
        if not self.user and not self.repositories:
            raise NotConfiguredError("GitHub service is not configured")
        if not self.token:
            raise NotConfiguredError("No GitHub API token available")

        logger.debug("Fetching pull requests (attempt %d)", context.attempt)
        async with httpx.AsyncClient(
            base_url=self.api_url,
            headers=self._get_headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            collected: list[PullRequest] = []
            if self.user:
                for query in (
                    f"is:pr is:open review-requested:{self.user}",
                    f"is:pr is:open author:{self.user}",
                ):
                    collected.extend(await self._search(client, query))
            for repository in self.repositories:
                collected.extend(await self._list_repository(client, repository))

        unique: dict[int, PullRequest] = {}
        for pull_request in collected:
            unique.setdefault(pull_request.id, pull_request)

        result = sorted(
            unique.values(),
            key=lambda pr: pr.updated_at or pr.created_at or _EPOCH,
            reverse=True,
        )
        logger.debug("Fetched %d pull requests", len(result))
        return result

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> Any:
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"GitHub request timed out: {path}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                logger.error("GitHub authentication issue. Token may be invalid or missing.")
            raise UpstreamError(f"GitHub API error: HTTP {status}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"GitHub API error: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Error parsing GitHub response: {e}") from e

    async def _search(self, client: httpx.AsyncClient, query: str) -> list[PullRequest]:
        data = await self._get_json(client, "/search/issues", {"q": query, "per_page": 100})
        items = as_dict(data).get("items")
        if not isinstance(items, list):
            raise ParseError("Search response has no items list")
        return [parse_pull_request(item) for item in items]

    async def _list_repository(self, client: httpx.AsyncClient, repository: str) -> list[PullRequest]:
        data = await self._get_json(
            client, f"/repos/{repository}/pulls", {"state": "open", "per_page": 100}
        )
        if not isinstance(data, list):
            raise ParseError(f"Pulls response for {repository} is not a list")
        return [parse_pull_request(item, repository=repository) for item in data]
