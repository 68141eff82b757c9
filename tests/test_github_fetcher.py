"""Tests for the GitHub pull request fetcher."""

from datetime import datetime, timezone

import httpx
import pytest

from statusbeacon.exceptions import FetchTimeoutError, NotConfiguredError, ParseError, UpstreamError
from statusbeacon.fetchers.base import FetchContext
from statusbeacon.fetchers.github import PullRequestFetcher, parse_pull_request
from statusbeacon.models import PullRequestState
from statusbeacon.sources import Source

CONTEXT = FetchContext(source=Source.PULL_REQUESTS)


def pr_item(id: int, number: int, repo: str, updated: str, author: str = "octocat") -> dict:
    return {
        "id": id,
        "number": number,
        "title": f"PR {number}",
        "html_url": f"https://github.com/{repo}/pull/{number}",
        "repository_url": f"https://api.github.com/repos/{repo}",
        "user": {"login": author},
        "state": "open",
        "created_at": "2024-01-01T10:00:00Z",
        "updated_at": updated,
    }


def make_fetcher(handler, **kwargs) -> PullRequestFetcher:
    defaults = {"user": "octocat", "repositories": [], "token": "t0ken"}
    return PullRequestFetcher(
        **(defaults | kwargs), api_url="https://api.test", transport=httpx.MockTransport(handler)
    )


class TestParsePullRequest:
    """Test parse_pull_request."""

    def test_search_item(self) -> None:
        pr = parse_pull_request(pr_item(1, 42, "acme/web", "2024-01-02T08:00:00Z"))
        assert pr.repository == "acme/web"
        assert pr.repository_owner == "acme"
        assert pr.repository_name == "web"
        assert pr.author == "octocat"
        assert pr.updated_at == datetime(2024, 1, 2, 8, tzinfo=timezone.utc)
        assert pr.state is PullRequestState.OPEN
        assert pr.state.is_active

    def test_merged_item(self) -> None:
        item = pr_item(1, 42, "acme/web", "2024-01-02T08:00:00Z") | {"merged_at": "2024-01-02T09:00:00Z"}
        assert parse_pull_request(item).state is PullRequestState.MERGED

    def test_missing_fields(self) -> None:
        with pytest.raises(ParseError):
            parse_pull_request({"title": "no id"})


class TestPullRequestFetcher:
    """Test PullRequestFetcher against a mocked API."""

    @pytest.mark.asyncio
    async def test_merges_searches_and_repositories(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/search/issues":
                query = request.url.params["q"]
                if "review-requested" in query:
                    return httpx.Response(200, json={"items": [pr_item(1, 1, "acme/api", "2024-01-03T00:00:00Z")]})
                return httpx.Response(200, json={"items": [pr_item(2, 2, "acme/web", "2024-01-01T00:00:00Z")]})
            if request.url.path == "/repos/acme/web/pulls":
                # Same PR as the author search plus a new one
                return httpx.Response(
                    200,
                    json=[
                        pr_item(2, 2, "acme/web", "2024-01-01T00:00:00Z"),
                        pr_item(3, 3, "acme/web", "2024-01-02T00:00:00Z", author="hubot"),
                    ],
                )
            return httpx.Response(404)

        fetcher = make_fetcher(handler, repositories=["acme/web"])
        result = await fetcher.fetch(CONTEXT)

        assert result.ok
        assert [pr.id for pr in result.value] == [1, 3, 2]
        assert all(r.headers["Authorization"] == "Bearer t0ken" for r in requests)
        assert {r.url.params.get("q") for r in requests if r.url.path == "/search/issues"} == {
            "is:pr is:open review-requested:octocat",
            "is:pr is:open author:octocat",
        }

    @pytest.mark.asyncio
    async def test_repositories_only(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/api/pulls"
            return httpx.Response(200, json=[pr_item(5, 9, "acme/api", "2024-01-01T00:00:00Z")])

        result = await make_fetcher(handler, user="", repositories=["acme/api"]).fetch(CONTEXT)
        assert [pr.number for pr in result.value] == [9]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kwargs", "expected"),
        [
            ({"user": "", "repositories": []}, NotConfiguredError("GitHub service is not configured")),
            ({"token": ""}, NotConfiguredError("No GitHub API token available")),
        ],
        ids=["no-user-or-repos", "no-token"],
    )
    async def test_not_configured(self, kwargs: dict, expected: NotConfiguredError) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        result = await make_fetcher(handler, **kwargs).fetch(CONTEXT)
        assert result.error == expected

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        result = await make_fetcher(lambda request: httpx.Response(502)).fetch(CONTEXT)
        assert result.error == UpstreamError("GitHub API error: HTTP 502")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        result = await make_fetcher(handler).fetch(CONTEXT)
        assert isinstance(result.error, FetchTimeoutError)

    @pytest.mark.asyncio
    async def test_malformed_response(self) -> None:
        result = await make_fetcher(lambda request: httpx.Response(200, json={"total": 0})).fetch(CONTEXT)
        assert result.error == ParseError("Search response has no items list")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        result = await make_fetcher(lambda request: httpx.Response(200, text="<html>")).fetch(CONTEXT)
        assert isinstance(result.error, ParseError)
