"""GitHub implementation of the VCS metadata port."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Self

import httpx

from addon_sync.exceptions import VcsError
from addon_sync.log import get_logger
from addon_sync.models import (
    UNKNOWN_COMMIT,
    CommitAuthor,
    CommitInfo,
    CompareInfo,
    RemoteInfo,
)


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from addon_sync.models import InstalledAddon


logger = get_logger(__name__)

API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
CHUNK_SIZE = 50
SHORT_SHA_LENGTH = 6


def build_hash_query(addons: Sequence[InstalledAddon]) -> str:
    """GraphQL query fetching the head commit of each addon's branch.

    Each addon gets aliased as `repo<index>` so answers map back by position.
    """
    parts = ["query {"]
    for index, addon in enumerate(addons):
        parts.append(
            f"  repo{index}: repository(owner: {json.dumps(addon.owner)}, name: {json.dumps(addon.repo)}) {{\n"
            "    isPrivate\n"
            f"    ref(qualifiedName: {json.dumps(addon.branch)}) {{\n"
            "      target { ... on Commit { oid } }\n"
            "    }\n"
            "  }"
        )
    parts.append("}")
    return "\n".join(parts)


def parse_hash_response(
    addons: Sequence[InstalledAddon], data: dict[str, Any]
) -> dict[str, RemoteInfo]:
    """Map aliased GraphQL answers back to addons.

    Repositories that are missing or inaccessible come back as null and get the
    UNKNOWN sentinel, same as branches without a ref.
    """
    result: dict[str, RemoteInfo] = {}
    for index, addon in enumerate(addons):
        item = data.get(f"repo{index}") or {}
        target = (item.get("ref") or {}).get("target") or {}
        result[addon.url] = RemoteInfo(
            latest_commit=target.get("oid") or UNKNOWN_COMMIT,
            is_private=bool(item.get("isPrivate", False)),
        )
    return result


def parse_compare_response(data: dict[str, Any]) -> CompareInfo:
    """Convert a compare API payload into CompareInfo."""
    commits: list[CommitInfo] = []
    for commit in data.get("commits", []):
        author = commit.get("author") or {}
        details = commit.get("commit") or {}
        commits.append(
            CommitInfo(
                sha=commit["sha"],
                message=details.get("message", ""),
                url=commit.get("html_url", ""),
                author=CommitAuthor(
                    username=author.get("login") or "unknown",
                    avatar=author.get("avatar_url") or "",
                    url=author.get("html_url") or "",
                ),
                verified=bool((details.get("verification") or {}).get("verified", False)),
                date=(details.get("author") or {}).get("date") or "",
            )
        )
    return CompareInfo(url=data.get("html_url", ""), commits=commits)


class GitHubClient:
    """Async client for the parts of the GitHub API addon_sync needs.

    Examples:
        ```python
        async with GitHubClient(token) as github:
            info = await github.get_latest_commit_hashes(addons)
        ```
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str = API_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize GitHub client.

        Args:
            token: Personal access token (needed for the GraphQL API)
            api_url: API base URL
            timeout: Request timeout in seconds
            client: Preconfigured HTTP client to use instead of a new one
        """
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": API_VERSION,
            "Accept": "application/vnd.github+json",
        }

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(
                method, f"{self.api_url}{path}", headers=headers, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            msg = f"GitHub API {method} {path} failed with {e.response.status_code}"
            raise VcsError(msg) from e
        except httpx.HTTPError as e:
            msg = f"GitHub API {method} {path} failed: {e}"
            raise VcsError(msg) from e
        return response

    async def request_hashes(self, addons: Sequence[InstalledAddon]) -> dict[str, RemoteInfo]:
        """Fetch latest commits for a single chunk of addons."""
        if not addons:
            return {}
        response = await self._request("POST", "/graphql", json={"query": build_hash_query(addons)})
        payload = response.json()
        data = payload.get("data")
        if data is None:
            msg = f"GitHub GraphQL query failed: {payload.get('errors')}"
            raise VcsError(msg)
        if errors := payload.get("errors"):
            # Partial answers: missing repositories are null in `data`.
            logger.warning("GitHub GraphQL reported errors", count=len(errors))
        return parse_hash_response(addons, data)

    async def get_latest_commit_hashes(
        self, addons: Sequence[InstalledAddon]
    ) -> dict[str, RemoteInfo]:
        """Latest commit per addon, queried in chunks of 50."""
        addons = list(addons)
        results: dict[str, RemoteInfo] = {}
        total = (len(addons) + CHUNK_SIZE - 1) // CHUNK_SIZE
        for number, start in enumerate(range(0, len(addons), CHUNK_SIZE), start=1):
            logger.info("Processing chunk", chunk=number, total=total)
            results.update(await self.request_hashes(addons[start : start + CHUNK_SIZE]))
        return results

    async def get_commit_range_diff(
        self, owner: str, repo: str, old_sha: str, new_sha: str
    ) -> CompareInfo:
        """Commits between two revisions of a repository."""
        basehead = f"{old_sha[:SHORT_SHA_LENGTH]}...{new_sha[:SHORT_SHA_LENGTH]}"
        path = f"/repos/{owner}/{repo}/compare/{basehead}"
        logger.info("Getting diff", owner=owner, repo=repo, basehead=basehead)
        response = await self._request("GET", path)
        return parse_compare_response(response.json())

    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        """Raw content of a file in a repository."""
        logger.info("Getting file", owner=owner, repo=repo, path=path)
        params = {"ref": ref} if ref else None
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path.lstrip('/')}",
            params=params,
            headers={"Accept": "application/vnd.github.v3.raw"},
        )
        return response.text
