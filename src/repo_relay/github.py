"""GitHub API client abstraction.

Provides a Protocol for the handful of GitHub operations the relay needs
and two implementations:
- MemoryGitHubClient: In-memory, no network calls (testing/local runs)
- HttpGitHubClient: Real GitHub REST API calls (production)

The relay always works through the GitHubClient protocol, making it
fully testable without a real GitHub installation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
import yaml

logger = logging.getLogger(__name__)


class GitHubAPIError(RuntimeError):
    """A GitHub API call returned an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RepositoryInfo:
    owner: str
    name: str
    private: bool

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class CreatedIssue:
    number: int
    html_url: str = ""


@runtime_checkable
class GitHubClient(Protocol):
    """Protocol for GitHub API operations."""

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        """Look up a repository (raises on failure)."""
        ...

    async def create_issue(
        self, owner: str, repo: str, title: str, body: str
    ) -> CreatedIssue:
        """Open an issue. Returns its number."""
        ...

    async def create_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> None:
        """Comment on an issue."""
        ...

    async def get_repo_config(
        self, owner: str, repo: str, path: str
    ) -> dict[str, Any] | None:
        """Load a YAML file from the repository. None if it does not exist."""
        ...


@dataclass
class RecordedIssue:
    """Record of an issue created through the memory client."""

    owner: str
    repo: str
    number: int
    title: str
    body: str


@dataclass
class RecordedComment:
    """Record of a comment posted through the memory client."""

    owner: str
    repo: str
    issue_number: int
    body: str


@dataclass
class _SeededRepo:
    private: bool = True
    config: dict[str, Any] | None = None
    next_issue: int = 1


class MemoryGitHubClient:
    """In-memory GitHub client for testing and local runs.

    Records all operations for inspection. No network calls.
    Implements GitHubClient protocol.
    """

    def __init__(self) -> None:
        self.created_issues: list[RecordedIssue] = []
        self.comments: list[RecordedComment] = []
        self.repository_lookups: list[str] = []
        self._repos: dict[str, _SeededRepo] = {}
        # Exceptions to raise per operation name (for failure tests)
        self.failures: dict[str, Exception] = {}

    def seed_repo(
        self,
        full_name: str,
        *,
        private: bool = True,
        config: dict[str, Any] | None = None,
        next_issue: int = 1,
    ) -> None:
        """Pre-populate a repository (for test setup)."""
        self._repos[full_name] = _SeededRepo(
            private=private, config=config, next_issue=next_issue
        )

    def _repo(self, owner: str, repo: str) -> _SeededRepo:
        full_name = f"{owner}/{repo}"
        if full_name not in self._repos:
            raise GitHubAPIError(f"Not Found: {full_name}", status_code=404)
        return self._repos[full_name]

    def _maybe_fail(self, operation: str) -> None:
        error = self.failures.get(operation)
        if error is not None:
            raise error

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        self.repository_lookups.append(f"{owner}/{repo}")
        self._maybe_fail("get_repository")
        seeded = self._repo(owner, repo)
        return RepositoryInfo(owner=owner, name=repo, private=seeded.private)

    async def create_issue(
        self, owner: str, repo: str, title: str, body: str
    ) -> CreatedIssue:
        self._maybe_fail("create_issue")
        seeded = self._repo(owner, repo)
        number = seeded.next_issue
        seeded.next_issue += 1
        self.created_issues.append(
            RecordedIssue(owner=owner, repo=repo, number=number, title=title, body=body)
        )
        return CreatedIssue(
            number=number, html_url=f"https://github.com/{owner}/{repo}/issues/{number}"
        )

    async def create_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> None:
        self._maybe_fail("create_comment")
        self.comments.append(
            RecordedComment(
                owner=owner, repo=repo, issue_number=issue_number, body=body
            )
        )

    async def get_repo_config(
        self, owner: str, repo: str, path: str
    ) -> dict[str, Any] | None:
        self._maybe_fail("get_repo_config")
        seeded = self._repos.get(f"{owner}/{repo}")
        if seeded is None:
            return None
        return seeded.config


class HttpGitHubClient:
    """Real GitHub REST API client.

    Uses a GitHub token (PAT or installation token) for every call.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self, accept: str = "application/vnd.github+json") -> dict[str, str]:
        headers = {
            "Accept": accept,
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "repo-relay",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        accept: str = "application/vnd.github+json",
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method, path, headers=self._headers(accept), json=json
            )
        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise GitHubAPIError(
                f"GitHub API error {response.status_code} on {method} {path}: {detail}",
                status_code=response.status_code,
            )
        return response

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        data = (await self._request("GET", f"/repos/{owner}/{repo}")).json()
        return RepositoryInfo(
            owner=data.get("owner", {}).get("login", owner),
            name=data.get("name", repo),
            private=data.get("private") is True,
        )

    async def create_issue(
        self, owner: str, repo: str, title: str, body: str
    ) -> CreatedIssue:
        data = (
            await self._request(
                "POST",
                f"/repos/{owner}/{repo}/issues",
                json={"title": title, "body": body},
            )
        ).json()
        return CreatedIssue(number=data["number"], html_url=data.get("html_url", ""))

    async def create_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        )

    async def get_repo_config(
        self, owner: str, repo: str, path: str
    ) -> dict[str, Any] | None:
        try:
            response = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/contents/{path}",
                accept="application/vnd.github.raw+json",
            )
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise
        try:
            data = yaml.safe_load(response.text)
        except yaml.YAMLError:
            logger.warning("Invalid YAML in %s/%s:%s", owner, repo, path, exc_info=True)
            return None
        return data if isinstance(data, dict) else None
