"""GitHub compare API client for enumerating commits between builds."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from component_insertion.errors import (
    ApiResponseError,
    DownloadError,
    UnsupportedRepositoryError,
)
from component_insertion.types import Build, GitCommit, parse_timestamp

if TYPE_CHECKING:
    from component_insertion.config import Settings

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_REPOSITORY_TYPE = "GitHub"
USER_AGENT = "component-insertion"


def _commit_from_json(data: dict[str, Any]) -> GitCommit:
    commit = data["commit"]
    return GitCommit(
        author=commit["author"]["name"],
        committer=commit["committer"]["name"],
        commit_date=parse_timestamp(commit["author"]["date"]),
        message=commit["message"],
        commit_id=data["sha"],
        remote_url=data.get("html_url", ""),
    )


class GitHubClient:
    """Client for the GitHub REST API compare endpoint."""

    def __init__(
        self,
        client: httpx.Client,
        base_url: str = GITHUB_API_BASE,
        token: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubClient:
        token = settings.github_token.get_secret_value() if settings.github_token else None
        return cls(
            httpx.Client(follow_redirects=True),
            base_url=settings.github_api_url,
            token=token,
            timeout=settings.http_timeout,
        )

    def close(self) -> None:
        self.client.close()

    def get_commits_between(
        self, repo_id: str, from_sha: str, to_sha: str
    ) -> list[GitCommit]:
        """Get the commits between two revisions, HEAD first.

        Args:
            repo_id: Repository in 'owner/name' form.
            from_sha: Base revision.
            to_sha: Head revision.

        Returns:
            Commits ordered newest first.

        Raises:
            DownloadError: If the request fails.
            ApiResponseError: If the payload cannot be interpreted.
        """
        url = f"{self.base_url}/repos/{repo_id}/compare/{from_sha}...{to_sha}"
        logger.info("Getting commits from %s", url)

        try:
            response = self.client.get(url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"HTTP error comparing {from_sha}...{to_sha} in {repo_id}: {e.response.status_code}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise DownloadError(f"Timeout requesting {url}", code="timeout") from e
        except httpx.RequestError as e:
            raise DownloadError(
                f"Network error requesting {url}: {e}", code="network_error"
            ) from e

        try:
            commits = [_commit_from_json(c) for c in response.json()["commits"]]
        except (ValueError, KeyError, TypeError) as e:
            raise ApiResponseError(f"Unexpected compare response for {repo_id}: {e}") from e

        # The compare API lists base first
        commits.reverse()
        return commits

    def get_changes_between_builds(
        self, from_build: Build, to_build: Build
    ) -> tuple[list[GitCommit], str]:
        """Get the commits between two builds and a link to the diff.

        Raises:
            UnsupportedRepositoryError: If the target build is not from GitHub.
        """
        if to_build.repository.type != GITHUB_REPOSITORY_TYPE:
            raise UnsupportedRepositoryError(to_build.repository.type)

        repo_id = to_build.repository.id
        from_sha = from_build.source_version
        to_sha = to_build.source_version
        commits = self.get_commits_between(repo_id, from_sha, to_sha)
        return commits, f"//github.com/{repo_id}/compare/{from_sha}...{to_sha}?w=1"


__all__ = ["GITHUB_API_BASE", "GitHubClient"]
