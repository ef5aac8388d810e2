"""Tests for github module."""

import httpx
import pytest
import respx

from component_insertion.config import Settings
from component_insertion.errors import (
    ApiResponseError,
    DownloadError,
    UnsupportedRepositoryError,
)
from component_insertion.github import GitHubClient
from component_insertion.types import Build, RepositoryInfo

COMPARE_URL = "https://api.github.com/repos/dotnet/component/compare/aaa...ccc"


def commit_json(sha: str, message: str) -> dict:
    return {
        "sha": sha,
        "html_url": f"https://github.com/dotnet/component/commit/{sha}",
        "commit": {
            "author": {"name": "dev", "date": "2024-01-15T10:00:00Z"},
            "committer": {"name": "GitHub", "date": "2024-01-15T10:00:00Z"},
            "message": message,
        },
    }


def github_build(build_id: int, sha: str, repo_type: str = "GitHub") -> Build:
    return Build(
        id=build_id,
        build_number=f"1.{build_id}",
        project_id="proj",
        repository=RepositoryInfo(type=repo_type, id="dotnet/component"),
        source_version=sha,
    )


@pytest.fixture
def github():
    client = GitHubClient(httpx.Client(), token="secret-token")
    yield client
    client.close()


class TestGetCommitsBetween:
    """Tests for GitHubClient.get_commits_between."""

    @respx.mock
    def test_commits_newest_first(self, github):
        route = respx.get(COMPARE_URL).mock(
            return_value=httpx.Response(
                200,
                json={"commits": [commit_json("bbb", "older"), commit_json("ccc", "newer")]},
            )
        )

        commits = github.get_commits_between("dotnet/component", "aaa", "ccc")

        assert [c.commit_id for c in commits] == ["ccc", "bbb"]
        assert commits[0].message == "newer"
        assert commits[0].committer == "GitHub"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["User-Agent"] == "component-insertion"

    @respx.mock
    def test_http_error(self, github):
        respx.get(COMPARE_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(DownloadError) as exc_info:
            github.get_commits_between("dotnet/component", "aaa", "ccc")
        assert exc_info.value.code == "http_error"

    @respx.mock
    def test_unexpected_payload(self, github):
        respx.get(COMPARE_URL).mock(return_value=httpx.Response(200, json={"files": []}))

        with pytest.raises(ApiResponseError):
            github.get_commits_between("dotnet/component", "aaa", "ccc")


class TestGetChangesBetweenBuilds:
    """Tests for GitHubClient.get_changes_between_builds."""

    @respx.mock
    def test_returns_commits_and_diff_link(self, github):
        respx.get(COMPARE_URL).mock(
            return_value=httpx.Response(200, json={"commits": [commit_json("ccc", "x")]})
        )

        commits, link = github.get_changes_between_builds(
            github_build(1, "aaa"), github_build(2, "ccc")
        )

        assert len(commits) == 1
        assert link == "//github.com/dotnet/component/compare/aaa...ccc?w=1"

    def test_non_github_repository(self, github):
        with pytest.raises(UnsupportedRepositoryError) as exc_info:
            github.get_changes_between_builds(
                github_build(1, "aaa"), github_build(2, "ccc", repo_type="TfsGit")
            )
        assert exc_info.value.code == "unsupported_repository"


class TestFromSettings:
    """Tests for GitHubClient.from_settings."""

    def test_without_token(self):
        client = GitHubClient.from_settings(Settings(github_api_url="https://ghe.example.com/api/v3/"))
        try:
            assert client.base_url == "https://ghe.example.com/api/v3"
            assert "Authorization" not in client.headers
        finally:
            client.close()
