"""Azure DevOps build service client.

This module wraps the REST endpoints the insertion pipeline consumes:
- Build definitions and completed builds
- Build artifacts (listing and zip content download)
- Build logs (header lines and full text)
- Pull request policy evaluations (listing and requeue)
- Build retention

HTTP failures are translated into DownloadError with a structured code.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from io import BytesIO
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from component_insertion.errors import ApiResponseError, DownloadError
from component_insertion.types import (
    Build,
    BuildArtifact,
    BuildResult,
    PolicyEvaluation,
)

if TYPE_CHECKING:
    from component_insertion.config import Settings

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
POLICY_API_VERSION = "7.1-preview.1"

# Chunk size for artifact downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class BuildClient:
    """Client for the Azure DevOps build and policy REST APIs."""

    def __init__(
        self,
        client: httpx.Client,
        collection_uri: str,
        timeout: float = 300.0,
    ) -> None:
        """Initialize BuildClient.

        Args:
            client: HTTPX client instance (carries authentication).
            collection_uri: Collection URI, e.g. 'https://dev.azure.com/org'.
            timeout: Request timeout in seconds.
        """
        self.client = client
        self.collection_uri = collection_uri.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> BuildClient:
        """Create a client with basic authentication from settings."""
        auth = None
        if settings.azdo_password is not None:
            auth = httpx.BasicAuth(
                settings.azdo_username, settings.azdo_password.get_secret_value()
            )
        client = httpx.Client(auth=auth, follow_redirects=True)
        return cls(client, settings.component_build_azdo_uri, settings.http_timeout)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> BuildClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _url(self, project: str, path: str) -> str:
        return f"{self.collection_uri}/{quote(project, safe='')}/_apis/{path}"

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and raise DownloadError on failure."""
        query = {"api-version": API_VERSION}
        query.update(params or {})
        try:
            response = self.client.request(
                method, url, params=query, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"HTTP error requesting {url}: {e.response.status_code} {e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise DownloadError(f"Timeout requesting {url}", code="timeout") from e
        except httpx.RequestError as e:
            raise DownloadError(
                f"Network error requesting {url}: {e}", code="network_error"
            ) from e

    def _get_values(
        self, url: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        response = self._request("GET", url, params=params)
        try:
            payload = response.json()
            return list(payload["value"])
        except (ValueError, KeyError, TypeError) as e:
            raise ApiResponseError(f"Unexpected response from {url}: {e}") from e

    def get_definitions(self, project: str, name: str) -> list[int]:
        """Get the ids of build definitions with the given name."""
        logger.debug("Getting build definitions named %s in %s", name, project)
        values = self._get_values(
            self._url(project, "build/definitions"), params={"name": name}
        )
        return [int(v["id"]) for v in values]

    def get_builds(
        self,
        project: str,
        definitions: Iterable[int],
        branch_name: str | None = None,
        result_filter: Iterable[BuildResult] | None = None,
        build_number: str | None = None,
        status_filter: str = "completed",
    ) -> list[Build]:
        """Get builds of the given definitions.

        Args:
            project: Project name or id.
            definitions: Build definition ids.
            branch_name: Only builds for this branch reference.
            result_filter: Only builds with one of these results.
            build_number: Only builds with this build number.
            status_filter: Build status to query.

        Returns:
            Builds in the order returned by the service.
        """
        params: dict[str, Any] = {
            "definitions": ",".join(str(d) for d in definitions),
            "statusFilter": status_filter,
        }
        if branch_name:
            params["branchName"] = branch_name
        if result_filter:
            params["resultFilter"] = ",".join(r.value for r in result_filter)
        if build_number:
            params["buildNumber"] = build_number

        values = self._get_values(self._url(project, "build/builds"), params=params)
        return [Build.from_json(v) for v in values]

    def get_artifacts(self, project: str, build_id: int) -> list[BuildArtifact]:
        """List artifacts published by a build."""
        values = self._get_values(
            self._url(project, f"build/builds/{build_id}/artifacts")
        )
        return [BuildArtifact.from_json(v) for v in values]

    def get_artifact_content_zip(
        self,
        project: str,
        build_id: int,
        artifact_name: str,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> BytesIO:
        """Download an artifact's content as a zip archive held in memory.

        Returns:
            BytesIO positioned at the start of the archive.

        Raises:
            DownloadError: If the download fails.
        """
        url = self._url(project, f"build/builds/{build_id}/artifacts")
        params = {
            "api-version": API_VERSION,
            "artifactName": artifact_name,
            "$format": "zip",
        }
        logger.info("Downloading artifact %s of build %d", artifact_name, build_id)

        buffer = BytesIO()
        try:
            with self.client.stream(
                "GET", url, params=params, timeout=self.timeout
            ) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes(chunk_size):
                    buffer.write(chunk)
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"HTTP error downloading {artifact_name}: {e.response.status_code} {e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise DownloadError(
                f"Timeout downloading {artifact_name}", code="timeout"
            ) from e
        except httpx.RequestError as e:
            raise DownloadError(
                f"Network error downloading {artifact_name}: {e}", code="network_error"
            ) from e

        logger.debug("Downloaded %d bytes for %s", buffer.tell(), artifact_name)
        buffer.seek(0)
        return buffer

    def get_build_logs(self, project: str, build_id: int) -> list[int]:
        """Get the ids of a build's logs."""
        values = self._get_values(self._url(project, f"build/builds/{build_id}/logs"))
        return [int(v["id"]) for v in values]

    def get_build_log_lines(
        self,
        project: str,
        build_id: int,
        log_id: int,
        start_line: int | None = None,
        end_line: int | None = None,
    ) -> list[str]:
        """Get a range of lines from a build log."""
        params: dict[str, Any] = {}
        if start_line is not None:
            params["startLine"] = start_line
        if end_line is not None:
            params["endLine"] = end_line
        values = self._get_values(
            self._url(project, f"build/builds/{build_id}/logs/{log_id}"),
            params=params,
        )
        return [str(line) for line in values]

    def get_build_log_text(self, project: str, build_id: int, log_id: int) -> str:
        """Get the full text of a build log."""
        response = self._request(
            "GET",
            self._url(project, f"build/builds/{build_id}/logs/{log_id}"),
            headers={"Accept": "text/plain"},
        )
        return response.text

    def update_build_retention(
        self, project: str, build_id: int, keep_forever: bool = True
    ) -> None:
        """Mark a build to be retained (or released) by the build service."""
        self._request(
            "PATCH",
            self._url(project, f"build/builds/{build_id}"),
            json={"keepForever": keep_forever},
        )

    def get_policy_evaluations(
        self, project_id: str, artifact_id: str
    ) -> list[PolicyEvaluation]:
        """Get policy evaluations for a pull request artifact."""
        values = self._get_values(
            self._url(project_id, "policy/evaluations"),
            params={"artifactId": artifact_id, "api-version": POLICY_API_VERSION},
        )
        return [PolicyEvaluation.from_json(v) for v in values]

    def requeue_policy_evaluation(self, project_id: str, evaluation_id: str) -> None:
        """Requeue a policy evaluation."""
        self._request(
            "PATCH",
            self._url(project_id, f"policy/evaluations/{evaluation_id}"),
            params={"api-version": POLICY_API_VERSION},
        )


__all__ = ["API_VERSION", "BuildClient", "POLICY_API_VERSION"]
