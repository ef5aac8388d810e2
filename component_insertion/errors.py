"""Error definitions for component_insertion.

Every error carries a stable ``code`` so callers (and the CLI) can handle
failures programmatically. The classes group into four categories:

- not found: no insertable build, no manifest URLs, missing artifact, missing policy
- I/O failure: artifact download, archive extraction, invalid artifact directory
- upstream format: log marker absent, manifest JSON malformed, unexpected API payload
- unsupported: commit listing for a repository not hosted on GitHub
"""

from __future__ import annotations

# Error code constants
BUILD_NOT_FOUND = "build_not_found"
ARTIFACT_NOT_FOUND = "artifact_not_found"
MANIFEST_URLS_NOT_FOUND = "manifest_urls_not_found"
POLICY_NOT_FOUND = "policy_not_found"
DOWNLOAD_ERROR = "download_error"
EXTRACTION_ERROR = "extraction_error"
INVALID_ARTIFACTS = "invalid_artifacts"
MANIFEST_MARKER_NOT_FOUND = "manifest_marker_not_found"
DROP_LOG_NOT_FOUND = "drop_log_not_found"
MANIFEST_FORMAT_ERROR = "manifest_format_error"
API_RESPONSE_ERROR = "api_response_error"
UNSUPPORTED_REPOSITORY = "unsupported_repository"
CANCELLED = "cancelled"


class InsertionError(Exception):
    """Base error for insertion operations."""

    def __init__(self, message: str, code: str = "insertion_error") -> None:
        """Initialize InsertionError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class NotFoundError(InsertionError):
    """Base error for lookups that came back empty."""


class BuildNotFoundError(NotFoundError):
    """Raised when no insertable build exists for a queue and branch."""

    def __init__(self, message: str, code: str = BUILD_NOT_FOUND) -> None:
        super().__init__(message, code)


class ArtifactNotFoundError(NotFoundError):
    """Raised when a build has no artifact with the expected name."""

    def __init__(self, build_id: int, code: str = ARTIFACT_NOT_FOUND) -> None:
        super().__init__(
            f"Could not find insertion artifacts for build {build_id}", code
        )
        self.build_id = build_id


class ManifestUrlsNotFoundError(NotFoundError):
    """Raised when a drop log announces no manifest URLs."""

    def __init__(
        self, message: str = "No manifest URLs found", code: str = MANIFEST_URLS_NOT_FOUND
    ) -> None:
        super().__init__(message, code)


class PolicyNotFoundError(NotFoundError):
    """Raised when a named build policy never shows up on a pull request."""

    def __init__(
        self, policy_name: str, target: str, code: str = POLICY_NOT_FOUND
    ) -> None:
        super().__init__(f"Cannot find a '{policy_name}' build policy in {target}.", code)
        self.policy_name = policy_name
        self.target = target


class DownloadError(InsertionError):
    """Raised when an HTTP request to a build or hosting service fails."""

    def __init__(self, message: str, code: str = DOWNLOAD_ERROR) -> None:
        super().__init__(message, code)


class ExtractionError(InsertionError):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = EXTRACTION_ERROR) -> None:
        super().__init__(message, code)


class InvalidArtifactsError(InsertionError):
    """Raised when a resolved artifact root is missing or empty."""

    def __init__(self, message: str, code: str = INVALID_ARTIFACTS) -> None:
        super().__init__(message, code)


class UpstreamFormatError(InsertionError):
    """Base error for upstream data that does not have the expected shape."""


class ManifestMarkerNotFoundError(UpstreamFormatError):
    """Raised when the manifest announcement marker is missing from a log."""

    def __init__(self, marker: str, code: str = MANIFEST_MARKER_NOT_FOUND) -> None:
        super().__init__(f"Could not locate string '{marker}'", code)
        self.marker = marker


class DropLogNotFoundError(UpstreamFormatError):
    """Raised when a build has no drop upload log."""

    def __init__(self, build_number: str, code: str = DROP_LOG_NOT_FOUND) -> None:
        super().__init__(
            f"Build {build_number} did not upload its contents to VSTS Drop and is invalid.",
            code,
        )
        self.build_number = build_number


class ManifestFormatError(UpstreamFormatError):
    """Raised when a manifest is not a JSON object."""

    def __init__(self, message: str, code: str = MANIFEST_FORMAT_ERROR) -> None:
        super().__init__(message, code)


class ApiResponseError(UpstreamFormatError):
    """Raised when a REST API returns a payload that cannot be interpreted."""

    def __init__(self, message: str, code: str = API_RESPONSE_ERROR) -> None:
        super().__init__(message, code)


class UnsupportedRepositoryError(InsertionError):
    """Raised when commits are requested for a non-GitHub repository."""

    def __init__(
        self, repository_type: str, code: str = UNSUPPORTED_REPOSITORY
    ) -> None:
        super().__init__(
            "Only builds created from GitHub repos support enumerating commits "
            f"(got '{repository_type}').",
            code,
        )
        self.repository_type = repository_type


class OperationCancelledError(InsertionError):
    """Raised when a cancellation signal is observed."""

    def __init__(self, message: str = "Operation cancelled", code: str = CANCELLED) -> None:
        super().__init__(message, code)


__all__ = [
    "API_RESPONSE_ERROR",
    "ARTIFACT_NOT_FOUND",
    "BUILD_NOT_FOUND",
    "CANCELLED",
    "DOWNLOAD_ERROR",
    "DROP_LOG_NOT_FOUND",
    "EXTRACTION_ERROR",
    "INVALID_ARTIFACTS",
    "MANIFEST_FORMAT_ERROR",
    "MANIFEST_MARKER_NOT_FOUND",
    "MANIFEST_URLS_NOT_FOUND",
    "POLICY_NOT_FOUND",
    "UNSUPPORTED_REPOSITORY",
    "ApiResponseError",
    "ArtifactNotFoundError",
    "BuildNotFoundError",
    "DownloadError",
    "DropLogNotFoundError",
    "ExtractionError",
    "InsertionError",
    "InvalidArtifactsError",
    "ManifestFormatError",
    "ManifestMarkerNotFoundError",
    "ManifestUrlsNotFoundError",
    "NotFoundError",
    "OperationCancelledError",
    "PolicyNotFoundError",
    "UnsupportedRepositoryError",
    "UpstreamFormatError",
]
