"""Shared type definitions for component_insertion.

This module contains dataclasses, enums, and helpers shared across
subpackages to avoid circular imports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from component_insertion.errors import ApiResponseError

_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp as returned by the REST APIs.

    Fractional seconds beyond microseconds are dropped.
    """
    return datetime.fromisoformat(_FRACTION_PATTERN.sub(r"\1", value, count=1))


class BuildResult(str, Enum):
    """Result of a completed build, as reported by the build service."""

    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partiallySucceeded"
    FAILED = "failed"
    CANCELED = "canceled"
    NONE = "none"

    @classmethod
    def parse(cls, value: str | None) -> BuildResult:
        """Parse a service result string, mapping unknown values to NONE."""
        if not value:
            return cls.NONE
        for member in cls:
            if member.value.lower() == value.lower():
                return member
        return cls.NONE


class ChangeKind(str, Enum):
    """Classification of a commit in the changelog."""

    MERGE_PR = "merge_pr"
    SQUASH_PR = "squash_pr"
    COMMIT = "commit"


@dataclass(frozen=True)
class RepositoryInfo:
    """Source repository a build was produced from."""

    type: str
    id: str


@dataclass(frozen=True)
class Build:
    """A completed component build.

    Attributes:
        id: Build identifier.
        build_number: Human-readable build number (e.g. '20240115.3').
        project_id: Identifier of the project owning the build.
        project_name: Name of the project owning the build.
        source_branch: Branch reference the build ran on.
        finish_time: When the build finished, if known.
        result: Build result.
        tags: Free-text tags attached to the build.
        repository: Repository descriptor.
        source_version: Source revision (commit SHA) that was built.
    """

    id: int
    build_number: str
    project_id: str
    project_name: str = ""
    source_branch: str = ""
    finish_time: datetime | None = None
    result: BuildResult = BuildResult.NONE
    tags: frozenset[str] = field(default_factory=frozenset)
    repository: RepositoryInfo = field(default_factory=lambda: RepositoryInfo("", ""))
    source_version: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Build:
        """Create a Build from a build REST API payload.

        Raises:
            ApiResponseError: If required fields are missing.
        """
        try:
            project = data["project"]
            finish_raw = data.get("finishTime")
            repository = data.get("repository") or {}
            return cls(
                id=int(data["id"]),
                build_number=str(data["buildNumber"]),
                project_id=str(project["id"]),
                project_name=str(project.get("name", "")),
                source_branch=data.get("sourceBranch", ""),
                finish_time=parse_timestamp(finish_raw) if finish_raw else None,
                result=BuildResult.parse(data.get("result")),
                tags=frozenset(data.get("tags") or ()),
                repository=RepositoryInfo(
                    type=repository.get("type", ""), id=repository.get("id", "")
                ),
                source_version=data.get("sourceVersion", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ApiResponseError(f"Unexpected build payload: {e}") from e


@dataclass(frozen=True)
class BuildArtifact:
    """An artifact published by a build.

    ``resource_type`` is ``container`` when the content has to be downloaded
    from the build service; otherwise ``resource_data`` is a directly
    addressable path.
    """

    name: str
    resource_type: str
    resource_data: str = ""

    @property
    def is_container(self) -> bool:
        return self.resource_type.lower() == "container"

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> BuildArtifact:
        """Create a BuildArtifact from an artifacts REST API payload."""
        resource = data.get("resource") or {}
        return cls(
            name=data.get("name", ""),
            resource_type=resource.get("type") or "",
            resource_data=resource.get("data") or "",
        )


@dataclass(frozen=True)
class Component:
    """A component described by a manifest published with a build."""

    name: str
    filename: str
    manifest_url: str
    version: str | None = None


@dataclass(frozen=True)
class GitCommit:
    """A commit between two builds, newest first in any list of them."""

    author: str
    committer: str
    commit_date: datetime
    message: str
    commit_id: str
    remote_url: str


@dataclass(frozen=True)
class PullRequestRef:
    """Identifies a downstream pull request for policy operations."""

    project_id: str
    pull_request_id: int
    description: str = ""

    @property
    def artifact_id(self) -> str:
        """Policy artifact identifier of the pull request."""
        return f"vstfs:///CodeReview/CodeReviewId/{self.project_id}/{self.pull_request_id}"


@dataclass(frozen=True)
class PolicyEvaluation:
    """A policy evaluation record attached to a pull request."""

    evaluation_id: str
    type_display_name: str
    display_name: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PolicyEvaluation:
        """Create a PolicyEvaluation from a policy REST API payload."""
        configuration = data.get("configuration") or {}
        policy_type = configuration.get("type") or {}
        settings = configuration.get("settings") or {}
        display_name = settings.get("displayName")
        return cls(
            evaluation_id=str(data.get("evaluationId", "")),
            type_display_name=policy_type.get("displayName") or "",
            display_name=str(display_name) if display_name is not None else None,
        )


_VERSION_PATTERN = re.compile(r"^\d+(\.\d+)+$")


@dataclass(frozen=True, order=True)
class BuildVersion:
    """A dotted numeric build version such as ``20240115.3``."""

    parts: tuple[int, ...]

    @classmethod
    def parse(cls, value: str) -> BuildVersion:
        """Parse a dotted numeric version.

        Raises:
            ValueError: If the value is not a dotted numeric string.
        """
        value = value.strip()
        if not _VERSION_PATTERN.match(value):
            raise ValueError(f"Invalid build version: '{value}'")
        return cls(tuple(int(p) for p in value.split(".")))

    @classmethod
    def from_build_number(cls, build_number: str, queue_name: str = "") -> BuildVersion:
        """Parse a build number, dropping an optional ``<queue>_`` prefix."""
        prefix = f"{queue_name}_"
        if queue_name and build_number.startswith(prefix):
            build_number = build_number[len(prefix) :]
        return cls.parse(build_number)

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


__all__ = [
    "Build",
    "BuildArtifact",
    "BuildResult",
    "BuildVersion",
    "ChangeKind",
    "Component",
    "GitCommit",
    "PolicyEvaluation",
    "PullRequestRef",
    "RepositoryInfo",
    "parse_timestamp",
]
