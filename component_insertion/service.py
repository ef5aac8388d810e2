"""Insertion service module.

This module provides the high-level insertion API:
- create_context(): build the clients once from settings
- resolve_build(): latest passing build or a specific build number
- compile_changelog(): changelog between a previous build and the new one
- prepare_insertion(): build + artifacts + components + description

Pull request creation is left to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

import httpx

from component_insertion.artifacts.models import (
    InsertionArtifacts,
    validate_insertion_artifacts,
)
from component_insertion.artifacts.resolver import get_insertion_artifacts
from component_insertion.azdo.client import BuildClient
from component_insertion.builds.selector import (
    get_latest_passed_component_build,
    get_specific_component_build,
)
from component_insertion.cancellation import check_cancelled
from component_insertion.changelog import ChangelogPolicy, append_changes_to_description
from component_insertion.config import Settings
from component_insertion.errors import BuildNotFoundError
from component_insertion.github import GitHubClient
from component_insertion.manifests import fetch_manifest_json, get_latest_build_components
from component_insertion.types import Build, BuildVersion, Component

logger = logging.getLogger(__name__)


@dataclass
class InsertionContext:
    """Settings and clients shared by every step of one insertion run."""

    settings: Settings
    build_client: BuildClient
    github_client: GitHubClient
    http_client: httpx.Client

    def fetch_manifest(self, url: str) -> str:
        return fetch_manifest_json(self.http_client, url)

    def close(self) -> None:
        self.build_client.close()
        self.github_client.close()
        self.http_client.close()

    def __enter__(self) -> InsertionContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class InsertionPlan:
    """Everything needed to open an insertion pull request."""

    build: Build
    artifacts: InsertionArtifacts
    components: list[Component] = field(default_factory=list)
    description: str = ""
    diff_link: str | None = None


def create_context(settings: Settings) -> InsertionContext:
    """Create the clients for an insertion run."""
    return InsertionContext(
        settings=settings,
        build_client=BuildClient.from_settings(settings),
        github_client=GitHubClient.from_settings(settings),
        http_client=httpx.Client(follow_redirects=True),
    )


def resolve_build(
    context: InsertionContext,
    build_number: str | None = None,
    cancel_event: threading.Event | None = None,
) -> Build:
    """Get a specific build, or the latest passing build when no number is given.

    Raises:
        BuildNotFoundError: If no matching build exists.
        ValueError: If ``build_number`` is not a valid version.
    """
    settings = context.settings
    if build_number is None:
        return get_latest_passed_component_build(
            context.build_client, settings, cancel_event
        )

    version = BuildVersion.from_build_number(
        build_number, settings.component_build_queue_name
    )
    build = get_specific_component_build(
        context.build_client, settings, version, cancel_event
    )
    if build is None:
        raise BuildNotFoundError(
            f"Unable to find build {version} for '{settings.component_build_queue_name}' "
            f"from project '{settings.component_build_project_name}'"
        )
    return build


def compile_changelog(
    context: InsertionContext,
    previous_build: Build,
    build: Build,
    description: str = "",
) -> tuple[str, str]:
    """Append the changes between two builds to a description.

    Returns:
        Tuple of (description, diff link).

    Raises:
        UnsupportedRepositoryError: If the build is not from a GitHub repository.
    """
    commits, diff_link = context.github_client.get_changes_between_builds(
        previous_build, build
    )
    logger.info(
        "Found %d commits between %s and %s",
        len(commits),
        previous_build.build_number,
        build.build_number,
    )
    policy = ChangelogPolicy.from_settings(context.settings)
    return (
        append_changes_to_description(
            description, previous_build.repository.id, commits, policy
        ),
        diff_link,
    )


def prepare_insertion(
    context: InsertionContext,
    build_number: str | None = None,
    previous_build_number: str | None = None,
    description: str = "",
    cancel_event: threading.Event | None = None,
) -> InsertionPlan:
    """Run the insertion pipeline up to pull request creation.

    Args:
        context: Insertion context.
        build_number: Build to insert; the latest passing build if None.
        previous_build_number: Previously inserted build, for the changelog.
        description: Base pull request description.
        cancel_event: Set to request cancellation between steps.

    Returns:
        InsertionPlan for the selected build.
    """
    build = resolve_build(context, build_number, cancel_event)
    logger.info("Inserting build %s", build.build_number)

    artifacts = get_insertion_artifacts(
        context.build_client, context.settings, build, cancel_event
    )
    validate_insertion_artifacts(artifacts)

    components = get_latest_build_components(
        context.build_client,
        context.settings,
        build,
        artifacts,
        context.fetch_manifest,
        cancel_event,
    )

    plan = InsertionPlan(
        build=build, artifacts=artifacts, components=components, description=description
    )

    if previous_build_number is not None:
        check_cancelled(cancel_event)
        previous = resolve_build(context, previous_build_number, cancel_event)
        plan.description, plan.diff_link = compile_changelog(
            context, previous, build, description
        )

    return plan


__all__ = [
    "InsertionContext",
    "InsertionPlan",
    "compile_changelog",
    "create_context",
    "prepare_insertion",
    "resolve_build",
]
