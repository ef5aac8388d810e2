"""Build selection.

This module picks the component build to insert:
- get_latest_passed_component_build(): newest insertable passing build
- get_specific_component_build(): the build with an exact build number
- is_insertable(): tag opt-out and artifact presence checks

A build is insertable when it is not tagged
``DoesNotRequireInsertion_<target branch>`` and publishes either the modern
or the legacy insertion artifact.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from component_insertion.artifacts.models import is_insertion_artifact_name
from component_insertion.cancellation import check_cancelled
from component_insertion.errors import BuildNotFoundError, OperationCancelledError
from component_insertion.types import Build, BuildResult, BuildVersion

if TYPE_CHECKING:
    from component_insertion.azdo.client import BuildClient
    from component_insertion.config import Settings

logger = logging.getLogger(__name__)

NO_INSERTION_TAG_PREFIX = "DoesNotRequireInsertion_"

PASSING_RESULTS = (BuildResult.SUCCEEDED, BuildResult.PARTIALLY_SUCCEEDED)


def opt_out_tag(target_branch: str) -> str:
    """Return the tag that excludes a build from insertion into a branch."""
    return f"{NO_INSERTION_TAG_PREFIX}{target_branch}"


def _finish_time_key(build: Build) -> tuple[bool, float]:
    if build.finish_time is None:
        return (False, 0.0)
    return (True, build.finish_time.timestamp())


def order_by_finish_time(builds: Iterable[Build]) -> list[Build]:
    """Sort builds newest first; ties keep their original order."""
    return sorted(builds, key=_finish_time_key, reverse=True)


def get_component_builds(
    client: BuildClient,
    settings: Settings,
    definitions: list[int],
    result_filter: Iterable[BuildResult] | None = None,
) -> list[Build]:
    """Get completed builds of the component branch.

    Builds may be recorded under either ``<branch>`` or
    ``refs/heads/<branch>``, so both are queried and concatenated.
    """
    project = settings.component_build_project_name
    branch = settings.component_branch_name
    filters = list(result_filter) if result_filter else None

    builds = list(
        client.get_builds(
            project, definitions, branch_name=branch, result_filter=filters
        )
    )
    builds += client.get_builds(
        project,
        definitions,
        branch_name=f"refs/heads/{branch}",
        result_filter=filters,
    )
    return builds


def is_insertable(client: BuildClient, settings: Settings, build: Build) -> bool:
    """Return True if the build can be inserted into the target branch."""
    if opt_out_tag(settings.visual_studio_branch_name) in build.tags:
        logger.debug("Build %s opted out of insertion", build.build_number)
        return False

    artifacts = client.get_artifacts(build.project_id, build.id)
    return any(
        is_insertion_artifact_name(a.name, build.build_number) for a in artifacts
    )


def iter_insertable_builds(
    client: BuildClient, settings: Settings, builds: Iterable[Build]
) -> Iterator[Build]:
    """Yield insertable builds lazily, preserving order."""
    for build in builds:
        if is_insertable(client, settings, build):
            yield build


def get_insertable_builds(
    client: BuildClient, settings: Settings, builds: Iterable[Build]
) -> list[Build]:
    """Filter builds down to insertable ones, preserving order."""
    return list(iter_insertable_builds(client, settings, builds))


def get_latest_component_build(
    client: BuildClient,
    settings: Settings,
    result_filter: Iterable[BuildResult] | None = None,
) -> Build | None:
    """Get the most recently finished insertable build, or None."""
    definitions = client.get_definitions(
        settings.component_build_project_name, settings.component_build_queue_name
    )
    builds = get_component_builds(client, settings, definitions, result_filter)
    ordered = order_by_finish_time(builds)
    return next(iter_insertable_builds(client, settings, ordered), None)


def get_latest_passed_component_build(
    client: BuildClient,
    settings: Settings,
    cancel_event: threading.Event | None = None,
) -> Build:
    """Get the newest insertable build that succeeded or partially succeeded.

    Raises:
        BuildNotFoundError: If no such build exists or the lookup failed.
        OperationCancelledError: If cancellation was requested.
    """
    check_cancelled(cancel_event)

    queue = settings.component_build_queue_name
    project = settings.component_build_project_name
    branch = settings.component_branch_name
    context = (
        f"'{queue}' from project '{project}' in '{settings.component_build_azdo_uri}' "
        f"(branch '{branch}')"
    )
    logger.info(
        "Getting latest passing build for project %s, queue %s, and branch %s",
        project,
        queue,
        branch,
    )

    try:
        build = get_latest_component_build(client, settings, PASSING_RESULTS)
    except OperationCancelledError:
        raise
    except Exception as e:
        raise BuildNotFoundError(f"Unable to get latest build for {context}: {e}") from e

    if build is None:
        raise BuildNotFoundError(f"Unable to get latest build for {context}")

    if build.result == BuildResult.PARTIALLY_SUCCEEDED:
        logger.warning(
            "The latest build being used, %s has partially succeeded!",
            build.build_number,
        )

    check_cancelled(cancel_event)
    return build


def get_specific_component_build(
    client: BuildClient,
    settings: Settings,
    version: BuildVersion,
    cancel_event: threading.Event | None = None,
) -> Build | None:
    """Get the completed build whose build number matches ``version``.

    Build numbers that do not parse are ignored. Should the service return
    duplicates, the most recently finished one wins.
    """
    check_cancelled(cancel_event)
    logger.info("Getting build with build number %s", version)

    project = settings.component_build_project_name
    queue = settings.component_build_queue_name
    definitions = client.get_definitions(project, queue)
    builds = client.get_builds(project, definitions, build_number=str(version))

    matching = []
    for build in builds:
        try:
            parsed = BuildVersion.from_build_number(build.build_number, queue)
        except ValueError:
            logger.debug("Ignoring build with unparseable number %s", build.build_number)
            continue
        if parsed == version:
            matching.append(build)

    ordered = order_by_finish_time(matching)
    return ordered[0] if ordered else None


def retain_component_build(client: BuildClient, build: Build) -> None:
    """Mark an inserted build to be kept forever."""
    logger.info("Marking inserted build %s for retention.", build.build_number)
    client.update_build_retention(build.project_id, build.id, keep_forever=True)


__all__ = [
    "NO_INSERTION_TAG_PREFIX",
    "PASSING_RESULTS",
    "get_component_builds",
    "get_insertable_builds",
    "get_latest_component_build",
    "get_latest_passed_component_build",
    "get_specific_component_build",
    "is_insertable",
    "iter_insertable_builds",
    "opt_out_tag",
    "order_by_finish_time",
    "retain_component_build",
]
