"""Insertion artifact resolution.

This module turns an insertable build into a local root directory:
- A locally provided build drop is used as-is
- Legacy artifacts published to a share resolve to ``<share>/<build number>``
- Container artifacts are downloaded as a zip and extracted into a temp
  directory named after the insertion and component branch

The temp directory is reused across runs. It is deleted before every
extraction; deletion is best-effort and the wait for it is bounded.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from component_insertion.artifacts.models import (
    MODERN_ARTIFACT_NAME,
    InsertionArtifacts,
    legacy_artifact_name,
)
from component_insertion.cancellation import check_cancelled
from component_insertion.errors import ArtifactNotFoundError, ExtractionError

if TYPE_CHECKING:
    from component_insertion.azdo.client import BuildClient
    from component_insertion.config import Settings
    from component_insertion.types import Build, BuildArtifact

logger = logging.getLogger(__name__)

# Defaults for the best-effort wait after deleting the temp directory
DELETE_WAIT_TIMEOUT = 20.0
DELETE_POLL_INTERVAL = 0.1


def temp_directory_name(insertion_name: str, branch_name: str) -> str:
    """Return the deterministic temp directory name for an insertion."""
    name = f"{insertion_name}{branch_name}"
    for ch in (" ", "/", "\\"):
        name = name.replace(ch, "_")
    return name


def get_temp_directory(settings: Settings) -> Path:
    """Return the temp directory used for this insertion's downloads."""
    return settings.temp_root / temp_directory_name(
        settings.insertion_name, settings.component_branch_name
    )


def prepare_temp_directory(
    temp_dir: Path,
    timeout: float = DELETE_WAIT_TIMEOUT,
    poll_interval: float = DELETE_POLL_INTERVAL,
) -> Path:
    """Delete and recreate the temp directory.

    On some platforms directory deletion is not synchronously observable, so
    after deleting we poll for the directory to disappear, up to ``timeout``
    seconds. If it is still there we carry on anyway. A file or symlink
    occupying the path is unlinked instead.

    Args:
        temp_dir: Directory to reset.
        timeout: Maximum seconds to wait for deletion to become visible.
        poll_interval: Seconds between existence checks.

    Returns:
        The (now empty) temp directory.

    Raises:
        ExtractionError: If the directory cannot be created.
    """
    if temp_dir.exists() or temp_dir.is_symlink():
        logger.info("Removing old artifacts at %s", temp_dir)
        try:
            if temp_dir.is_dir() and not temp_dir.is_symlink():
                shutil.rmtree(temp_dir)
            else:
                temp_dir.unlink()
        except OSError as e:
            logger.warning("Failed to remove %s: %s", temp_dir, e)

        start = time.monotonic()
        while temp_dir.exists() and time.monotonic() - start < timeout:
            time.sleep(poll_interval)

        if temp_dir.exists():
            logger.warning(
                "%s still exists after waiting %.1f seconds; continuing", temp_dir, timeout
            )

    try:
        temp_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExtractionError(
            f"Cannot create temp directory {temp_dir}: {e}", code="os_error"
        ) from e
    return temp_dir


def download_build_artifacts(
    client: BuildClient,
    settings: Settings,
    build: Build,
    artifact: BuildArtifact,
    cancel_event: threading.Event | None = None,
) -> Path:
    """Download a container artifact and extract it into the temp directory.

    The previous extraction is only removed once the archive is in memory
    and no cancellation was requested.

    Returns:
        Root directory of the extracted artifact.

    Raises:
        DownloadError: If the download fails.
        ExtractionError: If the archive cannot be extracted.
        OperationCancelledError: If cancellation was requested.
    """
    check_cancelled(cancel_event)
    logger.info("Downloading artifact %s of build %s", artifact.name, build.build_number)
    start = time.monotonic()

    content = client.get_artifact_content_zip(
        build.project_id, build.id, artifact.name
    )

    check_cancelled(cancel_event)
    temp_dir = prepare_temp_directory(
        get_temp_directory(settings),
        timeout=settings.temp_delete_timeout,
        poll_interval=settings.temp_delete_poll_interval,
    )
    logger.info("Extracting artifacts to %s", temp_dir / artifact.name)
    try:
        with zipfile.ZipFile(content) as archive:
            archive.extractall(temp_dir)
    except zipfile.BadZipFile as e:
        raise ExtractionError(
            f"Artifact {artifact.name} of build {build.id} is not a valid zip: {e}",
            code="bad_zip",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {artifact.name} to {temp_dir}: {e}",
            code="os_error",
        ) from e

    logger.info(
        "Artifact download and extraction took %d seconds", int(time.monotonic() - start)
    )

    root_dir = temp_dir / artifact.name
    if not root_dir.is_dir():
        # Archive was not rooted at the artifact name
        root_dir = temp_dir
    return root_dir


def get_insertion_artifacts(
    client: BuildClient,
    settings: Settings,
    build: Build,
    cancel_event: threading.Event | None = None,
) -> InsertionArtifacts:
    """Resolve a build's insertion artifacts to a local directory.

    A local build drop configured in settings takes priority over the
    build service.

    Raises:
        ArtifactNotFoundError: If the build has no insertion artifact.
        DownloadError: If a container download fails.
        ExtractionError: If a container cannot be extracted.
    """
    local = InsertionArtifacts.from_local_build(settings.build_drop_path)
    if local is not None:
        logger.info("Using local build drop at %s", local.root_directory)
        return local

    check_cancelled(cancel_event)
    legacy_name = legacy_artifact_name(build.build_number)

    for artifact in client.get_artifacts(build.project_id, build.id):
        if artifact.name == MODERN_ARTIFACT_NAME:
            if not artifact.is_container:
                raise ArtifactNotFoundError(build.id)
            return InsertionArtifacts.modern(
                download_build_artifacts(client, settings, build, artifact, cancel_event)
            )
        if artifact.name == legacy_name:
            if artifact.is_container:
                # Published to the artifact server instead of a drop share
                return InsertionArtifacts.legacy(
                    download_build_artifacts(
                        client, settings, build, artifact, cancel_event
                    )
                )
            return InsertionArtifacts.legacy(
                Path(artifact.resource_data) / build.build_number
            )

    # Callers only pass insertable builds
    raise ArtifactNotFoundError(build.id)


__all__ = [
    "DELETE_POLL_INTERVAL",
    "DELETE_WAIT_TIMEOUT",
    "download_build_artifacts",
    "get_insertion_artifacts",
    "get_temp_directory",
    "prepare_temp_directory",
    "temp_directory_name",
]
