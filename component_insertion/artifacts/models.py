"""Insertion artifact layout.

A build publishes its insertion payload in one of two layouts:

- LEGACY: an artifact named after the build number, either published to a
  drop share (root is ``<share>/<build number>``) or uploaded as a container
- MODERN: a single container artifact with a fixed name

Both expose the same thing to consumers: a root directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from component_insertion.errors import InvalidArtifactsError

logger = logging.getLogger(__name__)

# Artifact name passed to the publish task by modern builds
MODERN_ARTIFACT_NAME = "VSSetup"

LEGACY_ARTIFACT_PREFIX = "Drop-"


class InsertionArtifactsKind(str, Enum):
    """Layout of a build's insertion artifacts."""

    LEGACY = "legacy"
    MODERN = "modern"


def legacy_artifact_name(build_number: str) -> str:
    """Return the legacy artifact name for a build number."""
    return f"{LEGACY_ARTIFACT_PREFIX}{build_number}"


def is_insertion_artifact_name(name: str, build_number: str) -> bool:
    """Return True if ``name`` is the modern or legacy artifact name for a build."""
    return name in (MODERN_ARTIFACT_NAME, legacy_artifact_name(build_number))


@dataclass(frozen=True)
class InsertionArtifacts:
    """Resolved insertion artifacts of a single build."""

    kind: InsertionArtifactsKind
    root_directory: Path

    @classmethod
    def legacy(cls, root_directory: Path | str) -> InsertionArtifacts:
        return cls(InsertionArtifactsKind.LEGACY, Path(root_directory))

    @classmethod
    def modern(cls, root_directory: Path | str) -> InsertionArtifacts:
        return cls(InsertionArtifactsKind.MODERN, Path(root_directory))

    @classmethod
    def from_local_build(cls, path: Path | None) -> InsertionArtifacts | None:
        """Create artifacts from a locally available build drop.

        A directory containing a ``VSSetup`` folder is a modern layout; any
        other existing directory is used as a legacy root.

        Returns:
            InsertionArtifacts, or None if ``path`` is unset or not a directory.
        """
        if path is None or not path.is_dir():
            return None
        modern_root = path / MODERN_ARTIFACT_NAME
        if modern_root.is_dir():
            return cls.modern(modern_root)
        return cls.legacy(path)


def get_root_directory(artifacts: InsertionArtifacts) -> Path:
    """Return the root directory of resolved insertion artifacts."""
    return artifacts.root_directory


def validate_insertion_artifacts(artifacts: InsertionArtifacts) -> Path:
    """Check that the artifact root exists and holds a payload.

    Returns:
        The validated root directory.

    Raises:
        InvalidArtifactsError: If the root is missing or contains no files.
    """
    root = get_root_directory(artifacts)
    if not root.is_dir():
        raise InvalidArtifactsError(f"Artifact root does not exist: {root}")
    if not any(p.is_file() for p in root.rglob("*")):
        raise InvalidArtifactsError(f"Artifact root is empty: {root}")
    logger.debug("Validated %s artifacts at %s", artifacts.kind.value, root)
    return root


__all__ = [
    "InsertionArtifacts",
    "InsertionArtifactsKind",
    "LEGACY_ARTIFACT_PREFIX",
    "MODERN_ARTIFACT_NAME",
    "get_root_directory",
    "is_insertion_artifact_name",
    "legacy_artifact_name",
    "validate_insertion_artifacts",
]
