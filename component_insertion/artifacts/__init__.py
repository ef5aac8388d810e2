"""Insertion artifact module.

This module handles:
- The legacy/modern insertion artifact layouts
- Resolving a build's artifacts to a local root directory
- Downloading and extracting container artifacts into a reusable temp directory
"""

from component_insertion.artifacts.models import (
    MODERN_ARTIFACT_NAME,
    InsertionArtifacts,
    InsertionArtifactsKind,
    get_root_directory,
    legacy_artifact_name,
    validate_insertion_artifacts,
)
from component_insertion.artifacts.resolver import (
    get_insertion_artifacts,
    get_temp_directory,
    prepare_temp_directory,
    temp_directory_name,
)

__all__ = [
    "InsertionArtifacts",
    "InsertionArtifactsKind",
    "MODERN_ARTIFACT_NAME",
    "get_insertion_artifacts",
    "get_root_directory",
    "get_temp_directory",
    "legacy_artifact_name",
    "prepare_temp_directory",
    "temp_directory_name",
    "validate_insertion_artifacts",
]
