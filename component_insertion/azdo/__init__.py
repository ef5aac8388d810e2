"""Azure DevOps access for component builds, logs, and pull request policies."""

from component_insertion.azdo.client import BuildClient

__all__ = ["BuildClient"]
