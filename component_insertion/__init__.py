"""Component Insertion - promote upstream component builds downstream.

This package selects the build to insert, resolves its artifacts to a local
directory, resolves component versions from manifests, and compiles the
changelog used as the pull request description.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
