"""Build selection module.

This module handles:
- Querying completed component builds for a branch
- Insertability checks (opt-out tags, insertion artifacts)
- Picking the latest passing build or a specific build number
- Build retention after insertion
"""

from component_insertion.builds.selector import (
    get_latest_passed_component_build,
    get_specific_component_build,
    is_insertable,
    retain_component_build,
)

__all__ = [
    "get_latest_passed_component_build",
    "get_specific_component_build",
    "is_insertable",
    "retain_component_build",
]
