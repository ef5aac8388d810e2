"""Component manifest resolution.

A build's drop upload log announces the manifests it published:

    Manifest Url(s):
    https://vsdrop.example.com/file/v1/Products/component/main/20240115.3;Component.vsman

Each URL becomes a Component whose version is read from the manifest's
``info.buildVersion`` field. A copy of the manifest inside the resolved
artifacts is preferred over downloading it.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from component_insertion.artifacts.models import InsertionArtifacts, get_root_directory
from component_insertion.cancellation import check_cancelled
from component_insertion.errors import (
    DownloadError,
    DropLogNotFoundError,
    ManifestFormatError,
    ManifestMarkerNotFoundError,
    ManifestUrlsNotFoundError,
)
from component_insertion.types import Build, Component

if TYPE_CHECKING:
    from component_insertion.azdo.client import BuildClient
    from component_insertion.config import Settings

logger = logging.getLogger(__name__)

DROP_LOG_HEADER = "Upload VSTS Drop"
MANIFEST_MARKER = "Manifest Url(s):"
MANIFEST_EXTENSION = ".vsman"
MANIFEST_URL_PATTERN = re.compile(r"https://.*vsman\r?$", re.MULTILINE)

# Timeout for manifest downloads (seconds)
MANIFEST_TIMEOUT = 60

ManifestFetcher = Callable[[str], str]


def get_build_drop_log(client: BuildClient, settings: Settings, build: Build) -> str:
    """Get the full text of the build log that uploaded the drop.

    Raises:
        DropLogNotFoundError: If no log starts with the drop upload header.
    """
    project = settings.component_build_project_name
    for log_id in client.get_build_logs(project, build.id):
        header = client.get_build_log_lines(
            project, build.id, log_id, start_line=0, end_line=1
        )
        if header and DROP_LOG_HEADER in header[0]:
            logger.debug("Found drop log %d for build %s", log_id, build.build_number)
            return client.get_build_log_text(project, build.id, log_id)

    raise DropLogNotFoundError(build.build_number)


def parse_manifest_urls(log_text: str) -> list[str]:
    """Extract manifest URLs announced after the marker line.

    Raises:
        ManifestMarkerNotFoundError: If the marker is absent.
        ManifestUrlsNotFoundError: If no URL follows the marker.
    """
    start = log_text.find(MANIFEST_MARKER)
    if start == -1:
        raise ManifestMarkerNotFoundError(MANIFEST_MARKER)

    urls = [m.group(0).strip() for m in MANIFEST_URL_PATTERN.finditer(log_text[start:])]
    if not urls:
        raise ManifestUrlsNotFoundError()

    for url in urls:
        logger.info("Manifest URL: %s", url)
    return urls


def get_version_from_json(text: str) -> str | None:
    """Read ``info.buildVersion`` from manifest JSON.

    Returns:
        The build version, or None when the manifest does not declare one.

    Raises:
        ManifestFormatError: If the text is not a JSON object.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestFormatError(f"Manifest is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise ManifestFormatError("Manifest is not a JSON object")

    info = document.get("info")
    if info is None:
        return None
    if not isinstance(info, dict):
        raise ManifestFormatError("Manifest 'info' is not a JSON object")

    version = info.get("buildVersion")
    return str(version) if version is not None else None


def fetch_manifest_json(client: httpx.Client, url: str) -> str:
    """Download manifest text, dropping a leading UTF-8 byte-order mark.

    Raises:
        DownloadError: If the request fails.
        ManifestFormatError: If the body is not UTF-8.
    """
    logger.info("Downloading manifest from %s", url)
    try:
        response = client.get(url, timeout=MANIFEST_TIMEOUT)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error fetching manifest {url}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(f"Timeout fetching manifest {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error fetching manifest {url}: {e}", code="network_error"
        ) from e

    # Manifests may carry a byte-order mark, as local copies do
    try:
        return response.content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ManifestFormatError(f"Manifest {url} is not UTF-8: {e}") from e


def find_local_manifest(root: Path, filename: str) -> Path | None:
    """Find a copy of a manifest under an artifact root.

    Component file names can include directories (for example
    ``bootstrapper/123/abc/Installer.vsman``); only the base name is matched.
    """
    if not root.is_dir():
        return None

    basename = Path(filename).name
    matches = sorted(p for p in root.rglob("*") if p.is_file() and p.name == basename)
    if len(matches) > 1:
        logger.warning(
            "Found %d copies of %s under %s; using %s", len(matches), basename, root, matches[0]
        )
    return matches[0] if matches else None


def component_from_url(
    url: str, artifacts: InsertionArtifacts, fetch: ManifestFetcher
) -> Component:
    """Resolve one manifest URL into a Component."""
    filename = url.split(";")[-1]
    name = filename.removesuffix(MANIFEST_EXTENSION)

    local_path = find_local_manifest(get_root_directory(artifacts), filename)
    if local_path is not None:
        logger.info("Reading manifest from %s", local_path)
        text = local_path.read_text(encoding="utf-8-sig")
    else:
        text = fetch(url)

    return Component(
        name=name,
        filename=filename,
        manifest_url=url,
        version=get_version_from_json(text),
    )


def get_build_components(
    urls: Sequence[str], artifacts: InsertionArtifacts, fetch: ManifestFetcher
) -> list[Component]:
    """Resolve manifest URLs into Components, in URL order."""
    return [component_from_url(url, artifacts, fetch) for url in urls]


def get_latest_build_components(
    client: BuildClient,
    settings: Settings,
    build: Build,
    artifacts: InsertionArtifacts,
    fetch: ManifestFetcher,
    cancel_event: threading.Event | None = None,
) -> list[Component]:
    """Resolve the components a build published."""
    check_cancelled(cancel_event)
    log_text = get_build_drop_log(client, settings, build)
    urls = parse_manifest_urls(log_text)
    check_cancelled(cancel_event)
    return get_build_components(urls, artifacts, fetch)


__all__ = [
    "DROP_LOG_HEADER",
    "MANIFEST_MARKER",
    "ManifestFetcher",
    "component_from_url",
    "fetch_manifest_json",
    "find_local_manifest",
    "get_build_components",
    "get_build_drop_log",
    "get_latest_build_components",
    "get_version_from_json",
    "parse_manifest_urls",
]
