"""Tests for manifests module."""

import json

import httpx
import pytest
import respx

from component_insertion.artifacts import InsertionArtifacts
from component_insertion.config import Settings
from component_insertion.errors import (
    DownloadError,
    DropLogNotFoundError,
    ManifestFormatError,
    ManifestMarkerNotFoundError,
    ManifestUrlsNotFoundError,
)
from component_insertion.manifests import (
    component_from_url,
    fetch_manifest_json,
    find_local_manifest,
    get_build_components,
    get_build_drop_log,
    get_latest_build_components,
    get_version_from_json,
    parse_manifest_urls,
)
from component_insertion.types import Build

URL_A = "https://vsdrop.example.com/file/v1/Products/c/main/1.0;Component.A.vsman"
URL_B = "https://vsdrop.example.com/file/v1/Products/c/main/1.0;Component.B.vsman"

DROP_LOG = f"""2024-01-15T10:00:00Z Upload VSTS Drop
Uploading files...
Manifest Url(s):\r
{URL_A}\r
{URL_B}\r
Finishing: Upload VSTS Drop
"""


def manifest(version: str | None) -> str:
    info = {"id": "Component"}
    if version is not None:
        info["buildVersion"] = version
    return json.dumps({"manifestVersion": "1.1", "info": info})


class FakeLogClient:
    """Serves build logs by id."""

    def __init__(self, logs: dict[int, str]):
        self.logs = logs
        self.text_requests = []

    def get_build_logs(self, project, build_id):
        return list(self.logs)

    def get_build_log_lines(self, project, build_id, log_id, start_line, end_line):
        return self.logs[log_id].splitlines()[start_line:end_line]

    def get_build_log_text(self, project, build_id, log_id):
        self.text_requests.append(log_id)
        return self.logs[log_id]


def no_fetch(url: str) -> str:
    raise AssertionError(f"unexpected fetch of {url}")


@pytest.fixture
def build():
    return Build(id=3, build_number="20240115.3", project_id="proj")


class TestParseManifestUrls:
    """Tests for parse_manifest_urls."""

    def test_urls_after_marker(self):
        """Should strip trailing carriage returns."""
        assert parse_manifest_urls(DROP_LOG) == [URL_A, URL_B]

    def test_urls_before_marker_are_ignored(self):
        text = f"{URL_A}\nManifest Url(s):\n{URL_B}\n"
        assert parse_manifest_urls(text) == [URL_B]

    def test_missing_marker(self):
        with pytest.raises(ManifestMarkerNotFoundError) as exc_info:
            parse_manifest_urls(f"Upload VSTS Drop\n{URL_A}\n")
        assert exc_info.value.code == "manifest_marker_not_found"

    def test_marker_without_urls(self):
        with pytest.raises(ManifestUrlsNotFoundError):
            parse_manifest_urls("Manifest Url(s):\nnothing here\n")


class TestGetVersionFromJson:
    """Tests for get_version_from_json."""

    def test_version_present(self):
        assert get_version_from_json(manifest("1.2.3")) == "1.2.3"

    def test_version_missing(self):
        assert get_version_from_json(manifest(None)) is None

    def test_info_missing(self):
        assert get_version_from_json("{}") is None

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"info": "x"}'])
    def test_malformed(self, text):
        with pytest.raises(ManifestFormatError):
            get_version_from_json(text)


class TestFindLocalManifest:
    """Tests for find_local_manifest."""

    def test_matches_base_name_recursively(self, tmp_path):
        target = tmp_path / "Insertion" / "Component.A.vsman"
        target.parent.mkdir()
        target.write_text("{}")

        assert find_local_manifest(tmp_path, "bootstrapper/1/Component.A.vsman") == target

    def test_missing(self, tmp_path):
        assert find_local_manifest(tmp_path, "Component.A.vsman") is None
        assert find_local_manifest(tmp_path / "nope", "Component.A.vsman") is None


class TestComponentFromUrl:
    """Tests for component_from_url and get_build_components."""

    def test_prefers_local_copy(self, tmp_path):
        (tmp_path / "Component.A.vsman").write_text(manifest("4.5.6"), encoding="utf-8-sig")

        component = component_from_url(URL_A, InsertionArtifacts.modern(tmp_path), no_fetch)

        assert component.name == "Component.A"
        assert component.filename == "Component.A.vsman"
        assert component.manifest_url == URL_A
        assert component.version == "4.5.6"

    def test_fetches_when_not_local(self, tmp_path):
        fetched = []

        def fetch(url):
            fetched.append(url)
            return manifest("7.0")

        component = component_from_url(URL_B, InsertionArtifacts.legacy(tmp_path), fetch)

        assert fetched == [URL_B]
        assert component.name == "Component.B"
        assert component.version == "7.0"

    def test_missing_version(self, tmp_path):
        component = component_from_url(
            URL_A, InsertionArtifacts.legacy(tmp_path), lambda url: manifest(None)
        )
        assert component.version is None

    def test_components_keep_url_order(self, tmp_path):
        components = get_build_components(
            [URL_B, URL_A], InsertionArtifacts.legacy(tmp_path), lambda url: manifest("1")
        )
        assert [c.name for c in components] == ["Component.B", "Component.A"]


class TestDropLog:
    """Tests for drop log lookup."""

    def test_finds_log_by_header(self, build):
        client = FakeLogClient({1: "Initialize job\nstuff\n", 2: DROP_LOG})

        assert get_build_drop_log(client, Settings(), build) == DROP_LOG
        assert client.text_requests == [2]

    def test_no_drop_log(self, build):
        client = FakeLogClient({1: "Initialize job\n"})

        with pytest.raises(DropLogNotFoundError):
            get_build_drop_log(client, Settings(), build)

    def test_latest_build_components(self, build, tmp_path):
        (tmp_path / "Component.A.vsman").write_text(manifest("1.0.1"))
        client = FakeLogClient({5: DROP_LOG})

        components = get_latest_build_components(
            client,
            Settings(),
            build,
            InsertionArtifacts.modern(tmp_path),
            lambda url: manifest("2.0.2"),
        )

        assert [(c.name, c.version) for c in components] == [
            ("Component.A", "1.0.1"),
            ("Component.B", "2.0.2"),
        ]


class TestFetchManifestJson:
    """Tests for fetch_manifest_json."""

    @respx.mock
    def test_success(self):
        respx.get(URL_A).mock(return_value=httpx.Response(200, text=manifest("3.0")))

        with httpx.Client() as client:
            assert fetch_manifest_json(client, URL_A) == manifest("3.0")

    @respx.mock
    def test_byte_order_mark_is_dropped(self):
        """A fetched manifest with a UTF-8 BOM should parse like a local copy."""
        body = b"\xef\xbb\xbf" + manifest("1.2.3").encode("utf-8")
        respx.get(URL_A).mock(return_value=httpx.Response(200, content=body))

        with httpx.Client() as client:
            text = fetch_manifest_json(client, URL_A)

        assert not text.startswith("\ufeff")
        assert get_version_from_json(text) == "1.2.3"

    @respx.mock
    def test_non_utf8_body(self):
        respx.get(URL_A).mock(return_value=httpx.Response(200, content=b"\xff\xfe{}"))

        with httpx.Client() as client, pytest.raises(ManifestFormatError):
            fetch_manifest_json(client, URL_A)

    @respx.mock
    def test_http_error(self):
        respx.get(URL_A).mock(return_value=httpx.Response(404))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            fetch_manifest_json(client, URL_A)
        assert exc_info.value.code == "http_error"

    @respx.mock
    def test_network_error(self):
        respx.get(URL_A).mock(side_effect=httpx.ConnectError("refused"))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            fetch_manifest_json(client, URL_A)
        assert exc_info.value.code == "network_error"
