"""Tests for azdo/client.py module."""

import json

import httpx
import pytest
import respx

from component_insertion.azdo import BuildClient
from component_insertion.azdo.client import API_VERSION, POLICY_API_VERSION
from component_insertion.config import Settings
from component_insertion.errors import ApiResponseError, DownloadError
from component_insertion.types import BuildResult

COLLECTION = "https://dev.azure.com/org"
API = f"{COLLECTION}/internal/_apis"


@pytest.fixture
def client():
    with BuildClient(httpx.Client(), COLLECTION + "/", timeout=5.0) as build_client:
        yield build_client


def build_json(build_id: int, build_number: str) -> dict:
    return {
        "id": build_id,
        "buildNumber": build_number,
        "project": {"id": "proj-guid", "name": "internal"},
        "finishTime": "2024-01-15T10:20:30Z",
        "result": "succeeded",
    }


class TestBuildQueries:
    """Tests for definition and build queries."""

    @respx.mock
    def test_get_definitions(self, client):
        route = respx.get(f"{API}/build/definitions").mock(
            return_value=httpx.Response(200, json={"count": 2, "value": [{"id": 3}, {"id": 8}]})
        )

        assert client.get_definitions("internal", "component-ci") == [3, 8]
        params = route.calls.last.request.url.params
        assert params["name"] == "component-ci"
        assert params["api-version"] == API_VERSION

    @respx.mock
    def test_get_builds_sends_filters(self, client):
        route = respx.get(f"{API}/build/builds").mock(
            return_value=httpx.Response(
                200, json={"value": [build_json(1, "20240115.1"), build_json(2, "20240115.2")]}
            )
        )

        builds = client.get_builds(
            "internal",
            [3, 8],
            branch_name="refs/heads/main",
            result_filter=[BuildResult.SUCCEEDED, BuildResult.PARTIALLY_SUCCEEDED],
        )

        assert [b.build_number for b in builds] == ["20240115.1", "20240115.2"]
        params = route.calls.last.request.url.params
        assert params["definitions"] == "3,8"
        assert params["branchName"] == "refs/heads/main"
        assert params["resultFilter"] == "succeeded,partiallySucceeded"
        assert params["statusFilter"] == "completed"
        assert "buildNumber" not in params

    def test_project_name_is_quoted(self, client):
        assert client._url("My Project", "build/builds") == (
            f"{COLLECTION}/My%20Project/_apis/build/builds"
        )

    @respx.mock
    def test_missing_value_raises(self, client):
        respx.get(f"{API}/build/builds").mock(
            return_value=httpx.Response(200, json={"unexpected": True})
        )

        with pytest.raises(ApiResponseError):
            client.get_builds("internal", [1])

    @respx.mock
    def test_http_error(self, client):
        respx.get(f"{API}/build/definitions").mock(return_value=httpx.Response(401))

        with pytest.raises(DownloadError) as exc_info:
            client.get_definitions("internal", "ci")
        assert exc_info.value.code == "http_error"

    @respx.mock
    def test_timeout(self, client):
        respx.get(f"{API}/build/definitions").mock(
            side_effect=httpx.ReadTimeout("slow")
        )

        with pytest.raises(DownloadError) as exc_info:
            client.get_definitions("internal", "ci")
        assert exc_info.value.code == "timeout"


class TestArtifacts:
    """Tests for artifact endpoints."""

    @respx.mock
    def test_get_artifacts(self, client):
        respx.get(f"{API}/build/builds/7/artifacts").mock(
            return_value=httpx.Response(
                200,
                json={
                    "value": [
                        {"name": "VSSetup", "resource": {"type": "Container", "data": "#/1"}},
                        {"name": "Drop-1", "resource": {"type": "FilePath", "data": "/share"}},
                    ]
                },
            )
        )

        artifacts = client.get_artifacts("internal", 7)

        assert [a.name for a in artifacts] == ["VSSetup", "Drop-1"]
        assert artifacts[0].is_container
        assert artifacts[1].resource_data == "/share"

    @respx.mock
    def test_get_artifact_content_zip(self, client):
        route = respx.get(f"{API}/build/builds/7/artifacts").mock(
            return_value=httpx.Response(200, content=b"PK\x03\x04zipdata")
        )

        content = client.get_artifact_content_zip("internal", 7, "VSSetup", chunk_size=4)

        assert content.read() == b"PK\x03\x04zipdata"
        params = route.calls.last.request.url.params
        assert params["artifactName"] == "VSSetup"
        assert params["$format"] == "zip"

    @respx.mock
    def test_get_artifact_content_zip_error(self, client):
        respx.get(f"{API}/build/builds/7/artifacts").mock(
            return_value=httpx.Response(404)
        )

        with pytest.raises(DownloadError) as exc_info:
            client.get_artifact_content_zip("internal", 7, "VSSetup")
        assert exc_info.value.code == "http_error"


class TestLogs:
    """Tests for build log endpoints."""

    @respx.mock
    def test_get_build_logs(self, client):
        respx.get(f"{API}/build/builds/7/logs").mock(
            return_value=httpx.Response(200, json={"value": [{"id": 1}, {"id": 2}]})
        )
        assert client.get_build_logs("internal", 7) == [1, 2]

    @respx.mock
    def test_get_build_log_lines(self, client):
        route = respx.get(f"{API}/build/builds/7/logs/2").mock(
            return_value=httpx.Response(200, json={"value": ["Upload VSTS Drop"]})
        )

        lines = client.get_build_log_lines("internal", 7, 2, start_line=0, end_line=1)

        assert lines == ["Upload VSTS Drop"]
        params = route.calls.last.request.url.params
        assert params["startLine"] == "0"
        assert params["endLine"] == "1"

    @respx.mock
    def test_get_build_log_text(self, client):
        route = respx.get(f"{API}/build/builds/7/logs/2").mock(
            return_value=httpx.Response(200, text="line one\nline two\n")
        )

        assert client.get_build_log_text("internal", 7, 2) == "line one\nline two\n"
        assert route.calls.last.request.headers["Accept"] == "text/plain"


class TestUpdates:
    """Tests for retention and policy endpoints."""

    @respx.mock
    def test_update_build_retention(self, client):
        route = respx.patch(f"{API}/build/builds/7").mock(
            return_value=httpx.Response(200, json={})
        )

        client.update_build_retention("internal", 7)

        assert json.loads(route.calls.last.request.content) == {"keepForever": True}

    @respx.mock
    def test_get_policy_evaluations(self, client):
        route = respx.get(f"{COLLECTION}/proj/_apis/policy/evaluations").mock(
            return_value=httpx.Response(
                200,
                json={
                    "value": [
                        {
                            "evaluationId": "e1",
                            "configuration": {
                                "type": {"displayName": "Build"},
                                "settings": {"displayName": "CI"},
                            },
                        }
                    ]
                },
            )
        )

        evaluations = client.get_policy_evaluations("proj", "vstfs:///CodeReview/CodeReviewId/proj/1")

        assert [e.evaluation_id for e in evaluations] == ["e1"]
        params = route.calls.last.request.url.params
        assert params["artifactId"] == "vstfs:///CodeReview/CodeReviewId/proj/1"
        assert params["api-version"] == POLICY_API_VERSION

    @respx.mock
    def test_requeue_policy_evaluation(self, client):
        route = respx.patch(f"{COLLECTION}/proj/_apis/policy/evaluations/e1").mock(
            return_value=httpx.Response(200, json={})
        )

        client.requeue_policy_evaluation("proj", "e1")

        assert route.called


class TestFromSettings:
    """Tests for BuildClient.from_settings."""

    def test_uses_settings(self):
        settings = Settings(
            component_build_azdo_uri="https://dev.azure.com/example/",
            azdo_password="pat",
            http_timeout=12.0,
        )

        with BuildClient.from_settings(settings) as build_client:
            assert build_client.collection_uri == "https://dev.azure.com/example"
            assert build_client.timeout == 12.0
