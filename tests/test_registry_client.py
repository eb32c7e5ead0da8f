"""Unit tests for RegistryClient (modkit.registry_client).

Tests cover:
- extract_clean_version (suffix stripping, idempotence)
- RegistryResponse.find / find_version with null and missing versions
- CompatibilityResponse lookups
- fetch_dependency_versions (URL, success, timeout, HTTP error, bad payload)
- fetch_compatibility_versions (empty short-circuit, URL, success)
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from modkit.dependencies import get_registry_project_names
from modkit.registry_client import (
    CompatibilityResponse,
    RegistryClient,
    RegistryError,
    RegistryResponse,
    extract_clean_version,
)


# ---------------------------------------------------------------------------
# extract_clean_version
# ---------------------------------------------------------------------------


class TestExtractCleanVersion:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "coordinates,expected",
        [
            ("maven.modrinth:jei:19.21.0+fabric", "19.21.0"),
            ("maven.modrinth:jade:15.1.0-forge", "15.1.0"),
            ("maven.modrinth:sodium:0.7.2+neoforge", "0.7.2"),
            ("com.iamkaf.amber:amber-common:8.1.0+1.21.10", "8.1.0+1.21.10"),
            ("19.21.0", "19.21.0"),
            ("group:artifact:", ""),
        ],
    )
    def test_examples(self, coordinates: str, expected: str):
        assert extract_clean_version(coordinates) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value", ["19.21.0", "mc1.21.10-0.7.2", "8.1.0+1.21.10", "1.0.0-beta", "a:b:2.0+fabric"]
    )
    def test_idempotent(self, value: str):
        once = extract_clean_version(value)
        assert extract_clean_version(once) == once


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TestRegistryResponse:
    @pytest.mark.unit
    def test_find_version(self, dependency_payload: dict[str, Any]):
        response = RegistryResponse.model_validate(dependency_payload)
        assert response.find_version("fabric-api") == "0.134.0+1.21.10"
        assert response.data.mc_version == "1.21.10"

    @pytest.mark.unit
    def test_null_version_is_none(self, dependency_payload: dict[str, Any]):
        response = RegistryResponse.model_validate(dependency_payload)
        assert response.find("jei") is not None
        assert response.find_version("jei") is None

    @pytest.mark.unit
    def test_missing_project_is_none(self, dependency_payload: dict[str, Any]):
        response = RegistryResponse.model_validate(dependency_payload)
        assert response.find("nope") is None
        assert response.find_version("nope") is None

    @pytest.mark.unit
    def test_empty_response(self):
        response = RegistryResponse()
        assert response.data.dependencies == []
        assert response.find_version("fabric-api") is None

    @pytest.mark.unit
    def test_empty_version_is_none(self):
        response = RegistryResponse.model_validate(
            {"data": {"dependencies": [{"name": "forge", "version": ""}]}}
        )
        assert response.find_version("forge") is None


class TestCompatibilityResponse:
    @pytest.mark.unit
    def test_loader_versions(self, compatibility_payload: dict[str, Any]):
        response = CompatibilityResponse.model_validate(compatibility_payload)
        matrix = response.loader_versions("jei", "1.21.10")
        assert matrix is not None
        assert matrix.for_loader("fabric") == "26.0.0.12"
        assert matrix.for_loader("forge") is None

    @pytest.mark.unit
    def test_unknown_project_or_version(self, compatibility_payload: dict[str, Any]):
        response = CompatibilityResponse.model_validate(compatibility_payload)
        assert response.loader_versions("jei", "1.20.1") is None
        assert response.loader_versions("nope", "1.21.10") is None


# ---------------------------------------------------------------------------
# RegistryClient
# ---------------------------------------------------------------------------


class TestRegistryClientInit:
    @pytest.mark.unit
    def test_defaults(self):
        client = RegistryClient()
        assert client.base_url == "https://echo.iamkaf.com/api"
        assert client.timeout == 15.0

    @pytest.mark.unit
    def test_trailing_slash_stripped(self):
        client = RegistryClient(base_url="http://localhost:8080/api/")
        assert client.base_url == "http://localhost:8080/api"


class TestFetchDependencyVersions:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self, mock_http, dependency_payload: dict[str, Any]):
        with mock_http(dependency_payload) as (patched, http):
            response = await RegistryClient().fetch_dependency_versions("1.21.10")

        assert response.find_version("neoforge") == "21.10.12-beta"
        path = http.get.call_args[0][0]
        assert path.startswith("/versions/dependencies/1.21.10?projects=")
        assert path.endswith(",".join(get_registry_project_names()))
        assert patched.call_args.kwargs["base_url"] == "https://echo.iamkaf.com/api"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_explicit_projects(self, mock_http):
        with mock_http({"data": {"dependencies": []}}) as (_, http):
            await RegistryClient().fetch_dependency_versions("1.21.8", ["fabric-api", "jei"])
        assert http.get.call_args[0][0] == "/versions/dependencies/1.21.8?projects=fabric-api,jei"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self, mock_http):
        with mock_http(side_effect=httpx.ReadTimeout("slow")):
            with pytest.raises(RegistryError, match="timed out"):
                await RegistryClient(timeout=1.0).fetch_dependency_versions("1.21.10")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self, mock_http):
        with mock_http(side_effect=httpx.ConnectError("refused")):
            with pytest.raises(RegistryError, match="Cannot reach registry"):
                await RegistryClient().fetch_dependency_versions("1.21.10")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_status_error(self, mock_http):
        request = httpx.Request("GET", "https://echo.iamkaf.com/api/versions/dependencies/1.21.10")
        response = httpx.Response(503, request=request)
        with mock_http({}) as (_, http):
            failing = MagicMock()
            failing.raise_for_status.side_effect = httpx.HTTPStatusError(
                "unavailable", request=request, response=response
            )
            http.get.return_value = failing
            with pytest.raises(RegistryError, match="HTTP 503"):
                await RegistryClient().fetch_dependency_versions("1.21.10")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_http):
        with mock_http({}) as (_, http):
            broken = MagicMock()
            broken.raise_for_status = MagicMock()
            broken.json.side_effect = ValueError("Expecting value")
            http.get.return_value = broken
            with pytest.raises(RegistryError, match="invalid JSON"):
                await RegistryClient().fetch_dependency_versions("1.21.10")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_shape(self, mock_http):
        with mock_http({"data": {"dependencies": "not-a-list"}}):
            with pytest.raises(RegistryError, match="Unexpected dependency response shape"):
                await RegistryClient().fetch_dependency_versions("1.21.10")


class TestFetchCompatibilityVersions:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_list_skips_network(self, mock_http):
        with mock_http({}) as (patched, http):
            response = await RegistryClient().fetch_compatibility_versions("1.21.10", [])
        assert response.data == {}
        patched.assert_not_called()
        http.get.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self, mock_http, compatibility_payload: dict[str, Any]):
        with mock_http(compatibility_payload) as (_, http):
            response = await RegistryClient().fetch_compatibility_versions(
                "1.21.10", ["jei", "sodium"]
            )
        assert http.get.call_args[0][0] == "/projects/compatibility?projects=jei,sodium&versions=1.21.10"
        matrix = response.loader_versions("sodium", "1.21.10")
        assert matrix is not None
        assert matrix.neoforge == "mc1.21.10-0.7.2-neoforge"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_error_propagates(self, mock_http):
        with mock_http(side_effect=httpx.ConnectError("refused")):
            with pytest.raises(RegistryError):
                await RegistryClient().fetch_compatibility_versions("1.21.10", ["jei"])
