"""Shared pytest fixtures for the modkit test suite.

Provides reusable fixtures for:
- Mod configurations pointing at temporary destinations
- Canned registry responses and a fake registry client
- Pre-generated template variable sets
- A patched ``httpx.AsyncClient`` for registry tests
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from modkit.config import ModConfiguration
from modkit.registry_client import CompatibilityResponse, RegistryResponse
from modkit.scaffolder.variables import generate_template_variables


# ---------------------------------------------------------------------------
# Registry payloads
# ---------------------------------------------------------------------------

DEPENDENCY_PAYLOAD: dict[str, Any] = {
    "data": {
        "mc_version": "1.21.10",
        "dependencies": [
            {"name": "fabric-api", "loader": "fabric", "version": "0.134.0+1.21.10"},
            {"name": "fabric-loader", "loader": "fabric", "version": "0.17.2"},
            {"name": "loom", "loader": "universal", "version": "1.11-SNAPSHOT"},
            {"name": "forge", "loader": "forge", "version": "60.0.5"},
            {"name": "neoforge", "loader": "neoforge", "version": "21.10.12-beta"},
            {"name": "moddev-gradle", "loader": "universal", "version": "2.0.107"},
            {"name": "neoform", "loader": "universal", "version": "1.21.10-20251010.172816"},
            {"name": "parchment", "loader": "universal", "version": "2025.10.05"},
            {
                "name": "amber",
                "loader": "universal",
                "version": "8.1.0+1.21.10",
                "coordinates": "com.iamkaf.amber:amber-common:8.1.0+1.21.10",
            },
            {
                "name": "jei",
                "loader": "universal",
                "version": None,
            },
            {
                "name": "modmenu",
                "loader": "fabric",
                "version": "16.0.0-rc.1",
            },
        ],
    },
    "timestamp": "2026-10-01T12:00:00Z",
}

COMPATIBILITY_PAYLOAD: dict[str, Any] = {
    "data": {
        "jei": {
            "1.21.10": {
                "fabric": "26.0.0.12",
                "forge": None,
                "neoforge": "26.0.0.14",
            }
        },
        "sodium": {
            "1.21.10": {
                "fabric": "mc1.21.10-0.7.2-fabric",
                "forge": None,
                "neoforge": "mc1.21.10-0.7.2-neoforge",
            }
        },
    }
}


@pytest.fixture
def dependency_payload() -> dict[str, Any]:
    return DEPENDENCY_PAYLOAD


@pytest.fixture
def compatibility_payload() -> dict[str, Any]:
    return COMPATIBILITY_PAYLOAD


@pytest.fixture
def fake_registry() -> MagicMock:
    """A RegistryClient stand-in returning the canned payloads."""
    registry = MagicMock()
    registry.fetch_dependency_versions = AsyncMock(
        return_value=RegistryResponse.model_validate(DEPENDENCY_PAYLOAD)
    )
    registry.fetch_compatibility_versions = AsyncMock(
        return_value=CompatibilityResponse.model_validate(COMPATIBILITY_PAYLOAD)
    )
    return registry


@pytest.fixture
def empty_registry() -> MagicMock:
    """A RegistryClient stand-in that knows nothing."""
    registry = MagicMock()
    registry.fetch_dependency_versions = AsyncMock(return_value=RegistryResponse())
    registry.fetch_compatibility_versions = AsyncMock(return_value=CompatibilityResponse())
    return registry


def make_http_client(payload: Any = None, *, side_effect: Exception | None = None) -> AsyncMock:
    """Build an ``httpx.AsyncClient`` replacement whose ``get`` returns *payload*."""
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = payload
    response.raise_for_status = MagicMock()

    client = AsyncMock()
    if side_effect is not None:
        client.get = AsyncMock(side_effect=side_effect)
    else:
        client.get = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


@pytest.fixture
def mock_http():
    """Factory patching ``httpx.AsyncClient`` with a canned response.

    Usage:
        def test_something(mock_http):
            with mock_http({"data": {}}) as (patched, client):
                ...
    """

    class _Patcher:
        def __init__(self, payload: Any = None, side_effect: Exception | None = None) -> None:
            self.client = make_http_client(payload, side_effect=side_effect)
            self._patch = patch("httpx.AsyncClient", return_value=self.client)

        def __enter__(self) -> tuple[MagicMock, AsyncMock]:
            return self._patch.__enter__(), self.client

        def __exit__(self, *exc_info: Any) -> None:
            self._patch.__exit__(*exc_info)

    return _Patcher


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------


def make_config(destination: Path, **overrides: Any) -> ModConfiguration:
    """A valid fabric-only configuration with test defaults."""
    data: dict[str, Any] = {
        "name": "Gem Tools",
        "author": "Jane Doe",
        "mod_id": "gem-tools",
        "description": "Tools made of gems.",
        "destination": destination,
    }
    data.update(overrides)
    return ModConfiguration(**data)


@pytest.fixture
def destination(tmp_path: Path) -> Path:
    """A not-yet-existing destination inside a writable parent."""
    return tmp_path / "gem-tools"


@pytest.fixture
def fabric_config(destination: Path) -> ModConfiguration:
    return make_config(destination)


@pytest.fixture
def multi_loader_config(destination: Path) -> ModConfiguration:
    return make_config(
        destination,
        loaders=("fabric", "forge", "neoforge"),
        libraries=("amber",),
        mods=("jei",),
    )


@pytest_asyncio.fixture
async def fabric_variables(fabric_config: ModConfiguration, fake_registry: MagicMock):
    return await generate_template_variables(fabric_config, fake_registry)


@pytest_asyncio.fixture
async def multi_loader_variables(multi_loader_config: ModConfiguration, fake_registry: MagicMock):
    return await generate_template_variables(multi_loader_config, fake_registry)


@pytest.fixture
def config_factory():
    """The ``make_config`` helper, for tests that need custom fields."""
    return make_config
