"""Async client for the version registry.

The registry publishes the latest known version of every loader, build tool
and popular mod for a given Minecraft version.  Two endpoints are used:

* ``/versions/dependencies/{mc}?projects=...`` returns one entry per project.
* ``/projects/compatibility?projects=...&versions={mc}`` returns a per-loader
  version matrix for each project.

Typical usage::

    client = RegistryClient()
    response = await client.fetch_dependency_versions("1.21.10")
    print(response.find_version("fabric-api"))

Errors are raised as :class:`RegistryError`; callers decide whether a
missing registry is fatal.  The scaffolder treats it as a warning.
"""

from __future__ import annotations

import re

import httpx
from pydantic import BaseModel, Field, ValidationError

from modkit.config import DEFAULT_REGISTRY_URL
from modkit.dependencies import get_registry_project_names

_LOADER_SUFFIX = re.compile(r"[+-](?:fabric|forge|neoforge)$")


class RegistryError(Exception):
    """The registry could not be reached or returned an unusable response."""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class DownloadUrls(BaseModel):
    fabric: str | None = None
    forge: str | None = None
    neoforge: str | None = None


class RegistryDependency(BaseModel):
    """One project entry in a dependency-versions response."""

    name: str
    loader: str = Field(default="universal", description="Not reliable for loader compatibility")
    version: str | None = None
    mc_version: str | None = None
    source_url: str | None = None
    notes: str | None = None
    fallback_used: bool = False
    download_urls: DownloadUrls | None = None
    coordinates: str | None = Field(default=None, description="Maven coordinates when published")


class RegistryData(BaseModel):
    mc_version: str | None = None
    dependencies: list[RegistryDependency] = Field(default_factory=list)


class RegistryResponse(BaseModel):
    """Structured response of ``/versions/dependencies``."""

    data: RegistryData = Field(default_factory=RegistryData)
    timestamp: str | None = None
    cached_at: str | None = None

    def find(self, name: str) -> RegistryDependency | None:
        for dependency in self.data.dependencies:
            if dependency.name == name:
                return dependency
        return None

    def find_version(self, name: str) -> str | None:
        """Version of project *name*; ``None`` when absent, null or empty."""
        dependency = self.find(name)
        if dependency is None or not dependency.version:
            return None
        return dependency.version


class LoaderVersions(BaseModel):
    """Per-loader versions of one project; ``None`` means not published."""

    fabric: str | None = None
    forge: str | None = None
    neoforge: str | None = None

    def for_loader(self, loader: str) -> str | None:
        return getattr(self, loader, None)


class CompatibilityResponse(BaseModel):
    """Structured response of ``/projects/compatibility``.

    ``data`` maps project name -> Minecraft version -> loader versions.
    """

    data: dict[str, dict[str, LoaderVersions]] = Field(default_factory=dict)

    def loader_versions(self, project: str, minecraft_version: str) -> LoaderVersions | None:
        return self.data.get(project, {}).get(minecraft_version)


def extract_clean_version(coordinates: str) -> str:
    """Return the version part of Maven *coordinates* without a loader suffix.

    Takes the text after the final ``:`` and strips one trailing
    ``+fabric``/``-forge``/``+neoforge`` style suffix.  Applying it to an
    already clean version is a no-op.

    Examples::

        extract_clean_version("maven.modrinth:jei:19.21.0+fabric") -> "19.21.0"
        extract_clean_version("19.21.0")                           -> "19.21.0"
    """
    version = coordinates.rsplit(":", 1)[-1]
    return _LOADER_SUFFIX.sub("", version)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RegistryClient:
    """Async client for the version registry REST API."""

    def __init__(self, base_url: str = DEFAULT_REGISTRY_URL, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    async def _get_json(self, path: str) -> object:
        try:
            async with self._client() as client:
                response = await client.get(path)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise RegistryError(
                f"Request to {self.base_url}{path} timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise RegistryError(
                f"Registry returned HTTP {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RegistryError(f"Cannot reach registry at {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise RegistryError(f"Registry returned invalid JSON for {path}: {exc}") from exc

    async def fetch_dependency_versions(
        self,
        minecraft_version: str = "1.21.10",
        projects: list[str] | None = None,
    ) -> RegistryResponse:
        """Fetch the latest versions of every known project for *minecraft_version*.

        Args:
            minecraft_version: Target Minecraft version.
            projects: Project names to request.  Defaults to the core projects
                plus every dependency descriptor's registry name.

        Raises:
            RegistryError: On network failure, non-2xx status or a malformed body.
        """
        names = projects if projects is not None else get_registry_project_names()
        path = f"/versions/dependencies/{minecraft_version}?projects={','.join(names)}"
        payload = await self._get_json(path)
        try:
            return RegistryResponse.model_validate(payload)
        except ValidationError as exc:
            raise RegistryError(f"Unexpected dependency response shape: {exc}") from exc

    async def fetch_compatibility_versions(
        self,
        minecraft_version: str,
        project_names: list[str],
    ) -> CompatibilityResponse:
        """Fetch the per-loader version matrix for *project_names*.

        An empty project list short-circuits to an empty response without a
        network call.
        """
        if not project_names:
            return CompatibilityResponse()
        path = (
            f"/projects/compatibility?projects={','.join(project_names)}"
            f"&versions={minecraft_version}"
        )
        payload = await self._get_json(path)
        try:
            return CompatibilityResponse.model_validate(payload)
        except ValidationError as exc:
            raise RegistryError(f"Unexpected compatibility response shape: {exc}") from exc
