"""Template variable derivation.

Builds the flat, read-only variable set that every scaffolding step renders
into the template tree.  It combines the user's :class:`ModConfiguration`
with version data from the registry; when the registry is unavailable the
affected variables fall back to static defaults or stay empty.
"""

from __future__ import annotations

import re
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Union

from modkit.config import LOADERS, ModConfiguration
from modkit.dependencies import DEPENDENCIES, get_dependency_config
from modkit.registry_client import (
    CompatibilityResponse,
    RegistryClient,
    RegistryError,
    RegistryResponse,
    extract_clean_version,
)
from modkit.utils import print_warning, slugify_author, to_pascal

VariableValue = Union[str, bool, None]
TemplateVariableSet = Mapping[str, VariableValue]

DEFAULT_VARIABLES: Mapping[str, VariableValue] = MappingProxyType(
    {
        # Build tools
        "gradle_version": "8.14",
        "fabric_loom_version": "1.11-SNAPSHOT",
        "moddevgradle_version": "2.0.97",
        "modpublisher_version": "2.1.6",
        "forgegradle_version": "[6.0.24,6.2)",
        "mixin_version": "0.7-SNAPSHOT",
        "toolchains_resolver_version": "0.8.0",
        # Java / Minecraft
        "java_version": "21",
        "minecraft_version": "1.21.10",
        "minecraft_version_range": "[1.21.10, 1.22)",
        "fabric_version_range": ">=1.21.10",
        # Config files
        "mixin_min_version": "0.8",
        "pack_format_version": "8",
        # Publishing
        "release_type": "release",
        "mod_environment": "both",
        "dry_run": True,
        "game_versions": "1.21.10",
        "curse_id": "000000",
        "modrinth_id": "AAAAAAAA",
        # Services
        "platform_helper_interface": "IPlatformHelper",
        "credits": "",
    }
)

DEFAULT_MINECRAFT_RANGE = "[1.21.10, 1.22)"
DEFAULT_FORGE_RANGE = "[55,)"
DEFAULT_NEOFORGE_RANGE = "[4,)"

_LEADING_INT = re.compile(r"^(\d+)")


# ---------------------------------------------------------------------------
# Range helpers
# ---------------------------------------------------------------------------


def minecraft_version_range(version: str) -> str:
    """``1.21.10`` -> ``[1.21.10, 1.22)``; malformed input gets the default range."""
    parts = version.split(".") if version else []
    if len(parts) < 2 or not parts[0] or not parts[1].isdigit():
        return DEFAULT_MINECRAFT_RANGE
    return f"[{version}, {parts[0]}.{int(parts[1]) + 1})"


def loader_version_range(version: str, fallback: str) -> str:
    """``[N,)`` from the leading integer of *version*, else *fallback*."""
    match = _LEADING_INT.match(version or "")
    return f"[{match.group(1)},)" if match else fallback


def github_urls(author: str, mod_id: str) -> dict[str, str]:
    repo = f"https://github.com/{slugify_author(author)}/{mod_id}"
    return {
        "repo": repo,
        "issues": f"{repo}/issues",
        "update_json": f"{repo}/raw/main/updates.json",
    }


def publishing_dependencies(libraries: tuple[str, ...]) -> tuple[str, str]:
    """Comma-joined Modrinth and CurseForge dependency ids for selected libraries.

    Foundation dependencies and runtime mods are never listed.
    """
    modrinth: list[str] = []
    curse: list[str] = []
    for lib_id in libraries:
        dep = get_dependency_config(lib_id)
        if dep is None or dep.foundation or dep.type != "library":
            continue
        modrinth.append(lib_id)
        curse.append(f"{lib_id}-lib")
    return ",".join(modrinth), ",".join(curse)


# ---------------------------------------------------------------------------
# Registry access
# ---------------------------------------------------------------------------


async def _fetch_registry_data(
    client: RegistryClient, config: ModConfiguration
) -> tuple[RegistryResponse, CompatibilityResponse]:
    requested_mods = [
        dep.registry_project_name
        for dep in (get_dependency_config(mod_id) for mod_id in config.mods)
        if dep is not None
    ]

    try:
        compatibility = await client.fetch_compatibility_versions(
            config.minecraft_version, requested_mods
        )
    except RegistryError as exc:
        print_warning(f"Failed to fetch compatibility data: {exc}")
        compatibility = CompatibilityResponse()

    try:
        versions = await client.fetch_dependency_versions(config.minecraft_version)
    except RegistryError as exc:
        print_warning(f"Failed to fetch dependency versions: {exc}")
        versions = RegistryResponse()

    return versions, compatibility


def _dependency_variables(
    config: ModConfiguration,
    versions: RegistryResponse,
    compatibility: CompatibilityResponse,
) -> dict[str, VariableValue]:
    selected = set(config.libraries) | set(config.mods)
    variables: dict[str, VariableValue] = {}

    for dep in DEPENDENCIES:
        is_selected = dep.id in selected
        variables[f"uses_{dep.id.replace('-', '_')}"] = is_selected

        version: str | None = None
        loader_versions: dict[str, str | None] = {loader: None for loader in dep.compatible_loaders}

        if is_selected:
            entry = versions.find(dep.registry_project_name)
            if entry is not None and entry.coordinates:
                version = extract_clean_version(entry.coordinates)
            else:
                version = versions.find_version(dep.registry_project_name)

            if dep.loader_specific:
                matrix = compatibility.loader_versions(
                    dep.registry_project_name, config.minecraft_version
                )
                if matrix is not None:
                    for loader in dep.compatible_loaders:
                        loader_versions[loader] = matrix.for_loader(loader)
                if version is None:
                    version = next(
                        (
                            loader_versions[loader]
                            for loader in config.loaders
                            if loader_versions.get(loader)
                        ),
                        None,
                    )

        variables[dep.template_variable] = version
        if dep.loader_specific:
            for loader, loader_version in loader_versions.items():
                variables[f"{dep.template_variable}_{loader}"] = loader_version

    return variables


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_template_variables(
    config: ModConfiguration,
    client: RegistryClient | None = None,
) -> TemplateVariableSet:
    """Compute the complete variable set for *config*.

    Registry failures are reported as warnings and never raised; every
    registry-derived value then degrades to its default, ``""`` or ``None``.
    """
    registry = client or RegistryClient()
    versions, compatibility = await _fetch_registry_data(registry, config)

    pascal = to_pascal(config.name)
    minecraft_version = versions.data.mc_version or config.minecraft_version

    forge_version = versions.find_version("forge") or ""
    neoforge_version = versions.find_version("neoforge") or ""
    parchment_version = versions.find_version("parchment") or ""
    modrinth_depends, curse_depends = publishing_dependencies(config.libraries)
    urls = github_urls(config.author, config.mod_id)

    variables: dict[str, VariableValue] = dict(DEFAULT_VARIABLES)
    variables.update(_dependency_variables(config, versions, compatibility))
    variables.update(
        {
            # Identity
            "mod_name": config.name,
            "mod_id": config.mod_id,
            "mod_author": config.author,
            "year": str(datetime.now().year),
            "description": config.description,
            "group": config.package,
            "version": f"{config.version}+{minecraft_version}",
            "license": config.license,
            # Build tools
            "gradle_version": config.gradle_version or DEFAULT_VARIABLES["gradle_version"],
            "fabric_loom_version": (
                config.fabric_loom_version
                or versions.find_version("loom")
                or DEFAULT_VARIABLES["fabric_loom_version"]
            ),
            "moddevgradle_version": (
                versions.find_version("moddev-gradle") or DEFAULT_VARIABLES["moddevgradle_version"]
            ),
            # Java / Minecraft
            "java_version": config.java_version,
            "java_compatibility_level": f"JAVA_{config.java_version}",
            "minecraft_version": minecraft_version,
            "minecraft_version_range": minecraft_version_range(minecraft_version),
            "fabric_version_range": f">={minecraft_version}",
            # Loader toolchain
            "fabric_version": versions.find_version("fabric-api") or "",
            "fabric_loader_version": versions.find_version("fabric-loader") or "",
            "forge_version": forge_version,
            "forge_loader_version_range": loader_version_range(
                forge_version or "55.0.1", DEFAULT_FORGE_RANGE
            ),
            "neoforge_version": neoforge_version,
            "neoforge_loader_version_range": loader_version_range(
                neoforge_version or "21.0.0", DEFAULT_NEOFORGE_RANGE
            ),
            "neo_form_version": versions.find_version("neoform") or "",
            "parchment_minecraft": minecraft_version if parchment_version else "",
            "parchment_version": parchment_version,
            # Publishing
            "game_versions": minecraft_version,
            "mod_modrinth_depends": modrinth_depends,
            "mod_curse_depends": curse_depends,
            # Packages and classes
            "package_base": config.package,
            "package_path": config.package_path,
            "main_class_name": f"{pascal}Mod" if pascal else "",
            "constants_class_name": f"{pascal}Constants" if pascal else "",
            "fabric_entry_class": f"{pascal}Fabric" if pascal else "",
            "forge_entry_class": f"{pascal}Forge" if pascal else "",
            "neoforge_entry_class": f"{pascal}NeoForge" if pascal else "",
            "datagen_class_name": "ModDatagen",
            "fabric_platform_helper": "FabricPlatformHelper",
            "forge_platform_helper": "ForgePlatformHelper",
            "neoforge_platform_helper": "NeoForgePlatformHelper",
            "block_tag_provider_class": "ModBlockTagProvider",
            "item_tag_provider_class": "ModItemTagProvider",
            "block_loot_provider_class": "ModBlockLootTableProvider",
            "model_provider_class": "ModModelProvider",
            "recipe_provider_class": "ModRecipeProvider",
            # Mixins
            "mixin_package": f"{config.package}.mixin",
            "mixin_refmap_name": f"{config.mod_id}.refmap.json",
            # URLs
            "github_url": urls["repo"],
            "issue_tracker_url": urls["issues"],
            "update_json_url": urls["update_json"],
            "homepage_url": urls["repo"],
        }
    )
    for loader in LOADERS:
        variables[loader] = loader in config.loaders

    return MappingProxyType(variables)
