"""Static dependency descriptors.

One immutable table describes every optional library and runtime mod the
scaffolder knows about: where the registry lists it, which loaders it can be
used with, and which template variable receives its version.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

DependencyType = Literal["library", "mod"]


@dataclass(frozen=True)
class MavenRepository:
    id: str
    name: str
    url: str


@dataclass(frozen=True)
class DependencyConfig:
    """Descriptor for one selectable dependency."""

    id: str
    display_name: str
    description: str
    type: DependencyType
    category: str
    registry_project_name: str
    compatible_loaders: tuple[str, ...]
    template_variable: str
    repository: MavenRepository | None = None
    coordinates: dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    foundation: bool = False
    default_selection: bool = False

    @property
    def loader_specific(self) -> bool:
        """Runtime mods publish separate builds per loader."""
        return self.type == "mod"


MAVEN_REPOSITORIES: dict[str, MavenRepository] = {
    "kaf-mod-resources": MavenRepository(
        id="kaf-mod-resources",
        name="Kaf Mod Resources",
        url="https://raw.githubusercontent.com/iamkaf/modresources/main/maven/",
    ),
    "modrinth": MavenRepository(
        id="modrinth",
        name="Modrinth",
        url="https://api.modrinth.com/maven",
    ),
}

ALL_LOADERS = ("fabric", "forge", "neoforge")

DEPENDENCIES: tuple[DependencyConfig, ...] = (
    # Foundation
    DependencyConfig(
        id="fabric-api",
        display_name="Fabric API",
        description="Core Fabric modding API",
        type="library",
        category="development",
        registry_project_name="fabric-api",
        compatible_loaders=("fabric",),
        template_variable="fabric_version",
        coordinates={"fabric": "net.fabricmc.fabric-api:fabric-api"},
        foundation=True,
        default_selection=True,
    ),
    # Libraries
    DependencyConfig(
        id="fabric-loom",
        display_name="Fabric Loom",
        description="Fabric modding build tool",
        type="library",
        category="development",
        registry_project_name="loom",
        compatible_loaders=("fabric",),
        template_variable="fabric_loom_version",
        coordinates={"fabric": "net.fabricmc:fabric-loom"},
        default_selection=True,
    ),
    DependencyConfig(
        id="moddevgradle",
        display_name="NeoForge ModDevGradle",
        description="NeoForge modding build tool plugin",
        type="library",
        category="development",
        registry_project_name="moddev-gradle",
        compatible_loaders=("neoforge",),
        template_variable="moddevgradle_version",
        coordinates={"neoforge": "net.neoforged:moddevgradle"},
        default_selection=True,
    ),
    DependencyConfig(
        id="amber",
        display_name="Amber",
        description="Modding utilities and common code",
        type="library",
        category="development",
        registry_project_name="amber",
        compatible_loaders=ALL_LOADERS,
        template_variable="amber_version",
        repository=MAVEN_REPOSITORIES["kaf-mod-resources"],
        coordinates={
            "common": "com.iamkaf.amber:amber-common",
            "fabric": "com.iamkaf.amber:amber-fabric",
            "forge": "com.iamkaf.amber:amber-forge",
            "neoforge": "com.iamkaf.amber:amber-neoforge",
        },
        default_selection=True,
    ),
    # Runtime mods
    DependencyConfig(
        id="modmenu",
        display_name="Mod Menu",
        description="In-game mod configuration menu",
        type="mod",
        category="utility",
        registry_project_name="modmenu",
        compatible_loaders=("fabric",),
        template_variable="mod_menu_version",
        repository=MAVEN_REPOSITORIES["modrinth"],
        coordinates={"fabric": "maven.modrinth:modmenu"},
        default_selection=True,
    ),
    DependencyConfig(
        id="jei",
        display_name="Just Enough Items",
        description="Recipe and item information viewer",
        type="mod",
        category="recipe-viewer",
        registry_project_name="jei",
        compatible_loaders=ALL_LOADERS,
        template_variable="jei_version",
        repository=MAVEN_REPOSITORIES["modrinth"],
        coordinates={loader: "maven.modrinth:jei" for loader in ALL_LOADERS},
    ),
    DependencyConfig(
        id="rei",
        display_name="Roughly Enough Items",
        description="Recipe and item information viewer",
        type="mod",
        category="recipe-viewer",
        registry_project_name="rei",
        compatible_loaders=ALL_LOADERS,
        template_variable="rei_version",
        repository=MAVEN_REPOSITORIES["modrinth"],
        coordinates={loader: "maven.modrinth:rei" for loader in ALL_LOADERS},
    ),
    DependencyConfig(
        id="jade",
        display_name="Jade HUD",
        description="Block and entity information overlay",
        type="mod",
        category="utility",
        registry_project_name="jade",
        compatible_loaders=ALL_LOADERS,
        template_variable="jade_version",
        repository=MAVEN_REPOSITORIES["modrinth"],
        coordinates={loader: "maven.modrinth:jade" for loader in ALL_LOADERS},
    ),
    DependencyConfig(
        id="sodium",
        display_name="Sodium",
        description="Performance optimization mod",
        type="mod",
        category="performance",
        registry_project_name="sodium",
        # Forge ships a different renderer fork
        compatible_loaders=("fabric", "neoforge"),
        template_variable="sodium_version",
        repository=MAVEN_REPOSITORIES["modrinth"],
        coordinates={
            "fabric": "maven.modrinth:sodium",
            "neoforge": "maven.modrinth:sodium",
        },
    ),
)

# Always requested from the registry regardless of the user's selection.
CORE_PROJECTS: tuple[str, ...] = ("amber", "fabric-api", "architectury-api", "forge-config-api-port")


def get_dependency_config(dep_id: str) -> DependencyConfig | None:
    """Return the descriptor for *dep_id*, or ``None`` when unknown."""
    for dep in DEPENDENCIES:
        if dep.id == dep_id:
            return dep
    return None


def get_dependencies_by_type(dep_type: DependencyType) -> list[DependencyConfig]:
    return [dep for dep in DEPENDENCIES if dep.type == dep_type]


def get_dependencies_for_loader(loader: str) -> list[DependencyConfig]:
    return [dep for dep in DEPENDENCIES if loader in dep.compatible_loaders]


def get_dependency_project_names() -> list[str]:
    return [dep.registry_project_name for dep in DEPENDENCIES]


def get_registry_project_names() -> list[str]:
    """Core projects followed by every descriptor's registry name, deduplicated."""
    return list(dict.fromkeys([*CORE_PROJECTS, *get_dependency_project_names()]))


def get_required_repositories(dep_ids: list[str] | tuple[str, ...]) -> list[MavenRepository]:
    """Unique Maven repositories needed by the selected dependencies, in selection order."""
    repositories: dict[str, MavenRepository] = {}
    for dep_id in dep_ids:
        dep = get_dependency_config(dep_id)
        if dep is not None and dep.repository is not None:
            repositories.setdefault(dep.repository.id, dep.repository)
    return list(repositories.values())


def validate_dependency_ids(ids: list[str] | tuple[str, ...]) -> tuple[list[str], list[str]]:
    """Split *ids* into ``(valid, invalid)``."""
    valid: list[str] = []
    invalid: list[str] = []
    for dep_id in ids:
        (valid if get_dependency_config(dep_id) is not None else invalid).append(dep_id)
    return valid, invalid
