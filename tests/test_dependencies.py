"""Unit tests for the dependency descriptor table (modkit.dependencies)."""

from __future__ import annotations

import dataclasses

import pytest

from modkit.dependencies import (
    CORE_PROJECTS,
    DEPENDENCIES,
    get_dependencies_by_type,
    get_dependencies_for_loader,
    get_dependency_config,
    get_dependency_project_names,
    get_registry_project_names,
    get_required_repositories,
    validate_dependency_ids,
)

pytestmark = pytest.mark.unit


class TestDescriptorTable:
    def test_ids_unique(self):
        ids = [dep.id for dep in DEPENDENCIES]
        assert len(ids) == len(set(ids))

    def test_template_variables_unique(self):
        variables = [dep.template_variable for dep in DEPENDENCIES]
        assert len(variables) == len(set(variables))

    def test_descriptors_immutable(self):
        dep = get_dependency_config("jei")
        with pytest.raises(dataclasses.FrozenInstanceError):
            dep.display_name = "Other"  # type: ignore[misc]

    def test_loaders_known(self):
        for dep in DEPENDENCIES:
            assert dep.compatible_loaders
            assert set(dep.compatible_loaders) <= {"fabric", "forge", "neoforge"}

    def test_runtime_mods_are_loader_specific(self):
        for dep in get_dependencies_by_type("mod"):
            assert dep.loader_specific
        for dep in get_dependencies_by_type("library"):
            assert not dep.loader_specific

    def test_sodium_not_on_forge(self):
        sodium = get_dependency_config("sodium")
        assert sodium is not None
        assert "forge" not in sodium.compatible_loaders


class TestLookups:
    def test_get_dependency_config(self):
        amber = get_dependency_config("amber")
        assert amber is not None
        assert amber.type == "library"
        assert amber.template_variable == "amber_version"

    def test_unknown_dependency(self):
        assert get_dependency_config("does-not-exist") is None

    def test_dependencies_for_loader(self):
        forge_ids = {dep.id for dep in get_dependencies_for_loader("forge")}
        assert "jei" in forge_ids
        assert "modmenu" not in forge_ids
        assert "sodium" not in forge_ids

    def test_registry_project_names(self):
        names = get_registry_project_names()
        assert names[: len(CORE_PROJECTS)] == list(CORE_PROJECTS)
        assert len(names) == len(set(names))
        assert set(get_dependency_project_names()) <= set(names)

    def test_required_repositories_deduplicated(self):
        repositories = get_required_repositories(["jei", "amber", "rei"])
        assert [repo.id for repo in repositories] == ["modrinth", "kaf-mod-resources"]

    def test_required_repositories_unknown_ignored(self):
        assert get_required_repositories(["nope"]) == []

    def test_validate_dependency_ids(self):
        valid, invalid = validate_dependency_ids(["jei", "nope", "amber"])
        assert valid == ["jei", "amber"]
        assert invalid == ["nope"]
