"""Integration tests for a full scaffold run.

These tests run the real pipeline against the bundled templates (registry
faked) and verify that the generated project is well-formed: Java sources
live under the configured package, metadata files parse, and no template
markers survive.

No external services (registry, Gradle, git) are required.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path

import pytest

from modkit.pipeline import PipelineRunner


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _scaffold(config, registry) -> Path:
    result = await PipelineRunner(registry=registry).run(config)
    assert result.success, result.error
    return Path(config.destination)


def _java_sources(root: Path) -> list[Path]:
    return sorted(root.rglob("*.java"))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestScaffoldValidation:
    """The generated multi-loader project is internally consistent."""

    @pytest.mark.asyncio
    async def test_java_sources_match_package(self, multi_loader_config, fake_registry) -> None:
        project = await _scaffold(multi_loader_config, fake_registry)

        sources = _java_sources(project)
        assert sources, "No Java sources were generated"
        for source in sources:
            text = source.read_text(encoding="utf-8")
            relative = source.relative_to(project).as_posix()
            assert "/src/main/java/jane/doe/gemtools/" in f"/{relative}", relative
            assert "com.example.modtemplate" not in text, relative
            package_line = text.splitlines()[0]
            expected = source.parent.as_posix().split("/src/main/java/")[1].replace("/", ".")
            assert package_line == f"package {expected};", relative

    @pytest.mark.asyncio
    async def test_metadata_files_parse(self, multi_loader_config, fake_registry) -> None:
        project = await _scaffold(multi_loader_config, fake_registry)

        fabric_meta = json.loads(
            (project / "fabric" / "src" / "main" / "resources" / "fabric.mod.json").read_text(encoding="utf-8")
        )
        assert fabric_meta["id"] == "gem-tools"
        assert fabric_meta["entrypoints"]["main"] == ["jane.doe.gemtools.GemToolsFabric"]

        for mixin in project.rglob("*.mixins.json"):
            payload = json.loads(mixin.read_text(encoding="utf-8"))
            assert payload["package"].startswith("jane.doe.gemtools")
            assert mixin.name.startswith("gem-tools")

        forge_meta = tomllib.loads(
            (project / "forge" / "src" / "main" / "resources" / "META-INF" / "mods.toml").read_text(encoding="utf-8")
        )
        assert forge_meta["mods"][0]["modId"] == "gem-tools"

        neoforge_meta = tomllib.loads(
            (project / "neoforge" / "src" / "main" / "resources" / "META-INF" / "neoforge.mods.toml").read_text(
                encoding="utf-8"
            )
        )
        assert neoforge_meta["mods"][0]["modId"] == "gem-tools"

    @pytest.mark.asyncio
    async def test_no_template_markers_survive(self, multi_loader_config, fake_registry) -> None:
        project = await _scaffold(multi_loader_config, fake_registry)

        for path in project.rglob("*"):
            if not path.is_file() or path.suffix == ".jar":
                continue
            text = path.read_text(encoding="utf-8")
            assert "{{" not in text, path
            assert "{%" not in text, path

    @pytest.mark.asyncio
    async def test_fabric_only_project_has_no_other_loaders(self, fabric_config, fake_registry) -> None:
        project = await _scaffold(fabric_config, fake_registry)

        assert (project / "common").is_dir()
        assert (project / "fabric").is_dir()
        assert not (project / "forge").exists()
        assert not (project / "neoforge").exists()
        assert "include('forge')" not in (project / "settings.gradle").read_text(encoding="utf-8")
