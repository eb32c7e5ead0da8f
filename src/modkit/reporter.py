"""Result reporting for scaffold runs.

Turns a :class:`~modkit.pipeline.PipelineResult` into a
:class:`ModCreationResult` and renders it as JSON (for CI), a full text
report, or a short summary.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from modkit.config import ModConfiguration
from modkit.utils import console, to_pascal

if TYPE_CHECKING:
    from modkit.pipeline import PipelineResult

RULE_WIDTH = 60
SECTION_WIDTH = 30


class ModInfo(BaseModel):
    name: str
    author: str
    id: str
    version: str
    package: str
    minecraft_version: str
    java_version: str
    destination: str


class OptionsInfo(BaseModel):
    loaders: list[str]
    libraries: list[str]
    mods: list[str]
    license: str
    post_actions: list[str]


class StepRecord(BaseModel):
    step: str
    success: bool
    duration: float = Field(description="Seconds")
    error: str | None = None
    timestamp: datetime


class ExecutionInfo(BaseModel):
    duration: float = Field(description="Seconds")
    start_time: datetime
    end_time: datetime
    steps: list[StepRecord] = Field(default_factory=list)
    output_format: Literal["json", "text"] = "text"


class GeneratedPaths(BaseModel):
    project_root: str
    main_class: str
    gradle_wrapper: str
    build_gradle: str
    config_path: str | None = None


class ModCreationResult(BaseModel):
    """Everything a caller needs to know about one scaffold run."""

    success: bool
    mod: ModInfo
    options: OptionsInfo
    execution: ExecutionInfo
    paths: GeneratedPaths
    error: str | None = None


def _seconds(value: float) -> str:
    return f"{value:.2f}s"


def _section(lines: list[str], title: str) -> None:
    lines.append(title)
    lines.append("-" * SECTION_WIDTH)


class ResultReporter:
    """Builds and prints the result of a scaffold run for one configuration."""

    def __init__(self, config: ModConfiguration) -> None:
        self.config = config
        self.start_time = datetime.now(timezone.utc)

    def generate_result(
        self,
        pipeline_result: "PipelineResult",
        *,
        config_path: str | Path | None = None,
        output_format: Literal["json", "text"] = "text",
    ) -> ModCreationResult:
        config = self.config
        end_time = datetime.now(timezone.utc)
        destination = str(config.destination)

        steps: list[StepRecord] = []
        elapsed = 0.0
        for step in pipeline_result.steps:
            steps.append(
                StepRecord(
                    step=step.step,
                    success=step.success,
                    duration=step.duration,
                    error=step.error,
                    timestamp=self.start_time + timedelta(seconds=elapsed),
                )
            )
            elapsed += step.duration

        return ModCreationResult(
            success=pipeline_result.success,
            mod=ModInfo(
                name=config.name,
                author=config.author,
                id=config.mod_id,
                version=config.version,
                package=config.package,
                minecraft_version=config.minecraft_version,
                java_version=config.java_version,
                destination=destination,
            ),
            options=OptionsInfo(
                loaders=list(config.loaders),
                libraries=list(config.libraries),
                mods=list(config.mods),
                license=config.license,
                post_actions=list(config.post_actions),
            ),
            execution=ExecutionInfo(
                duration=pipeline_result.duration,
                start_time=self.start_time,
                end_time=end_time,
                steps=steps,
                output_format=output_format,
            ),
            paths=GeneratedPaths(
                project_root=destination,
                main_class=f"{config.package}.{to_pascal(config.name)}Mod",
                gradle_wrapper=str(Path(destination) / "gradlew"),
                build_gradle=str(Path(destination) / "build.gradle"),
                config_path=str(config_path) if config_path else None,
            ),
            error=pipeline_result.error,
        )

    # -- Formats -----------------------------------------------------------

    @staticmethod
    def output_json(result: ModCreationResult) -> str:
        return result.model_dump_json(indent=2, exclude_none=True)

    @staticmethod
    def output_text(result: ModCreationResult) -> str:
        """Render the full multi-section text report."""
        lines: list[str] = ["=" * RULE_WIDTH, "MINECRAFT MOD CREATION RESULT", "=" * RULE_WIDTH]
        lines.append(f"Status: {'SUCCESS' if result.success else 'FAILED'}")
        lines.append("")

        _section(lines, "MOD INFORMATION")
        lines.extend(
            [
                f"Name: {result.mod.name}",
                f"Author: {result.mod.author}",
                f"ID: {result.mod.id}",
                f"Version: {result.mod.version}",
                f"Minecraft: {result.mod.minecraft_version}",
                f"Java: {result.mod.java_version}",
                f"License: {result.options.license}",
                f"Package: {result.mod.package}",
                f"Destination: {result.mod.destination}",
                "",
            ]
        )

        _section(lines, "CONFIGURATION")
        lines.extend(
            [
                f"Loaders: {', '.join(result.options.loaders)}",
                f"Libraries: {', '.join(result.options.libraries) or 'None'}",
                f"Runtime Mods: {', '.join(result.options.mods) or 'None'}",
                f"Post Actions: {', '.join(result.options.post_actions) or 'None'}",
                "",
            ]
        )

        execution = result.execution
        succeeded = [step for step in execution.steps if step.success]
        failed = [step for step in execution.steps if not step.success]

        _section(lines, "EXECUTION SUMMARY")
        lines.extend(
            [
                f"Duration: {_seconds(execution.duration)}",
                f"Started: {execution.start_time.isoformat()}",
                f"Completed: {execution.end_time.isoformat()}",
                f"Steps: {len(execution.steps)}",
                f"  Successful: {len(succeeded)}",
            ]
        )
        if failed:
            lines.append(f"  Failed: {len(failed)}")
        lines.append("")

        if failed:
            _section(lines, "FAILED STEPS")
            for step in failed:
                lines.append(f"x {step.step}")
                if step.error:
                    lines.append(f"   Error: {step.error}")
                lines.append(f"   Duration: {_seconds(step.duration)}")
                lines.append("")

        if succeeded:
            _section(lines, "SUCCESSFUL STEPS")
            for step in succeeded:
                lines.append(f"+ {step.step} ({_seconds(step.duration)})")
            lines.append("")

        _section(lines, "GENERATED PATHS")
        lines.extend(
            [
                f"Project Root: {result.paths.project_root}",
                f"Main Class: {result.paths.main_class}",
                f"Gradle Wrapper: {result.paths.gradle_wrapper}",
                f"Build File: {result.paths.build_gradle}",
            ]
        )
        if result.paths.config_path:
            lines.append(f"Config File: {result.paths.config_path}")
        lines.append("")

        if result.error:
            _section(lines, "ERROR DETAILS")
            lines.append(result.error)
            lines.append("")

        lines.append("=" * RULE_WIDTH)
        return "\n".join(lines)

    @staticmethod
    def output_summary(result: ModCreationResult) -> str:
        duration = _seconds(result.execution.duration)
        if result.success:
            return "\n".join(
                [
                    f'Created mod "{result.mod.name}" successfully',
                    f"   Location: {result.mod.destination}",
                    f"   Loaders: {', '.join(result.options.loaders)}",
                    f"   Duration: {duration}",
                ]
            )
        return "\n".join(
            [
                f'Failed to create mod "{result.mod.name}"',
                f"   Error: {result.error or 'Unknown error'}",
                f"   Duration: {duration}",
            ]
        )

    def report(
        self,
        pipeline_result: "PipelineResult",
        *,
        config_path: str | Path | None = None,
        output_format: Literal["json", "text"] = "text",
        summary: bool = False,
    ) -> ModCreationResult:
        """Print the result in the requested format and return it."""
        result = self.generate_result(
            pipeline_result, config_path=config_path, output_format=output_format
        )
        if summary:
            text = self.output_summary(result)
        elif output_format == "json":
            text = self.output_json(result)
        else:
            text = self.output_text(result)
        console.print(text, markup=False, highlight=False, soft_wrap=True)
        return result
