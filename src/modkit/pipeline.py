"""modkit pipeline runner and command-line entry point.

A run is a fixed, forward-only sequence:

1. Template processing -- clone, package transform, class and mixin renames,
   service registration, template variables.
2. Configuration and content -- loaders, libraries, runtime mods, samples,
   license, finalize.
3. Post-creation actions -- git init, Gradle bootstrap, editor launch, in the
   order the user listed them.

The first failing step stops the run.  Nothing is retried and nothing is
rolled back; a failed run may leave a partially scaffolded directory.

Usage::

    modkit ./my-mod --ci-mode --name "My Mod" --author "Jane Doe" --loaders fabric,neoforge
    modkit ./my-mod --config modkit.json --output-format json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field
from rich.panel import Panel

from modkit.config import (
    ConfigurationError,
    ModConfiguration,
    PipelineOptions,
    Settings,
    config_file_to_configuration,
    load_config_file,
    merge_config_with_args,
    pipeline_options_from_config,
)
from modkit.dependencies import get_dependencies_by_type, get_dependencies_for_loader
from modkit.registry_client import RegistryClient
from modkit.reporter import ResultReporter
from modkit.scaffolder.steps import (
    CONTENT_STEPS,
    POST_ACTIONS,
    SETTINGS_AWARE,
    TEMPLATE_STEPS,
    StepFunction,
)
from modkit.scaffolder.variables import TemplateVariableSet, generate_template_variables
from modkit.utils import (
    console,
    format_duration,
    format_mod_id,
    format_package_name,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    validate_destination_path,
)

DEFAULT_POST_ACTIONS: tuple[str, ...] = ("git-init", "run-gradle")
TOTAL_STEPS = len(TEMPLATE_STEPS) + len(CONTENT_STEPS) + len(DEFAULT_POST_ACTIONS)

ProgressCallback = Callable[[str, int], None]


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class StepResult(BaseModel):
    step: str
    success: bool
    duration: float = Field(description="Seconds")
    error: str | None = None


class PipelineResult(BaseModel):
    """Aggregate outcome of one run.  ``success`` holds iff every step succeeded."""

    success: bool
    duration: float = Field(description="Seconds")
    steps: list[StepResult] = Field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class PipelineRunner:
    """Executes the scaffolding steps for one configuration.

    Attributes:
        settings: Registry, Gradle and template settings.
        registry: Client used to compute the template variables.
        steps: Results recorded by the current (or last) run.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: RegistryClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.registry = registry or RegistryClient(
            base_url=self.settings.registry_url,
            timeout=self.settings.registry_timeout,
        )
        self.steps: list[StepResult] = []

    async def _run_step(
        self,
        step_id: str,
        func: StepFunction,
        config: ModConfiguration,
        variables: TemplateVariableSet,
        on_progress: ProgressCallback | None,
    ) -> None:
        if on_progress is not None:
            on_progress(step_id, len(self.steps))

        kwargs: dict[str, Any] = {"settings": self.settings} if step_id in SETTINGS_AWARE else {}
        started = time.monotonic()
        try:
            await func(config, variables, **kwargs)
        except Exception as exc:
            self.steps.append(
                StepResult(
                    step=step_id,
                    success=False,
                    duration=time.monotonic() - started,
                    error=str(exc),
                )
            )
            raise
        self.steps.append(
            StepResult(step=step_id, success=True, duration=time.monotonic() - started)
        )

    async def run(
        self,
        config: ModConfiguration,
        options: PipelineOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """Run every step for *config*.

        Never raises: failures are reported through the returned result.
        """
        options = options or PipelineOptions()
        self.steps = []
        started = time.monotonic()

        destination_error = validate_destination_path(config.destination)
        if destination_error is not None:
            print_error(destination_error)
            return PipelineResult(success=False, duration=0.0, steps=[], error=destination_error)

        previous_quiet = console.quiet
        console.quiet = options.silent or previous_quiet
        error: str | None = None
        try:
            console.print(
                Panel(
                    f"[bold bright_cyan]{config.name}[/bold bright_cyan] "
                    f"({config.mod_id}) by {config.author}\n"
                    f"Loaders     : {', '.join(config.loaders)}\n"
                    f"Minecraft   : {config.minecraft_version}\n"
                    f"Destination : {Path(config.destination).resolve()}",
                    title="[bold]Creating Minecraft mod[/bold]",
                    border_style="bright_cyan",
                )
            )

            variables = await generate_template_variables(config, self.registry)

            print_step_header("Template processing")
            for func in TEMPLATE_STEPS:
                await self._run_step(func.step_id, func, config, variables, on_progress)

            print_step_header("Configuration and content")
            for func in CONTENT_STEPS:
                await self._run_step(func.step_id, func, config, variables, on_progress)

            if config.post_actions:
                print_step_header("Post-creation actions")
            for action in config.post_actions:
                func = POST_ACTIONS.get(action)
                if func is None:
                    raise ValueError(f"Unknown post-creation action: {action}")
                if self._skipped(action, options):
                    console.print(f"  [dim]- {action} skipped[/dim]")
                    continue
                await self._run_step(action, func, config, variables, on_progress)

        except Exception as exc:
            error = str(exc)
            print_error(error)
        finally:
            duration = time.monotonic() - started
            result = PipelineResult(
                success=error is None and all(step.success for step in self.steps),
                duration=duration,
                steps=list(self.steps),
                error=error,
            )
            self._print_final_summary(config, result)
            console.quiet = previous_quiet

        return result

    @staticmethod
    def _skipped(action: str, options: PipelineOptions) -> bool:
        if action == "git-init":
            return options.skip_git
        if action == "run-gradle":
            return options.skip_gradle
        if action in ("open-vscode", "open-intellij"):
            return options.skip_ide
        return False

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def progress(self) -> dict[str, int]:
        """Current step index, total and percentage of the nominal step count."""
        current = len(self.steps)
        return {
            "current_step": current,
            "total_steps": TOTAL_STEPS,
            "percentage": round(current / TOTAL_STEPS * 100),
        }

    def summary(self) -> str:
        """One- to three-line textual status of the current run."""
        percentage = self.progress()["percentage"]
        succeeded = sum(1 for step in self.steps if step.success)
        failed = len(self.steps) - succeeded

        text = (
            f"Pipeline Progress: {percentage}% "
            f"({succeeded}/{len(self.steps)} steps completed)"
        )
        if failed:
            text += f" - {failed} steps failed"
        if self.steps:
            last = self.steps[-1]
            text += f"\nLast step: {last.step} ({'SUCCESS' if last.success else 'FAILED'})"
            if last.error:
                text += f"\nError: {last.error}"
        return text

    def _print_final_summary(self, config: ModConfiguration, result: PipelineResult) -> None:
        if result.success:
            border_style = "bold green"
            status_text = f'[bold green]Created "{config.name}"[/bold green]'
        else:
            border_style = "bold red"
            status_text = f'[bold red]Failed to create "{config.name}"[/bold red]'

        completed = [step.step for step in result.steps if step.success]
        failed = [step.step for step in result.steps if not step.success]
        detail_lines = [
            status_text,
            "",
            f"Duration  : {format_duration(result.duration)}",
            f"Completed : {len(completed)} steps",
        ]
        if failed:
            detail_lines.append(f"Failed    : {', '.join(failed)}")
        detail_lines.append(f"Output    : {Path(config.destination).resolve()}")

        console.print()
        console.print(
            Panel(
                "\n".join(detail_lines),
                title="[bold]Pipeline Complete[/bold]",
                border_style=border_style,
            )
        )


# ---------------------------------------------------------------------------
# Configuration from CLI arguments
# ---------------------------------------------------------------------------


def _split(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def configuration_from_args(args: Any, destination: str | Path) -> ModConfiguration:
    """Build a configuration for non-interactive mode.

    ``name`` and ``author`` are required; everything else has a default.

    Raises:
        ConfigurationError: When required values are missing or invalid.
    """
    missing = [flag for flag in ("name", "author") if not getattr(args, flag, None)]
    if missing:
        raise ConfigurationError(
            [f"--{flag} is required in CI mode" for flag in missing]
        )

    mod_id = format_mod_id(args.id or args.name)
    package = format_package_name(args.package) if args.package else ""
    post_actions = _split(args.post_actions) if args.post_actions else DEFAULT_POST_ACTIONS

    return ModConfiguration.build(
        name=args.name,
        author=args.author,
        mod_id=mod_id,
        description=args.description or "",
        java_version=args.java_version or "21",
        minecraft_version=args.minecraft or "1.21.10",
        package=package,
        loaders=_split(args.loaders) or ("fabric",),
        libraries=_split(args.libraries),
        mods=_split(args.mods),
        license=args.license or "mit",
        destination=Path(destination),
        post_actions=post_actions,
        gradle_version=args.gradle_version,
    )


def list_dependencies(loaders: tuple[str, ...] = ()) -> None:
    """Print the selectable libraries and runtime mods.

    With *loaders*, only dependencies supporting at least one of them are listed.
    """
    allowed: set[str] | None = None
    if loaders:
        allowed = {dep.id for loader in loaders for dep in get_dependencies_for_loader(loader)}

    for dep_type, title in (("library", "Libraries"), ("mod", "Runtime mods")):
        rows = {
            dep.id: f"{dep.display_name} ({', '.join(dep.compatible_loaders)})"
            for dep in get_dependencies_by_type(dep_type)
            if allowed is None or dep.id in allowed
        }
        print_summary_table(rows, title=title)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modkit",
        description="modkit -- scaffold a multi-loader Minecraft mod project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  modkit ./my-mod --ci-mode --name "My Mod" --author "Jane Doe"\n'
            "  modkit ./my-mod --ci-mode --name Gems --author kaf --loaders fabric,neoforge --mods jei\n"
            "  modkit ./my-mod --config modkit.json --output-format json\n"
        ),
    )
    parser.add_argument("destination", nargs="?", help="Destination directory (default: ./<mod id>)")
    parser.add_argument("--ci-mode", action="store_true", help="Non-interactive mode driven by flags")
    parser.add_argument("--config", default=None, help="JSON or YAML configuration file")

    parser.add_argument("--name", default=None, help="Mod display name")
    parser.add_argument("--author", default=None, help="Mod author")
    parser.add_argument("--id", default=None, help="Mod id (derived from the name when omitted)")
    parser.add_argument("--description", default=None, help="Mod description")
    parser.add_argument("--package", default=None, help="Java package (default: <author>.<id>)")
    parser.add_argument("--minecraft", default=None, help="Minecraft version (default: 1.21.10)")
    parser.add_argument("--java-version", default=None, help="Java version (default: 21)")
    parser.add_argument("--loaders", default=None, help="Comma-separated loaders (default: fabric)")
    parser.add_argument("--libraries", default=None, help="Comma-separated library ids")
    parser.add_argument("--mods", default=None, help="Comma-separated runtime mod ids")
    parser.add_argument("--license", default=None, help="mit, lgpl, arr or apache (default: mit)")
    parser.add_argument("--gradle-version", default=None, help="Override the Gradle wrapper version")
    parser.add_argument(
        "--post-actions",
        default=None,
        help="Comma-separated post actions (default: git-init,run-gradle)",
    )

    parser.add_argument("--skip-gradle", action="store_true", help="Do not run the Gradle wrapper")
    parser.add_argument("--skip-git", action="store_true", help="Do not initialise git")
    parser.add_argument("--skip-ide", action="store_true", help="Do not open an editor")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print the full text report instead of the short summary",
    )
    parser.add_argument(
        "--list-dependencies",
        action="store_true",
        help="List selectable libraries and runtime mods (filtered by --loaders) and exit",
    )
    parser.add_argument(
        "--output-format",
        choices=("json", "text"),
        default=None,
        help="Result format (default: text)",
    )
    return parser


def _resolve_run(args: Any) -> tuple[ModConfiguration, PipelineOptions]:
    """Turn parsed CLI arguments into a configuration and pipeline options."""
    if args.config:
        config_file = merge_config_with_args(load_config_file(args.config), vars(args))
        destination = args.destination or f"./{config_file.mod.id}"
        config = config_file_to_configuration(
            config_file, destination, gradle_version=args.gradle_version
        )
        options = pipeline_options_from_config(config_file)
    else:
        destination = args.destination or f"./{format_mod_id(args.id or args.name or 'mod')}"
        config = configuration_from_args(args, destination)
        options = PipelineOptions(
            skip_gradle=args.skip_gradle,
            skip_git=args.skip_git,
            skip_ide=args.skip_ide,
            output_format=args.output_format or "text",
        )

    if options.output_format == "json":
        options = options.model_copy(update={"silent": True})

    destination_error = validate_destination_path(config.destination)
    if destination_error is not None:
        raise ConfigurationError([destination_error])
    return config, options


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``modkit``."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.list_dependencies:
        list_dependencies(_split(args.loaders))
        return

    if not args.config and not args.ci_mode:
        parser.error("interactive mode is not available; pass --ci-mode or --config")

    try:
        config, options = _resolve_run(args)
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)

    settings = Settings.from_env()
    if options.output_format == "text":
        print_summary_table(
            {
                "Name": config.name,
                "Id": config.mod_id,
                "Package": config.package,
                "Loaders": ", ".join(config.loaders),
                "Post actions": ", ".join(config.post_actions) or "none",
            },
            title="modkit",
        )

    reporter = ResultReporter(config)
    result = asyncio.run(PipelineRunner(settings).run(config, options))
    reporter.report(
        result,
        config_path=args.config,
        output_format=options.output_format,
        summary=options.output_format == "text" and not args.verbose,
    )

    if not result.success:
        sys.exit(1)
    if options.output_format == "text":
        print_success(f"Next: cd {config.destination} && ./gradlew build")


if __name__ == "__main__":
    main()
