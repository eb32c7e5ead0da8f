"""Scaffolding pipeline steps.

Every step is an ``async`` callable taking the run's :class:`ModConfiguration`
and its precomputed variable set.  A step either completes or raises
:class:`StepError` naming the step and the destination it was working on.
Blocking file-system work runs in a worker thread so the event loop stays
responsive while Gradle output is streamed.
"""

from __future__ import annotations

import asyncio
import functools
import os
import re
import shutil
import subprocess
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable

from modkit.config import LOADERS, ModConfiguration, Settings
from modkit.dependencies import get_dependency_config, get_required_repositories, validate_dependency_ids
from modkit.scaffolder.templates import DEFAULT_TEMPLATE_DIR, TemplateRenderer
from modkit.scaffolder.variables import TemplateVariableSet
from modkit.utils import (
    console,
    copy_directory,
    ensure_dir,
    err_console,
    find_files,
    make_executable,
    move_directory,
    print_warning,
    run_command,
    slugify_author,
)

TEMPLATE_PACKAGE = "com.example.modtemplate"
TEMPLATE_PACKAGE_PATH = Path("com", "example", "modtemplate")
TEMPLATE_SERVICE_FILE = f"{TEMPLATE_PACKAGE}.platform.services.IPlatformHelper"
TEMPLATE_MIXIN_ID = "examplemod"
SUBPROJECTS: tuple[str, ...] = ("common", *LOADERS)

# Template class name -> variable holding its replacement.
CLASS_RENAMES: tuple[tuple[str, str], ...] = (
    ("TemplateMod", "main_class_name"),
    ("TemplateFabric", "fabric_entry_class"),
    ("TemplateForge", "forge_entry_class"),
    ("TemplateNeoForge", "neoforge_entry_class"),
    ("TemplateDatagen", "datagen_class_name"),
    ("Constants", "constants_class_name"),
    ("FabricPlatformHelper", "fabric_platform_helper"),
    ("ForgePlatformHelper", "forge_platform_helper"),
    ("NeoForgePlatformHelper", "neoforge_platform_helper"),
)

LICENSE_TEMPLATES: dict[str, str] = {
    "mit": "mit.txt",
    "lgpl": "lgpl.txt",
    "arr": "arr.txt",
    "apache": "apache.txt",
}

LOADER_DESCRIPTORS: dict[str, str] = {
    "fabric": "Fabric (fabric.mod.json + build.gradle)",
    "forge": "Forge (META-INF/mods.toml + build.gradle)",
    "neoforge": "NeoForge (META-INF/neoforge.mods.toml + build.gradle)",
}

VSCODE_LAUNCHERS: tuple[str, ...] = ("code", "code-insiders", "codium")
INTELLIJ_LAUNCHERS: tuple[str, ...] = (
    "idea",
    "idea64",
    "intellij-idea-ultimate",
    "intellij-idea-community",
)

GRADLE_TIMEOUT_MESSAGE = (
    "Gradle setup timed out after {minutes} minutes. Check network connection and try again."
)
GRADLE_PERMISSION_MESSAGE = "Permission denied running Gradle wrapper. Check file permissions."

StepFunction = Callable[..., Awaitable[None]]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StepError(Exception):
    """Raised when a pipeline step fails."""

    def __init__(self, step: str, destination: str | Path, message: str) -> None:
        self.step = step
        self.destination = str(destination)
        self.message = message
        super().__init__(f"{step} failed in {self.destination}: {message}")


def pipeline_step(step_id: str, purpose: str) -> Callable[[StepFunction], StepFunction]:
    """Wrap a step so any exception surfaces as :class:`StepError`.

    *purpose* prefixes the error message (``"License application failed"``).
    """

    def decorator(func: StepFunction) -> StepFunction:
        @functools.wraps(func)
        async def wrapper(config: ModConfiguration, variables: TemplateVariableSet, **kwargs: Any) -> None:
            try:
                await func(config, variables, **kwargs)
            except StepError:
                raise
            except Exception as exc:
                raise StepError(step_id, config.destination, f"{purpose}: {exc}") from exc

        wrapper.step_id = step_id  # type: ignore[attr-defined]
        return wrapper

    return decorator


def _done(message: str) -> None:
    console.print(f"  [green]+[/green] {message}")


def _template_root(settings: Settings | None) -> Path:
    if settings is not None and settings.template_dir is not None:
        return settings.template_dir
    return DEFAULT_TEMPLATE_DIR


# ---------------------------------------------------------------------------
# Template processing
# ---------------------------------------------------------------------------


@pipeline_step("template-clone", "Template cloning failed")
async def clone_template(
    config: ModConfiguration,
    variables: TemplateVariableSet,
    *,
    settings: Settings | None = None,
) -> None:
    """Copy the base template and every selected loader module into the destination."""
    root = _template_root(settings)
    base = root / "base"
    if not base.is_dir():
        raise FileNotFoundError(f"Base template not found at {base}")

    destination = ensure_dir(config.destination)
    await asyncio.to_thread(copy_directory, base, destination)

    for loader in config.loaders:
        loader_template = root / "loaders" / loader
        if not loader_template.is_dir():
            print_warning(f"  No template module for loader '{loader}' at {loader_template}")
            continue
        await asyncio.to_thread(copy_directory, loader_template, destination / loader)

    _done(f"Template cloned to {destination}")


_DECLARATION = re.compile(
    r"\b(package|import)(\s+(?:static\s+)?)" + re.escape(TEMPLATE_PACKAGE) + r"(?=[.;\s])"
)


def _rewrite_declarations(destination: Path, package: str) -> int:
    changed = 0
    for java_file in find_files(destination, (".java",)):
        content = java_file.read_text(encoding="utf-8")
        updated = _DECLARATION.sub(lambda m: f"{m.group(1)}{m.group(2)}{package}", content)
        if updated != content:
            java_file.write_text(updated, encoding="utf-8")
            changed += 1
    return changed


def _prune_empty_parents(start: Path, stop: Path) -> None:
    """Remove *start* and its ancestors up to (excluding) *stop* while empty."""
    current = start
    while current != stop and current.is_dir() and not any(current.iterdir()):
        current.rmdir()
        current = current.parent


def _move_package(java_root: Path, target_path: str) -> bool:
    source = java_root / TEMPLATE_PACKAGE_PATH
    target = java_root / target_path
    if not source.is_dir():
        return False
    if target.exists():
        print_warning(f"  Target package directory already exists at {target}, skipping")
        return False

    # Staged outside com/example; the target may be nested under it.
    staging = java_root / f".modkit-{uuid.uuid4().hex}"
    move_directory(source, staging)
    _prune_empty_parents(source.parent, java_root)
    move_directory(staging, target)
    return True


@pipeline_step("package-transform", "Package structure transformation failed")
async def transform_package_structure(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Rewrite template package declarations and move the package directories."""
    destination = Path(config.destination)
    await asyncio.to_thread(_rewrite_declarations, destination, config.package)

    moved: list[str] = []
    for subproject in SUBPROJECTS:
        java_root = destination / subproject / "src" / "main" / "java"
        if await asyncio.to_thread(_move_package, java_root, config.package_path):
            moved.append(subproject)

    _done(
        f"Package structure transformed to {config.package}"
        + (f" ({', '.join(moved)})" if moved else "")
    )


def _rename_classes(destination: Path, renames: dict[str, str]) -> list[Path]:
    renamed: list[Path] = []
    if not renames:
        return renamed
    # Single pass: a replacement is never matched again.
    pattern = re.compile(r"\b(" + "|".join(re.escape(old) for old in renames) + r")\b")
    for java_file in find_files(destination, (".java",)):
        content = java_file.read_text(encoding="utf-8")
        updated = pattern.sub(lambda m: renames[m.group(1)], content)
        if updated != content:
            java_file.write_text(updated, encoding="utf-8")

        new_name = renames.get(java_file.stem)
        if new_name:
            target = java_file.with_name(f"{new_name}.java")
            java_file.rename(target)
            renamed.append(target)
    return renamed


@pipeline_step("class-rename", "Class file renaming failed")
async def rename_class_files(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Replace template class identifiers in Java sources and rename their files."""
    renames = {
        old: str(variables.get(key) or "")
        for old, key in CLASS_RENAMES
    }
    renames = {old: new for old, new in renames.items() if new and new != old}
    renamed = await asyncio.to_thread(_rename_classes, Path(config.destination), renames)
    _done(f"Class files renamed ({len(renamed)} files)")


def _rename_mixins(destination: Path, mod_id: str) -> list[tuple[Path, Path]]:
    moves: list[tuple[Path, Path]] = []
    for path in find_files(destination):
        name = path.name
        if "mixin" not in name or ".json" not in name:
            continue
        new_name = name.replace(TEMPLATE_MIXIN_ID, mod_id)
        if new_name != name:
            target = path.with_name(new_name)
            path.rename(target)
            moves.append((path, target))
    return moves


@pipeline_step("mixin-rename", "Mixin file renaming failed")
async def rename_mixin_files(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Rename mixin descriptors so they carry the mod id."""
    moves = await asyncio.to_thread(_rename_mixins, Path(config.destination), config.mod_id)
    for old, new in moves:
        console.print(f"    [dim]{old.name} -> {new.name}[/dim]")
    _done("Mixin files renamed")


@pipeline_step("service-reg", "Service registration file generation failed")
async def generate_service_registration_files(
    config: ModConfiguration, variables: TemplateVariableSet
) -> None:
    """Point each loader's ``IPlatformHelper`` service descriptor at its helper class."""
    destination = Path(config.destination)
    interface = variables.get("platform_helper_interface") or "IPlatformHelper"
    service_name = f"{config.package}.platform.services.{interface}"

    for loader in LOADERS:
        loader_dir = destination / loader
        if loader not in config.loaders or not loader_dir.is_dir():
            continue
        services_dir = ensure_dir(loader_dir / "src" / "main" / "resources" / "META-INF" / "services")

        old_file = services_dir / TEMPLATE_SERVICE_FILE
        if old_file.name != service_name and old_file.exists():
            old_file.unlink()

        helper = variables.get(f"{loader}_platform_helper")
        helper_fqcn = f"{config.package}.platform.{helper}"
        (services_dir / service_name).write_text(helper_fqcn + "\n", encoding="utf-8")
        _done(f"{loader} service registration: {helper_fqcn}")


@pipeline_step("template-vars", "Template variable application failed")
async def apply_template_variables(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Render the variable set into every text file of the project."""
    renderer = TemplateRenderer(variables)
    changed = await renderer.render_tree_async(config.destination)
    _done(f"Template variables applied ({len(changed)} files updated)")


# ---------------------------------------------------------------------------
# Configuration and content
# ---------------------------------------------------------------------------


@pipeline_step("configure-loaders", "Loader configuration failed")
async def configure_loaders(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    descriptions = [LOADER_DESCRIPTORS[loader] for loader in config.loaders]
    _done(f"Configured loaders: {', '.join(descriptions)}")


def _check_loader_compatibility(dep_ids: tuple[str, ...], loaders: tuple[str, ...]) -> None:
    valid, invalid = validate_dependency_ids(dep_ids)
    if invalid:
        raise ValueError(f"Unknown dependencies: {', '.join(invalid)}")
    for dep_id in valid:
        dep = get_dependency_config(dep_id)
        if dep is not None and not set(dep.compatible_loaders) & set(loaders):
            raise ValueError(
                f"{dep.display_name} ({dep.id}) is not compatible with any selected loader "
                f"({', '.join(loaders)}); it supports: {', '.join(dep.compatible_loaders)}"
            )


@pipeline_step("install-libraries", "Library installation failed")
async def install_libraries(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Confirm the selected libraries; each must support a selected loader."""
    _check_loader_compatibility(config.libraries, config.loaders)
    if config.libraries:
        _done(f"Libraries configured: {', '.join(config.libraries)}")
        repositories = get_required_repositories(config.libraries)
        if repositories:
            _done(f"Maven repositories: {', '.join(repo.name for repo in repositories)}")
    else:
        _done("No libraries selected")


@pipeline_step("install-utility", "Runtime mod installation failed")
async def install_runtime_mods(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Confirm the selected runtime mods; each must support a selected loader."""
    _check_loader_compatibility(config.mods, config.loaders)
    if config.mods:
        _done(f"Runtime mods configured: {', '.join(config.mods)}")
    else:
        _done("No runtime mods selected")


@pipeline_step("add-samples", "Sample code addition failed")
async def add_sample_code(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Extension point for sample bundles.  The entry classes already carry a minimal sample."""
    if not config.samples:
        _done("No sample code selected")
        return
    _done(f"Sample bundles noted: {', '.join(config.samples)}")


@pipeline_step("apply-license", "License application failed")
async def apply_license(
    config: ModConfiguration,
    variables: TemplateVariableSet,
    *,
    settings: Settings | None = None,
) -> None:
    """Write the selected license to ``LICENSE`` and render it."""
    template_name = LICENSE_TEMPLATES.get(config.license)
    if template_name is None:
        raise ValueError(
            f"Unsupported license '{config.license}'. "
            f"Supported licenses: {', '.join(LICENSE_TEMPLATES)}"
        )
    template = _template_root(settings) / "license" / template_name
    if not template.is_file():
        raise FileNotFoundError(f"License template not found at {template}")

    license_path = Path(config.destination) / "LICENSE"
    await asyncio.to_thread(shutil.copyfile, template, license_path)
    await asyncio.to_thread(TemplateRenderer(variables).render_file, license_path)
    _done(f"License applied: {config.license.upper()}")


@pipeline_step("finalize-project", "Project finalization failed")
async def finalize_project(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Extension point for post-scaffold validation."""
    _done(f"Project finalized: {config.name}")


# ---------------------------------------------------------------------------
# Post-creation actions
# ---------------------------------------------------------------------------


async def _git(args: list[str], cwd: Path) -> tuple[int, str, str]:
    return await run_command(["git", *args], cwd=cwd)


@pipeline_step("git-init", "Git initialization failed")
async def initialize_git(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    """Initialise a repository and create the first commit."""
    destination = Path(config.destination)
    try:
        rc, _, _ = await _git(["--version"], destination)
    except FileNotFoundError:
        rc = -1
    if rc != 0:
        raise RuntimeError("Git is not installed or not available in PATH")

    async def checked(args: list[str]) -> None:
        rc, _, stderr = await _git(args, destination)
        if rc != 0:
            raise RuntimeError(f"git {' '.join(args)} exited with {rc}: {stderr}")

    await checked(["init"])

    rc, name, _ = await _git(["config", "user.name"], destination)
    if rc != 0 or not name:
        await checked(["config", "user.name", config.author])
    rc, email, _ = await _git(["config", "user.email"], destination)
    if rc != 0 or not email:
        await checked(["config", "user.email", f"{slugify_author(config.author)}@example.com"])

    await checked(["add", "."])
    await checked(["commit", "-m", f"Initial commit: {config.name} v{config.version}"])
    _done("Git repository initialized with initial commit")


async def _pump(stream: asyncio.StreamReader | None, sink: Callable[[str], None]) -> None:
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            break
        sink(line.decode("utf-8", errors="replace").rstrip("\n"))


async def run_wrapper(wrapper: Path, cwd: Path, timeout: float) -> tuple[int, list[str]]:
    """Run a Gradle wrapper, streaming its output.

    Stdout lines go to the console as-is and stderr lines in red.

    Returns:
        ``(returncode, stderr_lines)``.

    Raises:
        TimeoutError: When the wrapper does not finish within *timeout* seconds.
    """
    stderr_lines: list[str] = []

    def on_stdout(line: str) -> None:
        console.print(line, markup=False, highlight=False)

    def on_stderr(line: str) -> None:
        stderr_lines.append(line)
        err_console.print(line, style="red", markup=False, highlight=False)

    process = await asyncio.create_subprocess_exec(
        str(wrapper),
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump(process.stdout, on_stdout),
                _pump(process.stderr, on_stderr),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise TimeoutError(f"Gradle wrapper timed out after {timeout}s") from exc
    return process.returncode or 0, stderr_lines


async def _ensure_wrapper_jar(destination: Path, gradle_version: str) -> None:
    """Generate the wrapper JAR with a system Gradle when the project lacks one."""
    jar = destination / "gradle" / "wrapper" / "gradle-wrapper.jar"
    if jar.exists():
        return
    gradle = shutil.which("gradle")
    if gradle is None:
        raise FileNotFoundError(
            f"Gradle wrapper JAR not found at {jar} and no 'gradle' on PATH to generate it"
        )
    rc, _, stderr = await run_command(
        [gradle, "wrapper", "--gradle-version", gradle_version], cwd=destination, timeout=300
    )
    if rc != 0:
        raise RuntimeError(f"gradle wrapper exited with {rc}: {stderr}")


@pipeline_step("run-gradle", "Gradle configuration failed")
async def run_gradle(
    config: ModConfiguration,
    variables: TemplateVariableSet,
    *,
    settings: Settings | None = None,
) -> None:
    """Bootstrap the project through its Gradle wrapper."""
    destination = Path(config.destination)
    timeout = (settings or Settings()).gradle_timeout
    wrapper = destination / ("gradlew.bat" if os.name == "nt" else "gradlew")

    if not wrapper.exists():
        raise FileNotFoundError(
            f"Gradle wrapper not found at {wrapper}. Please ensure the project was generated correctly."
        )
    if os.name != "nt":
        make_executable(wrapper)

    gradle_version = str(variables.get("gradle_version") or config.gradle_version or "8.14")
    await _ensure_wrapper_jar(destination, gradle_version)

    try:
        rc, stderr_lines = await run_wrapper(wrapper, destination, timeout)
    except PermissionError as exc:
        raise PermissionError(GRADLE_PERMISSION_MESSAGE) from exc
    except TimeoutError as exc:
        raise TimeoutError(GRADLE_TIMEOUT_MESSAGE.format(minutes=round(timeout / 60))) from exc

    if rc != 0:
        stderr_text = "\n".join(stderr_lines)
        if "JAVA_HOME" in stderr_text:
            raise RuntimeError(
                f"Java not found or misconfigured. Please install Java {config.java_version} and try again."
            )
        if "Permission denied" in stderr_text:
            raise PermissionError(GRADLE_PERMISSION_MESSAGE)
        raise RuntimeError(f"Gradle execution failed with exit code {rc}")

    _done("Gradle project configured successfully")


def _launch_detached(executable: str, destination: Path) -> None:
    kwargs: dict[str, Any] = {
        "cwd": str(destination),
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
    }
    if os.name == "nt":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    subprocess.Popen([executable, str(destination)], **kwargs)


def _open_editor(label: str, candidates: tuple[str, ...], destination: Path) -> None:
    for candidate in candidates:
        executable = shutil.which(candidate)
        if executable:
            _launch_detached(executable, destination)
            _done(f"Opened {destination} in {label}")
            return
    raise FileNotFoundError(
        f"{label} launcher not found on PATH (tried: {', '.join(candidates)})"
    )


@pipeline_step("open-vscode", "VS Code opening failed")
async def open_in_vscode(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    _open_editor("VS Code", VSCODE_LAUNCHERS, Path(config.destination))


@pipeline_step("open-intellij", "IntelliJ IDEA opening failed")
async def open_in_intellij(config: ModConfiguration, variables: TemplateVariableSet) -> None:
    _open_editor("IntelliJ IDEA", INTELLIJ_LAUNCHERS, Path(config.destination))


# ---------------------------------------------------------------------------
# Step tables
# ---------------------------------------------------------------------------

TEMPLATE_STEPS: tuple[StepFunction, ...] = (
    clone_template,
    transform_package_structure,
    rename_class_files,
    rename_mixin_files,
    generate_service_registration_files,
    apply_template_variables,
)

CONTENT_STEPS: tuple[StepFunction, ...] = (
    configure_loaders,
    install_libraries,
    install_runtime_mods,
    add_sample_code,
    apply_license,
    finalize_project,
)

POST_ACTIONS: dict[str, StepFunction] = {
    "git-init": initialize_git,
    "run-gradle": run_gradle,
    "open-vscode": open_in_vscode,
    "open-intellij": open_in_intellij,
}

# Steps that accept the ``settings`` keyword.
SETTINGS_AWARE: frozenset[str] = frozenset({"template-clone", "apply-license", "run-gradle"})
