"""modkit configuration.

Centralised, typed configuration for a scaffold run.  The user's intent is
captured once in an immutable :class:`ModConfiguration`; process-wide knobs
(registry endpoint, timeouts, template location) live in :class:`Settings`.
A run can be described by a JSON/YAML file (:class:`ConfigFile`) whose values
are overridden by CLI flags before the final configuration is built.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from modkit.dependencies import get_dependency_config
from modkit.utils import format_package_name, slugify_author

LOADERS: tuple[str, ...] = ("fabric", "forge", "neoforge")
POST_ACTIONS: tuple[str, ...] = ("git-init", "run-gradle", "open-vscode", "open-intellij")

MOD_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
PACKAGE_PATTERN = re.compile(r"^[a-z][a-z0-9]*(\.[a-z][a-z0-9]*)*$")

DEFAULT_REGISTRY_URL = "https://echo.iamkaf.com/api"


class ConfigurationError(Exception):
    """Raised when a configuration is invalid.  Carries every problem found."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        bullet_list = "\n".join(f"- {error}" for error in errors)
        super().__init__(f"Configuration validation failed:\n{bullet_list}")


# ---------------------------------------------------------------------------
# Process settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    """Tuning knobs that are not part of the mod itself."""

    registry_url: str = Field(default=DEFAULT_REGISTRY_URL)
    registry_timeout: float = Field(default=15.0, gt=0, description="Per-request timeout in seconds")
    gradle_timeout: int = Field(default=600, ge=30, description="Gradle wrapper timeout in seconds")
    template_dir: Path | None = Field(
        default=None, description="Override for the bundled template tree"
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            MODKIT_REGISTRY_URL, MODKIT_REGISTRY_TIMEOUT,
            MODKIT_GRADLE_TIMEOUT, MODKIT_TEMPLATE_DIR.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("MODKIT_REGISTRY_URL"):
            kwargs["registry_url"] = os.environ["MODKIT_REGISTRY_URL"]
        if os.environ.get("MODKIT_REGISTRY_TIMEOUT"):
            kwargs["registry_timeout"] = float(os.environ["MODKIT_REGISTRY_TIMEOUT"])
        if os.environ.get("MODKIT_GRADLE_TIMEOUT"):
            kwargs["gradle_timeout"] = int(os.environ["MODKIT_GRADLE_TIMEOUT"])
        if os.environ.get("MODKIT_TEMPLATE_DIR"):
            kwargs["template_dir"] = Path(os.environ["MODKIT_TEMPLATE_DIR"])
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Mod configuration
# ---------------------------------------------------------------------------


class ModConfiguration(BaseModel):
    """The complete, validated user intent for one scaffold run.

    Instances are frozen: they are built once (from prompts, CLI flags or a
    config file) and only read afterwards.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Display name")
    author: str = Field(..., min_length=1)
    mod_id: str = Field(..., description="Lowercase slug used by the loaders")
    description: str = Field(default="")
    version: str = Field(default="1.0.0")
    java_version: str = Field(default="21")
    minecraft_version: str = Field(default="1.21.10")
    package: str = Field(default="", description="Java package; derived from author and id when empty")
    loaders: tuple[str, ...] = Field(default=("fabric",))
    libraries: tuple[str, ...] = Field(default=())
    mods: tuple[str, ...] = Field(default=(), description="Runtime components")
    samples: tuple[str, ...] = Field(default=())
    license: str = Field(default="mit")
    destination: Path
    post_actions: tuple[str, ...] = Field(default=())
    gradle_version: str | None = Field(default=None)
    fabric_loom_version: str | None = Field(default=None)

    @field_validator("mod_id")
    @classmethod
    def _check_mod_id(cls, value: str) -> str:
        if not MOD_ID_PATTERN.match(value) or value.endswith("-"):
            raise ValueError(
                f"mod id '{value}' must match ^[a-z][a-z0-9-]*$ and must not end with '-'"
            )
        return value

    @field_validator("loaders")
    @classmethod
    def _check_loaders(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one loader must be selected")
        invalid = [loader for loader in value if loader not in LOADERS]
        if invalid:
            raise ValueError(
                f"Invalid loaders: {', '.join(invalid)}. Valid loaders: {', '.join(LOADERS)}"
            )
        return tuple(dict.fromkeys(value))

    @field_validator("libraries")
    @classmethod
    def _check_libraries(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _check_dependency_ids(value, "library")

    @field_validator("mods")
    @classmethod
    def _check_mods(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _check_dependency_ids(value, "mod")

    @field_validator("post_actions")
    @classmethod
    def _check_post_actions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        invalid = [action for action in value if action not in POST_ACTIONS]
        if invalid:
            raise ValueError(
                f"Unknown post-creation actions: {', '.join(invalid)}. "
                f"Valid actions: {', '.join(POST_ACTIONS)}"
            )
        return value

    @model_validator(mode="before")
    @classmethod
    def _derive_package(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("package"):
            author = data.get("author") or "unknown"
            mod_id = (data.get("mod_id") or "mod").replace("-", "")
            data = {**data, "package": format_package_name(f"{slugify_author(author)}.{mod_id}")}
        return data

    @field_validator("package")
    @classmethod
    def _check_package(cls, value: str) -> str:
        if not PACKAGE_PATTERN.match(value):
            raise ValueError(
                f"package '{value}' must be dot-separated lowercase segments each starting with a letter"
            )
        return value

    @property
    def package_path(self) -> str:
        """The package as a slash-separated relative path."""
        return self.package.replace(".", "/")

    @classmethod
    def build(cls, **data: Any) -> "ModConfiguration":
        """Construct a configuration, converting validation failures to ``ConfigurationError``."""
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_errors(exc)) from exc


def _check_dependency_ids(value: tuple[str, ...], expected_type: str) -> tuple[str, ...]:
    problems: list[str] = []
    for dep_id in value:
        descriptor = get_dependency_config(dep_id)
        if descriptor is None:
            problems.append(f"unknown dependency '{dep_id}'")
        elif descriptor.type != expected_type:
            problems.append(f"'{dep_id}' is a {descriptor.type}, not a {expected_type}")
    if problems:
        raise ValueError("; ".join(problems))
    return tuple(dict.fromkeys(value))


def _format_validation_errors(exc: ValidationError) -> list[str]:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return messages


# ---------------------------------------------------------------------------
# Pipeline options
# ---------------------------------------------------------------------------


class PipelineOptions(BaseModel):
    """Flags controlling which post-creation actions actually run."""

    skip_gradle: bool = False
    skip_git: bool = False
    skip_ide: bool = False
    silent: bool = False
    output_format: Literal["json", "text"] = "text"


# ---------------------------------------------------------------------------
# Configuration file
# ---------------------------------------------------------------------------


class ModSection(BaseModel):
    name: str
    author: str
    id: str
    version: str | None = None
    description: str | None = None
    package: str | None = None
    minecraftVersion: str | None = None
    javaVersion: str | None = None


class OptionsSection(BaseModel):
    loaders: list[str]
    libraries: list[str] = Field(default_factory=list)
    mods: list[str] = Field(default_factory=list)
    license: str | None = None
    postActions: list[str] = Field(default_factory=list)


class PipelineSection(BaseModel):
    skipGradle: bool = False
    skipGit: bool = False
    skipIde: bool = False
    outputFormat: Literal["json", "text"] | None = None


class ConfigFile(BaseModel):
    """On-disk description of a scaffold run (``mod``/``options``/``pipeline``)."""

    mod: ModSection
    options: OptionsSection
    pipeline: PipelineSection = Field(default_factory=PipelineSection)

    def save(self, path: Path) -> Path:
        """Persist the configuration as pretty-printed JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
        return path


def load_config_file(path: str | Path) -> ConfigFile:
    """Load and validate a JSON (or YAML) configuration file.

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated.
    """
    file_path = Path(path).expanduser()
    try:
        raw_text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError([f'Failed to read configuration file "{path}": {exc}']) from exc

    try:
        if file_path.suffix.lower() in (".yml", ".yaml"):
            raw = yaml.safe_load(raw_text)
        else:
            raw = json.loads(raw_text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError([f'Failed to parse configuration file "{path}": {exc}']) from exc

    if not isinstance(raw, dict):
        raise ConfigurationError([f'Configuration file "{path}" must contain an object'])

    try:
        return ConfigFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc)) from exc


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def merge_config_with_args(config: ConfigFile, args: dict[str, Any]) -> ConfigFile:
    """Overlay CLI arguments on a loaded config file.  CLI values take precedence.

    *args* uses the CLI's snake_case names; ``None`` means "not given".
    """
    mod = config.mod.model_dump()
    options = config.options.model_dump()
    pipeline = config.pipeline.model_dump()

    for arg_name, key in (
        ("name", "name"),
        ("author", "author"),
        ("id", "id"),
        ("description", "description"),
        ("package", "package"),
        ("minecraft", "minecraftVersion"),
        ("java_version", "javaVersion"),
    ):
        if args.get(arg_name):
            mod[key] = args[arg_name]

    for arg_name, key in (
        ("loaders", "loaders"),
        ("libraries", "libraries"),
        ("mods", "mods"),
        ("post_actions", "postActions"),
    ):
        if args.get(arg_name):
            options[key] = _split_list(args[arg_name])
    if args.get("license"):
        options["license"] = args["license"]

    for arg_name, key in (
        ("skip_gradle", "skipGradle"),
        ("skip_git", "skipGit"),
        ("skip_ide", "skipIde"),
    ):
        if args.get(arg_name):
            pipeline[key] = True
    if args.get("output_format"):
        pipeline["outputFormat"] = args["output_format"]

    return ConfigFile(
        mod=ModSection(**mod),
        options=OptionsSection(**options),
        pipeline=PipelineSection(**pipeline),
    )


def config_file_to_configuration(
    config: ConfigFile,
    destination: str | Path,
    *,
    gradle_version: str | None = None,
) -> ModConfiguration:
    """Turn a (merged) config file into a validated :class:`ModConfiguration`."""
    return ModConfiguration.build(
        name=config.mod.name,
        author=config.mod.author,
        mod_id=config.mod.id,
        description=config.mod.description or "",
        version=config.mod.version or "1.0.0",
        java_version=config.mod.javaVersion or "21",
        minecraft_version=config.mod.minecraftVersion or "1.21.10",
        package=config.mod.package or "",
        loaders=tuple(config.options.loaders),
        libraries=tuple(config.options.libraries),
        mods=tuple(config.options.mods),
        license=config.options.license or "mit",
        destination=Path(destination),
        post_actions=tuple(config.options.postActions),
        gradle_version=gradle_version,
    )


def pipeline_options_from_config(config: ConfigFile) -> PipelineOptions:
    """Extract :class:`PipelineOptions` from the ``pipeline`` section."""
    return PipelineOptions(
        skip_gradle=config.pipeline.skipGradle,
        skip_git=config.pipeline.skipGit,
        skip_ide=config.pipeline.skipIde,
        output_format=config.pipeline.outputFormat or "text",
    )
