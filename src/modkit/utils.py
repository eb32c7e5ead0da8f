"""Shared utility functions for modkit.

Provides async command execution, name formatting, destination validation,
file-system helpers, and Rich-based console reporting.  Every public
function is designed to be safe and side-effect-free where possible, with
clear error messages when something goes wrong.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import stat
import unicodedata
from pathlib import Path

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    timeout: int = 120,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously and capture its output.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.

    Raises:
        FileNotFoundError: If the program does not exist.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return (-1, "", f"Command timed out after {timeout}s: {' '.join(cmd)}")

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def format_mod_name(value: str) -> str:
    """Title-case a display name, collapsing runs of whitespace.

    Examples::

        format_mod_name("  my   cool mod ") -> "My Cool Mod"
    """
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split())


def format_mod_class(value: str) -> str:
    """Convert a display name to a Java-friendly PascalCase identifier.

    Accents are stripped and symbols act as word separators.

    Examples::

        format_mod_class("Café Tools!") -> "CafeTools"
    """
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", " ", _strip_accents(value))
    return "".join(word[:1].upper() + word[1:].lower() for word in cleaned.split())


def format_mod_id(value: str) -> str:
    """Convert arbitrary text to a mod identifier.

    The result always matches ``^[a-z][a-z0-9-]*$`` and never ends with a
    hyphen.  Leading digits/hyphens are dropped; ``"mod"`` is returned when
    nothing usable remains.

    Examples::

        format_mod_id("My Cool Mod!") -> "my-cool-mod"
        format_mod_id("42 Blocks")    -> "blocks"
    """
    result = _strip_accents(value).lower().strip()
    result = re.sub(r"[^a-z0-9\s-]", " ", result)
    result = re.sub(r"[\s-]+", "-", result)
    result = re.sub(r"^[^a-z]+", "", result)
    result = result.rstrip("-")
    return result or "mod"


def format_package_name(value: str) -> str:
    """Normalise text to a Java package name.

    * Lowercases and strips accents.
    * Turns any run of invalid characters into a single dot.
    * Drops empty segments and prefixes ``x`` to segments that do not start
      with a letter.

    Examples::

        format_package_name("Com.Example..My Mod") -> "com.example.my.mod"
        format_package_name("1up.mod")             -> "x1up.mod"
    """
    result = _strip_accents(value).lower().strip()
    result = re.sub(r"[^a-z0-9.]+", ".", result)
    segments = [segment for segment in result.split(".") if segment]
    if not segments:
        return "x"
    return ".".join(seg if seg[0].isalpha() else f"x{seg}" for seg in segments)


def slugify_author(author: str) -> str:
    """Lowercase an author name and collapse whitespace runs to dots."""
    return re.sub(r"\s+", ".", author.strip().lower())


def to_pascal(name: str) -> str:
    """Uppercase the first letter of every word and drop the whitespace.

    Characters other than the word-initial one are left untouched, so
    ``"my coolMod"`` becomes ``"MyCoolMod"``.
    """
    return "".join(word[:1].upper() + word[1:] for word in name.split())


# ---------------------------------------------------------------------------
# Destination validation
# ---------------------------------------------------------------------------


def validate_destination_path(path: str | Path) -> str | None:
    """Check that *path* can receive a new project.

    The parent directory must exist and be writable; if *path* itself exists
    it must be an empty directory.

    Returns:
        ``None`` when the destination is usable, otherwise an error message.
    """
    resolved = Path(path).expanduser().resolve()
    parent = resolved.parent

    if not parent.is_dir():
        return f'Cannot write to destination "{path}": parent directory {parent} does not exist'
    if not os.access(parent, os.W_OK):
        return f'Cannot write to destination "{path}": parent directory {parent} is not writable'

    if resolved.exists():
        if not resolved.is_dir():
            return f'Destination "{resolved}" exists and is not a directory'
        if any(resolved.iterdir()):
            return f'Directory "{resolved}" already exists and is not empty'

    return None


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist.

    Returns:
        The resolved ``Path`` object.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path.resolve()


def copy_directory(src: str | Path, dest: str | Path) -> None:
    """Recursively copy the contents of *src* into *dest* (merging)."""
    shutil.copytree(src, dest, dirs_exist_ok=True)


def move_directory(src: str | Path, dest: str | Path) -> None:
    """Move a directory, falling back to copy + delete across devices."""
    src_path = Path(src)
    dest_path = Path(dest)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.rename(src_path, dest_path)
    except OSError:
        shutil.copytree(src_path, dest_path)
        shutil.rmtree(src_path)


def find_files(root: str | Path, suffixes: tuple[str, ...] = ()) -> list[Path]:
    """Return every file under *root*, depth-first, optionally filtered by suffix.

    A missing *root* yields an empty list.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        return []
    found: list[Path] = []
    for path in sorted(root_path.rglob("*")):
        if not path.is_file():
            continue
        if suffixes and not path.name.endswith(suffixes):
            continue
        found.append(path)
    return found


def make_executable(path: Path) -> None:
    """Set the executable bit on a file."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_step_header(title: str, color: str = "bright_green") -> None:
    """Print a full-width rule announcing a pipeline stage."""
    console.print()
    console.print(Rule(f"[bold {color}] {title} [/bold {color}]", style=color))


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message to stderr."""
    err_console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message to stderr."""
    err_console.print(f"[bold yellow]{message}[/bold yellow]")
