"""Jinja2 rendering of template variables into a scaffolded tree.

Template files use ``{{ variable }}`` placeholders and ``{% if fabric %}``
blocks.  Rendering differs from a stock Jinja2 environment in three ways:

* A placeholder naming something missing from the variable set is written
  back exactly as it appeared, so a second pass can still resolve it.
  Templates therefore read only the variable set (no loop or ``set`` names).
* ``None`` renders as an empty string and booleans as ``true``/``false``,
  which is what Gradle properties and JSON descriptors expect.
* ``{#`` is plain text (shell scripts use ``${#array[@]}``); templates have
  no comment syntax.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, TemplateSyntaxError, Undefined

from modkit.utils import find_files, print_warning

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp",
        ".jar", ".zip", ".gz", ".class",
        ".ogg", ".wav", ".mp3",
        ".nbt", ".mca",
        ".ttf", ".otf", ".woff", ".woff2",
        ".exe", ".dll", ".so", ".dylib",
    }
)

# A placeholder that is a bare name or a dotted/indexed path on one.
_PLACEHOLDER = re.compile(
    r"\{\{-?\s*(?P<root>[A-Za-z_][A-Za-z0-9_]*)(?:\.[A-Za-z_][A-Za-z0-9_]*|\[[^\]{}]*\])*\s*-?\}\}"
)
_VERBATIM_TOKEN = "@@modkit-verbatim-{index}@@"


class VerbatimUndefined(Undefined):
    """Undefined that prints itself as the placeholder it came from.

    Attribute, item and call access chain instead of raising, so
    ``{{ foo.bar }}`` inside a larger expression still renders.
    """

    __slots__ = ()

    def _chain(self, suffix: str) -> "VerbatimUndefined":
        base = self._undefined_name or ""
        return VerbatimUndefined(name=f"{base}{suffix}")

    def __getattr__(self, name: str) -> Any:
        if name[:2] == "__":
            raise AttributeError(name)
        return self._chain(f".{name}")

    def __getitem__(self, key: Any) -> "VerbatimUndefined":
        return self._chain(f"[{key!r}]")

    def __call__(self, *args: Any, **kwargs: Any) -> "VerbatimUndefined":
        return self._chain("()")

    def __str__(self) -> str:
        if self._undefined_name is None:
            return ""
        return "{{ " + self._undefined_name + " }}"


def _finalize(value: Any) -> Any:
    if isinstance(value, Undefined):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def is_binary(path: Path) -> bool:
    return path.suffix.lower() in BINARY_EXTENSIONS


class TemplateRenderer:
    """Renders template variables into strings and files in place."""

    def __init__(self, variables: Mapping[str, Any]) -> None:
        self.variables = dict(variables)
        self.env = Environment(
            undefined=VerbatimUndefined,
            finalize=_finalize,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
            comment_start_string="<#modkit#",
            comment_end_string="#modkit#>",
        )

    def render_string(self, template_string: str) -> str:
        """Render an inline template string with the variable set.

        Raises:
            TemplateSyntaxError: When the text is not a valid template.
        """
        verbatim: list[str] = []

        def protect(match: re.Match[str]) -> str:
            if match.group("root") in self.variables:
                return match.group(0)
            verbatim.append(match.group(0))
            return _VERBATIM_TOKEN.format(index=len(verbatim) - 1)

        source = _PLACEHOLDER.sub(protect, template_string)
        rendered = self.env.from_string(source).render(**self.variables)
        for index, text in enumerate(verbatim):
            rendered = rendered.replace(_VERBATIM_TOKEN.format(index=index), text)
        return rendered

    def render_file(self, path: str | Path) -> bool:
        """Render *path* in place.

        Binary files, files that are not valid UTF-8 and files that do not
        parse as templates are left untouched.
        The file is rewritten only when rendering changed its content.

        Returns:
            ``True`` when the file was rewritten.
        """
        file_path = Path(path)
        if is_binary(file_path):
            return False
        try:
            original = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            print_warning(f"Skipping non-UTF-8 file {file_path}")
            return False

        try:
            rendered = self.render_string(original)
        except TemplateSyntaxError as exc:
            print_warning(f"Skipping {file_path}: not a valid template (line {exc.lineno}: {exc.message})")
            return False
        if rendered == original:
            return False
        file_path.write_text(rendered, encoding="utf-8")
        return True

    def render_tree(self, root: str | Path) -> list[Path]:
        """Render every text file under *root*; return the files that changed."""
        return [path for path in find_files(root) if self.render_file(path)]

    async def render_tree_async(self, root: str | Path) -> list[Path]:
        """Like :meth:`render_tree`, run off the event loop."""
        return await asyncio.to_thread(self.render_tree, root)
