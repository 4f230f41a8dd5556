"""Variable scopes for Inkwell.

A Vars mapping is the data a template sees. Scopes are layered with
merge_vars(), later layers winning: environment globals, then layout front
matter, then document front matter.

Key items:
- Vars: dict subclass with delimiter lookup and pretty-printing.
- Delims: A template delimiter pair.
- merge_vars: Overwrite-on-conflict merge of any number of layers.
- env_globals: Host environment variables carrying the INK_ prefix.
- parse_header: Front matter text to (Vars, non-conforming keys).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import IO, Any

import click
import yaml

from .config import ENV_PREFIX

KEY_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
DELIM_KEYS = ("ldelim", "rdelim")


@dataclass(frozen=True)
class Delims:
    """Left/right expression delimiters for one template scope."""

    left: str = "{{"
    right: str = "}}"

    @property
    def is_default(self) -> bool:
        return self == Delims()


class Vars(dict):
    """Ordered mapping of variable name to scalar or structured value."""

    def get_str(self, key: str, default: str = "") -> str:
        """Return a value rendered as text, the way a template would print it."""
        if key not in self:
            return default
        return stringify(self[key])

    def delims(self) -> Delims:
        """Resolve the template delimiters of this scope.

        A missing or empty ``ldelim``/``rdelim`` falls back to the default.
        """
        default = Delims()
        left = self.get_str("ldelim") or default.left
        right = self.get_str("rdelim") or default.right
        return Delims(left, right)

    def clear_delims(self) -> None:
        for key in DELIM_KEYS:
            self.pop(key, None)

    def without_delims(self) -> Vars:
        clone = Vars(self)
        clone.clear_delims()
        return clone

    def pretty_print(
        self,
        stream: IO[str] | None = None,
        nonconforming: list[str] | None = None,
        exclude: re.Pattern | None = None,
        color: bool | None = None,
    ) -> None:
        """Print keys and values aligned in two columns.

        Args:
            stream: Output stream; defaults to stdout.
            nonconforming: Rejected front matter keys, reported as warnings.
            exclude: Keys matching this pattern are not printed.
            color: Force colored output on/off; None lets click decide.
        """
        keys = [k for k in sorted(self) if not (exclude and exclude.search(k))]
        width = max((len(k) for k in keys), default=0)
        for key in keys:
            label = click.style(key.rjust(width), fg="bright_green", bold=True)
            click.echo(f"  {label}: {stringify(self[key])}", file=stream, color=color)
        for key in nonconforming or []:
            warn = click.style("WARNING", fg="bright_yellow", bold=True)
            click.echo(
                f"  {warn}: ignored non-conforming key `{key}`",
                file=stream,
                color=color,
            )


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_truthy(value: Any) -> bool:
    """Interpret a front matter flag such as ``skip``."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def merge_vars(*layers: Mapping[str, Any] | None) -> Vars:
    """Merge variable layers left to right; later layers win on conflict."""
    merged = Vars()
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def env_globals(
    environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
) -> Vars:
    """Collect prefixed host environment variables as global template vars.

    The prefix is stripped and the remainder lower-cased. Delimiter overrides
    are per-template, so they are never taken from the environment.
    """
    if environ is None:
        environ = os.environ
    found = Vars()
    for name, value in environ.items():
        if not name.startswith(prefix):
            continue
        key = name[len(prefix) :].lower()
        if key:
            found[key] = value
    found.clear_delims()
    return found


def _parse_lines(header: str) -> dict[str, Any]:
    parsed: dict[str, Any] = {}
    for line in header.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition(":")
        if not sep:
            raise ValueError(f"expected `key: value`, got `{stripped}`")
        parsed[key.strip()] = value.strip()
    return parsed


def parse_header(header: str) -> tuple[Vars, list[str]]:
    """Parse front matter into variables.

    Structured YAML is tried first; text that is not valid YAML is read as
    plain ``key: value`` lines. Keys that are not lowercase identifiers are
    left out of the result and returned separately.

    Args:
        header: Text above the header delimiter.

    Returns:
        Tuple of (parsed Vars, list of rejected key names).

    Raises:
        ValueError: The header is neither a YAML mapping nor key/value lines.
    """
    try:
        loaded = yaml.safe_load(header)
    except yaml.YAMLError:
        loaded = _parse_lines(header)
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ValueError(
            f"front matter must be a mapping, got {type(loaded).__name__}"
        )

    parsed = Vars()
    rejected: list[str] = []
    for key, value in loaded.items():
        name = str(key)
        if KEY_RE.match(name):
            parsed[name] = value
        else:
            rejected.append(name)
    return parsed, rejected
