"""Utility functions for Inkwell.

These include extension classification, destination path mapping,
directory discovery, dirty-checked file copies and console progress output.

Key functions:
    titleize: Convert filenames to human-readable titles.
    is_template_ext: Check if an extension is template-processed.
    is_layoutable_ext: Check if an extension may be wrapped in a layout.
    dest_rel_path: Map a source path to its destination path.
    find_config_dir: Locate the configuration directory in ancestors.
    ensure_dir: Create a directory if it is missing.
    copy_on_dirty: Copy a file unless the destination already matches.
"""

from __future__ import annotations

import os
import re
import shutil
from pathlib import Path, PurePath

import click

from .errors import ConfigDirNotFoundError

TEMPLATE_EXTS = frozenset(
    {".htm", ".html", ".xml", ".css", ".md", ".mkd", ".scss", ".sass"}
)
LAYOUTABLE_EXTS = frozenset({".htm", ".html", ".xml", ".md"})
MARKDOWN_EXTS = frozenset({".md", ".mkd"})
CSS_PREPROCESSOR_EXTS = frozenset({".scss", ".sass"})

HIDDEN_PREFIX = "."


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Replaces hyphens and underscores with spaces and capitalizes each word.

    Examples:
        >>> titleize("getting-started.md")
        'Getting Started'
    """
    base = PurePath(filename).stem
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def ext_of(path: PurePath | str) -> str:
    return PurePath(path).suffix.lower()


def is_template_ext(ext: str) -> bool:
    return ext.lower() in TEMPLATE_EXTS


def is_layoutable_ext(ext: str) -> bool:
    return ext.lower() in LAYOUTABLE_EXTS


def is_markdown_ext(ext: str) -> bool:
    return ext.lower() in MARKDOWN_EXTS


def is_css_preprocessor_ext(ext: str) -> bool:
    return ext.lower() in CSS_PREPROCESSOR_EXTS


def is_hidden(path: PurePath) -> bool:
    return path.name.startswith(HIDDEN_PREFIX)


def is_within(path: Path, root: Path) -> bool:
    """Check if path is root or lies underneath it."""
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def dest_rel_path(rel: PurePath) -> PurePath:
    """Map a source path to its destination, remapping extensions.

    ``.md`` becomes ``.html``, CSS-preprocessor sources become ``.css``,
    everything else keeps its name.
    """
    ext = ext_of(rel)
    if is_markdown_ext(ext):
        return rel.with_suffix(".html")
    if is_css_preprocessor_ext(ext):
        return rel.with_suffix(".css")
    return rel


def find_config_dir(start: Path, needle: str) -> Path:
    """Search start and its ancestors for a directory named needle.

    Args:
        start: File or directory to begin the search from.
        needle: Directory name to look for.

    Returns:
        Absolute path of the found directory.

    Raises:
        ConfigDirNotFoundError: No ancestor holds such a directory.
    """
    current = start.resolve()
    if not current.is_dir():
        current = current.parent
    if current.name == needle:
        return current
    for folder in (current, *current.parents):
        candidate = folder / needle
        if candidate.is_dir():
            return candidate
    raise ConfigDirNotFoundError(needle, start)


def ensure_dir(path: Path) -> None:
    """Create a directory and its parents; existing directories are fine."""
    path.mkdir(parents=True, exist_ok=True)


def copy_on_dirty(src: Path, dest: Path) -> bool:
    """Copy src to dest unless dest already matches by size and mtime.

    Returns:
        True if the file was copied.
    """
    src_stat = src.stat()
    try:
        dest_stat = dest.stat()
    except FileNotFoundError:
        dest_stat = None
    if (
        dest_stat is not None
        and dest_stat.st_size == src_stat.st_size
        and dest_stat.st_mtime_ns == src_stat.st_mtime_ns
    ):
        return False
    ensure_dir(dest.parent)
    shutil.copyfile(src, dest)
    os.utime(dest, ns=(src_stat.st_atime_ns, src_stat.st_mtime_ns))
    return True


def progress(message: str, color: bool | None = None) -> None:
    """Print a progress line such as ``> index.md (SOURCE)``."""
    marker = click.style(">", fg="bright_cyan", bold=True)
    click.echo(f"{marker} {message}", color=color)
