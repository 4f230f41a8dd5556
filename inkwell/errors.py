"""Error types and error reporting for Inkwell.

Every per-document failure is a BuildError carrying the offending source
path, so the build can report it and carry on with the rest of the tree.
Only ConfigDirNotFoundError and directory traversal failures abort a run.

Key classes:
- BuildError: Base error with file context.
- HeaderParseError, TemplateSyntaxError, TemplateExecError, PostProcessError,
  LayoutNotFoundError, DocumentNotFoundError, SourceIOError: per-document faults.
- ConfigDirNotFoundError: The site configuration directory could not be located.
- ExternalCommandError: A template-invoked command failed (rendered inline).
"""

from __future__ import annotations

from pathlib import Path

import click


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path | str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = Path(source_path)
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class SourceIOError(BuildError):
    """A source or destination file could not be read or written."""


class HeaderParseError(BuildError):
    """Front matter could not be parsed into variables."""


class TemplateSyntaxError(BuildError):
    """A document or layout body is not a valid template."""


class TemplateExecError(BuildError):
    """A template failed while executing."""


class PostProcessError(BuildError):
    """Markdown or CSS-preprocessor conversion failed."""


class LayoutNotFoundError(BuildError):
    """A document explicitly selected a layout that does not exist."""


class DocumentNotFoundError(BuildError):
    """renderNamed() was asked for a document name that is not registered."""


class ExternalCommandError(Exception):
    """A command invoked from a template exited non-zero or failed to start."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"CMD ERROR on `{command}`: {reason}")


class ConfigDirNotFoundError(Exception):
    """No configuration directory exists in the start path or its ancestors."""

    def __init__(self, needle: str, start: Path):
        self.needle = needle
        self.start = start
        super().__init__(f"search for `{needle}` in `{start}` ancestors: not found")


def _shorten_home(path: str) -> str:
    home = str(Path.home())
    if home != "/" and path.startswith(home):
        return "~" + path[len(home) :]
    return path


def report_error(exc: BaseException | None, color: bool | None = None) -> None:
    """Print an error to stderr, prefixed with the offending path when known.

    Args:
        exc: The error to report; None is a no-op.
        color: Force colored output on/off; None lets click decide from the tty.
    """
    if exc is None:
        return
    label = click.style("ERROR", fg="bright_red", bold=True)
    if isinstance(exc, BuildError):
        where = _shorten_home(str(exc.source_path))
        line = f"{label}: [{where}] {exc.message}"
    else:
        line = f"{label}: {exc}"
    click.echo(line, err=True, color=color)


def report_warning(source_path: Path | str, message: str, color: bool | None = None) -> None:
    """Print a non-fatal problem with a source file to stderr."""
    label = click.style("WARNING", fg="bright_yellow", bold=True)
    where = _shorten_home(str(source_path))
    click.echo(f"{label}: [{where}] {message}", err=True, color=color)
