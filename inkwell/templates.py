"""Template engine adapter for Inkwell.

This module wraps Jinja2. It compiles document and layout bodies with
per-scope delimiters and installs the function table templates call into.

Template functions are declared with ``pass_context`` and read the variables
of the document being rendered from the active render context at call time,
so a compiled template never carries stale variables between renders.
Cross-document lookups go through a read-only registry installed once per
render pass with begin_pass().

Key items:
- TemplateEngine: Compiles and executes templates; owns the function table.
- run_command: Run an external command with document vars exported.
"""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

import jinja2
import yaml
from jinja2 import Environment, Template, pass_context
from jinja2.runtime import Context

from .config import ENV_PREFIX
from .documents import Document
from .errors import (
    BuildError,
    DocumentNotFoundError,
    ExternalCommandError,
    TemplateExecError,
    TemplateSyntaxError,
)
from .pipeline import markdown_to_html, post_process
from .utils import is_layoutable_ext
from .vars import Delims, Vars, stringify


def _format_error_message(exc: Exception) -> str:
    """Format an exception raised during template execution."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if isinstance(exc, jinja2.UndefinedError):
        return f"Undefined: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


def run_command(
    doc_vars: Mapping[str, Any], cmd: Any, *args: Any, prefix: str = ENV_PREFIX
) -> str:
    """Run a command and return its merged output.

    Each document variable is exported as ``<prefix><KEY>``. Front matter keys
    are written first and upper-case built-in keys last, so built-ins win
    when both map to the same name.

    Failures never raise: a spawn error or non-zero exit becomes a
    ``CMD ERROR`` line ahead of whatever stderr/stdout was produced.
    """
    env = dict(os.environ)
    for key in sorted(doc_vars, key=lambda k: k != k.lower()):
        env[prefix + key.upper()] = stringify(doc_vars[key])

    argv = [stringify(cmd), *(stringify(arg) for arg in args)]
    command = " ".join(argv)
    parts: list[str] = []
    try:
        proc = subprocess.run(
            argv, env=env, capture_output=True, text=True, errors="replace"
        )
    except (OSError, ValueError) as exc:
        return str(ExternalCommandError(command, str(exc)))

    if proc.returncode != 0:
        parts.append(str(ExternalCommandError(command, f"exit status {proc.returncode}")))
    if proc.stderr:
        parts.append(proc.stderr)
    if proc.stdout:
        parts.append(proc.stdout)
    return "\n".join(parts)


def _plain(value: Any) -> Any:
    """Convert Vars and other mappings to plain containers for serializers."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def sort_docs(docs: Iterable[Mapping[str, Any]], asc: bool, *keys: str) -> list:
    """Sort vars mappings by the first of keys each one carries."""
    docs = list(docs)
    if not keys:
        return docs

    def sort_key(entry: Mapping[str, Any]) -> str:
        for key in keys:
            if entry.get(key) is not None:
                return stringify(entry[key])
        return ""

    return sorted(docs, key=sort_key, reverse=not asc)


def group_docs(
    docs: Iterable[Mapping[str, Any]], key: str, sep: str = ","
) -> dict[str, list]:
    """Group vars mappings by a field that lists one or more group names.

    A string field is split on sep; a list field is used as is.
    """
    groups: dict[str, list] = {}
    for entry in docs:
        value = entry.get(key)
        if not value:
            continue
        names = value if isinstance(value, (list, tuple)) else str(value).split(sep)
        for name in names:
            name = stringify(name).strip()
            if name:
                groups.setdefault(name, []).append(entry)
    return dict(sorted(groups.items()))


def nav_sort_key(entry: Mapping[str, Any]) -> tuple[str, str]:
    return stringify(entry.get("title")), stringify(entry.get("URI_PATH"))


class TemplateEngine:
    """Template engine built on Jinja2.

    Attributes:
        documents: Read-only registry of the current pass, by tree-relative name.
        nav_docs: Vars of every layoutable document, in listing order.
    """

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self._environments: dict[Delims, Environment] = {}
        self.documents: Mapping[str, Document] = MappingProxyType({})
        self.nav_docs: tuple[Vars, ...] = ()
        self.functions: dict[str, Any] = {
            "doCmd": self._do_cmd,
            "renderNamed": self._render_named,
            "md2html": markdown_to_html,
            "docsAll": self._docs_all,
            "docsSort": sort_docs,
            "docsGroup": group_docs,
            "toSlice": lambda *vals: list(vals),
            "toMap": self._to_map,
            "parseTime": self._parse_time,
            "parseYAML": yaml.safe_load,
            "toYAML": lambda value: yaml.safe_dump(
                _plain(value), sort_keys=False, allow_unicode=True
            ),
            "parseJSON": json.loads,
            "toJSON": lambda value: json.dumps(_plain(value), default=str),
        }

    def environment(self, delims: Delims) -> Environment:
        """Return the Jinja environment for a delimiter pair, creating it once."""
        env = self._environments.get(delims)
        if env is None:
            options: dict[str, str] = {}
            if not delims.is_default:
                options = {
                    "variable_start_string": delims.left,
                    "variable_end_string": delims.right,
                    "block_start_string": delims.left + "%",
                    "block_end_string": "%" + delims.right,
                    "comment_start_string": delims.left + "#",
                    "comment_end_string": "#" + delims.right,
                }
            env = Environment(autoescape=False, keep_trailing_newline=True, **options)
            env.globals.update(self.functions)
            self._environments[delims] = env
        return env

    def compile(
        self, body: str, delims: Delims, name: str, source_path: Path
    ) -> Template:
        """Compile a body into a template.

        Raises:
            TemplateSyntaxError: The body cannot be parsed.
        """
        env = self.environment(delims)
        try:
            code = env.compile(body, name=name, filename=str(source_path))
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateSyntaxError(
                source_path, f"Template syntax error on line {exc.lineno}: {exc.message}", exc
            ) from exc
        return env.template_class.from_code(env, code, env.make_globals(None), None)

    def execute(self, template: Template, data: Any, source_path: Path) -> str:
        """Render a compiled template against data.

        Raises:
            TemplateExecError: The template failed at runtime.
        """
        if not isinstance(data, Mapping):
            data = {"data": data}
        try:
            return template.render(data)
        except BuildError:
            raise
        except Exception as exc:
            raise TemplateExecError(source_path, _format_error_message(exc), exc) from exc

    def render_document(self, doc: Document, data: Any = None) -> str:
        """Execute a document's template and post-process it by extension."""
        if data is None:
            data = doc.effective_vars if doc.effective_vars is not None else doc.vars
        rendered = self.execute(doc.template, data, doc.source_path)
        return post_process(doc.ext, rendered, doc.source_path)

    def begin_pass(self, documents: Mapping[str, Document]) -> None:
        """Install the document registry for one render pass."""
        self.documents = MappingProxyType(dict(documents))
        listed = [
            doc.effective_vars if doc.effective_vars is not None else doc.vars
            for doc in documents.values()
            if is_layoutable_ext(doc.ext)
        ]
        self.nav_docs = tuple(sorted(listed, key=nav_sort_key))

    def _context_vars(self, context: Context) -> dict[str, Any]:
        env_globals = context.environment.globals
        return {
            key: value
            for key, value in context.get_all().items()
            if env_globals.get(key) is not value
        }

    @pass_context
    def _do_cmd(self, context: Context, cmd: str, *args: Any) -> str:
        return run_command(self._context_vars(context), cmd, *args, prefix=self.env_prefix)

    @pass_context
    def _render_named(self, context: Context, name: str, data: Any = None) -> str:
        doc = self.documents.get(name)
        if doc is None:
            caller_key = stringify(context.get("DOC_KEY")) or context.name or ""
            caller = self.documents.get(caller_key)
            where = caller.source_path if caller else Path(caller_key or name)
            raise DocumentNotFoundError(where, f"renderNamed: document `{name}` not found")
        return self.render_document(doc, data)

    def _docs_all(self) -> list[Vars]:
        return [Vars(entry) for entry in self.nav_docs]

    @staticmethod
    def _to_map(*vals: Any) -> dict:
        return {vals[ix - 1]: vals[ix] for ix in range(1, len(vals), 2)}

    @staticmethod
    def _parse_time(value: str, fmt: str | None = None) -> datetime:
        if fmt is None:
            return datetime.fromisoformat(value)
        return datetime.strptime(value, fmt)
