"""Site building functionality for Inkwell.

This module walks a site tree and turns it into the publish directory.
Every entry is classified by location and extension: directories are
mirrored, assets are copied, layouts and documents are compiled. Once
everything is compiled, the render pass groups documents by layout and
writes them out.

A failing document never stops the build: its error is handed to the
error callback and the remaining documents are still rendered.

Key items:
- EntryKind: Classification of a tree entry.
- Builder: Holds the site locations and the compiled state of the last pass.
- build_site: Locate a site from a path and build it once.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import CONF_DIR_NAME, DEFAULT_DELIM, ENV_PREFIX, PUB_DIR_NAME
from .documents import Document, header_pattern, load_document
from .errors import BuildError, SourceIOError, report_error, report_warning
from .layouts import PPRINT_EXCLUDE_RE, LayoutResolver, render_in_layout
from .templates import TemplateEngine
from .utils import (
    copy_on_dirty,
    dest_rel_path,
    ensure_dir,
    ext_of,
    find_config_dir,
    is_hidden,
    is_layoutable_ext,
    is_template_ext,
    is_within,
    progress,
    titleize,
)
from .vars import Vars, env_globals, merge_vars

ErrorCallback = Callable[[BuildError], None]


class EntryKind(Enum):
    SKIP = "skip"
    MKDIR = "mkdir"
    LAYOUT_SOURCE = "layout"
    DOCUMENT = "document"
    ASSET = "asset"


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        documents: Every document of the pass, sorted by name.
        output_dir: Directory where the site was built.
        errors: Per-document errors that were reported.
    """

    documents: list[Document]
    output_dir: Path
    errors: list[BuildError] = field(default_factory=list)


class Builder:
    """Builds a site tree into its publish directory.

    Attributes:
        conf_dir: Configuration directory (layouts, config.yaml).
        site_root: Parent of the configuration directory.
        pub_dir: Publish directory receiving the output.
        documents: Compiled documents of the last pass, by tree-relative name.
        lock: Held while the publish directory is being written.
    """

    def __init__(
        self,
        conf_dir: Path,
        pub_dir: Path | None = None,
        header_delim: str | None = DEFAULT_DELIM,
        show_vars: bool = False,
        watch_mode: bool = False,
        color: bool | None = None,
        env_prefix: str = ENV_PREFIX,
    ):
        self.conf_dir = conf_dir.resolve()
        self.site_root = self.conf_dir.parent
        self.pub_dir = (pub_dir or self.site_root / PUB_DIR_NAME).resolve()
        self.show_vars = show_vars
        self.watch_mode = watch_mode
        self.color = color
        self.env_prefix = env_prefix
        self.pattern = header_pattern(header_delim)
        self.engine = TemplateEngine(env_prefix)
        self.resolver = LayoutResolver(
            self.conf_dir, self.engine, self.pattern, show_vars, color
        )
        self.documents: dict[str, Document] = {}
        self.lock = threading.RLock()

    @classmethod
    def for_path(cls, start: Path, **kwargs) -> Builder:
        """Create a builder for the site containing start.

        Raises:
            ConfigDirNotFoundError: start is not inside a site.
        """
        return cls(find_config_dir(start, CONF_DIR_NAME), **kwargs)

    def classify(self, path: Path, is_dir: bool) -> EntryKind:
        """Classify a tree entry purely by its location and extension."""
        if is_within(path, self.conf_dir):
            rel = path.relative_to(self.conf_dir)
            if is_dir or any(part.startswith(".") for part in rel.parts):
                return EntryKind.SKIP
            if is_layoutable_ext(ext_of(path)):
                return EntryKind.LAYOUT_SOURCE
            return EntryKind.SKIP
        if not is_within(path, self.site_root):
            return EntryKind.SKIP
        rel = path.relative_to(self.site_root)
        if any(part.startswith(".") for part in rel.parts):
            return EntryKind.SKIP
        if is_dir:
            return EntryKind.MKDIR
        if is_template_ext(ext_of(path)):
            return EntryKind.DOCUMENT
        return EntryKind.ASSET

    def build_all(self, on_error: ErrorCallback | None = None) -> BuildResult:
        """Build the whole tree: layouts, then content, then the render pass.

        Raises:
            OSError: A directory of the tree cannot be read.
        """
        errors: list[BuildError] = []
        report = self._collector(errors, on_error)
        with self.lock:
            self.documents = {}
            self.resolver.reset()
            for path in self._walk_layouts():
                self._build_entry(path, EntryKind.LAYOUT_SOURCE, report)
            for path, is_dir in self._walk_content():
                self._build_entry(path, self.classify(path, is_dir), report)
            self.render_pass(report)
        return BuildResult(self._sorted_documents(), self.pub_dir, errors)

    def build_path(
        self, path: Path, on_error: ErrorCallback | None = None
    ) -> BuildResult:
        """Rebuild after a single entry changed.

        Layout changes rebuild everything. A changed document is reloaded
        and recompiled, then the full render pass runs again so layout
        groups and listings stay consistent.
        """
        path = path.resolve()
        errors: list[BuildError] = []
        report = self._collector(errors, on_error)
        with self.lock:
            kind = self.classify(path, path.is_dir())
            if kind is EntryKind.LAYOUT_SOURCE:
                return self.build_all(on_error)
            if not path.exists():
                if kind is EntryKind.DOCUMENT:
                    self.documents.pop(path.relative_to(self.site_root).as_posix(), None)
            else:
                self._build_entry(path, kind, report)
            if kind is EntryKind.DOCUMENT:
                self.render_pass(report)
        return BuildResult(self._sorted_documents(), self.pub_dir, errors)

    def render_pass(self, on_error: ErrorCallback) -> None:
        """Render every compiled document, grouped by layout."""
        global_vars = env_globals(prefix=self.env_prefix)
        layouts: dict[str, Document | None] = {}
        failed: set[str] = set()

        for doc in self._sorted_documents():
            try:
                layout, effective = self.resolver.resolve(doc, global_vars)
            except BuildError as exc:
                on_error(exc)
                failed.add(doc.name)
                layout, effective = None, merge_vars(global_vars, doc.vars)
                effective.clear_delims()
                effective["DOC_KEY"] = doc.name
            doc.effective_vars = effective
            layouts[doc.name] = layout

        self.engine.begin_pass(self.documents)

        for group in self._group_by_layout().values():
            for doc in group:
                if doc.name in failed or doc.skipped:
                    continue
                try:
                    rendered = render_in_layout(self.engine, layouts[doc.name], doc)
                    self._write(doc.dest_path, rendered)
                except BuildError as exc:
                    on_error(exc)

    def _group_by_layout(self) -> dict[str, list[Document]]:
        groups: dict[str, list[Document]] = {"": []}
        for doc in self._sorted_documents():
            groups.setdefault(doc.layout_key, []).append(doc)
        return groups

    def _build_entry(self, path: Path, kind: EntryKind, on_error: ErrorCallback) -> None:
        try:
            if kind is EntryKind.MKDIR:
                ensure_dir(self.pub_dir / path.relative_to(self.site_root))
            elif kind is EntryKind.LAYOUT_SOURCE:
                self.resolver.add(path)
            elif kind is EntryKind.DOCUMENT:
                self._add_document(path)
            elif kind is EntryKind.ASSET:
                progress(f"{path.relative_to(self.site_root)} (SOURCE)", self.color)
                copy_on_dirty(path, self.pub_dir / path.relative_to(self.site_root))
        except BuildError as exc:
            on_error(exc)
        except OSError as exc:
            on_error(SourceIOError(path, str(exc), exc))

    def _add_document(self, path: Path) -> Document:
        rel = path.relative_to(self.site_root)
        progress(f"{rel} (SOURCE)", self.color)
        name = rel.as_posix()
        # drop a stale entry first so a failed reload does not render old content
        self.documents.pop(name, None)

        doc = load_document(path, self.pattern)
        doc.name = name
        doc.dest_path = self.pub_dir / dest_rel_path(rel)
        doc.vars.update(self._auto_vars(doc))
        doc.vars.setdefault("title", titleize(path.name))

        if self.show_vars:
            merge_vars(env_globals(prefix=self.env_prefix), doc.vars).pretty_print(
                nonconforming=doc.nonconforming_keys,
                exclude=PPRINT_EXCLUDE_RE,
                color=self.color,
            )
        for key in doc.nonconforming_keys:
            report_warning(path, f"ignored non-conforming front matter key `{key}`", self.color)

        doc.template = self.engine.compile(
            doc.raw_body, doc.vars.delims(), name, path
        )
        doc.layout_key = self.resolver.layout_key(doc.vars, doc.ext)
        self.documents[name] = doc
        return doc

    def _auto_vars(self, doc: Document) -> Vars:
        auto = Vars(
            URI_PATH=doc.dest_path.relative_to(self.pub_dir).as_posix(),
            SRC=str(doc.source_path),
            SRCMOD=doc.mtime.isoformat(timespec="seconds"),
            CFGDIR=str(self.conf_dir),
            SRCDIR=str(self.site_root),
            PUBDIR=str(self.pub_dir),
        )
        if self.watch_mode:
            auto["WATCHMODE"] = "enabled"
        return auto

    def _write(self, dest: Path, text: str) -> None:
        try:
            ensure_dir(dest.parent)
            with open(dest, "w", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as exc:
            raise SourceIOError(dest, f"cannot write output: {exc}", exc) from exc

    def _walk_layouts(self) -> list[Path]:
        found = []
        for path in sorted(self.conf_dir.rglob("*")):
            if path.is_file() and self.classify(path, False) is EntryKind.LAYOUT_SOURCE:
                found.append(path)
        return found

    def _walk_content(self):
        """Yield (path, is_dir) top-down, parents before children."""

        def fail(exc: OSError) -> None:
            raise exc

        yield self.site_root, True
        for top, dirnames, filenames in os.walk(self.site_root, onerror=fail):
            top_path = Path(top)
            dirnames[:] = sorted(d for d in dirnames if not is_hidden(top_path / d))
            for name in dirnames:
                yield top_path / name, True
            for name in sorted(filenames):
                yield top_path / name, False

    def _sorted_documents(self) -> list[Document]:
        return [self.documents[name] for name in sorted(self.documents)]

    def _collector(
        self, errors: list[BuildError], on_error: ErrorCallback | None
    ) -> ErrorCallback:
        def collect(exc: BuildError) -> None:
            errors.append(exc)
            if on_error is None:
                report_error(exc, self.color)
            else:
                on_error(exc)

        return collect


def build_site(
    start: Path,
    header_delim: str | None = DEFAULT_DELIM,
    show_vars: bool = False,
    on_error: ErrorCallback | None = None,
) -> BuildResult:
    """Locate the site containing start and build it once.

    Args:
        start: Any path inside the site.
        header_delim: Front matter delimiter token; None disables front matter.
        show_vars: Print each document's vars while building.
        on_error: Called with each per-document error; defaults to printing it.

    Returns:
        BuildResult with the documents, output directory and reported errors.
    """
    builder = Builder.for_path(start, header_delim=header_delim, show_vars=show_vars)
    return builder.build_all(on_error)
