"""Layout resolution for Inkwell.

Layouts live in the configuration directory and are keyed by their path
relative to it. A layout is compiled once per build pass and shared by every
document that selects it.

Documents are coupled to layouts by name: the layout is executed against the
document's effective vars, which carry ``DOC_KEY``, and places the document
with ``{{ renderNamed(DOC_KEY) }}``. Because the coupling is by name, a layout
can just as well render several documents, e.g. an index page.

Key class:
- LayoutResolver: Chooses, loads and caches layouts; merges variable scopes.
"""

from __future__ import annotations

import re
from pathlib import Path

from .config import DEFAULT_LAYOUT
from .documents import Document, load_document
from .errors import BuildError, LayoutNotFoundError
from .templates import TemplateEngine
from .utils import is_layoutable_ext, is_within, progress
from .vars import Vars, merge_vars

PPRINT_EXCLUDE_RE = re.compile(r"DIR$|WATCHMODE")


class LayoutResolver:
    """Resolves and caches the layouts of one site.

    Attributes:
        conf_dir: Configuration directory holding the layouts.
        engine: Template engine layouts are compiled with.
        pattern: Header delimiter regex.
        layouts: Compiled layouts of the current pass, by key.
        failed: Layouts that could not be loaded this pass, by key.
    """

    def __init__(
        self,
        conf_dir: Path,
        engine: TemplateEngine,
        pattern: re.Pattern | None,
        show_vars: bool = False,
        color: bool | None = None,
    ):
        self.conf_dir = conf_dir
        self.engine = engine
        self.pattern = pattern
        self.show_vars = show_vars
        self.color = color
        self.layouts: dict[str, Document] = {}
        self.failed: dict[str, BuildError] = {}

    def reset(self) -> None:
        self.layouts = {}
        self.failed = {}

    def layout_key(self, doc_vars: Vars, ext: str) -> str:
        """Choose the layout a document renders into; "" means none.

        An explicit ``layout`` key wins, and an empty value disables layouts.
        Without the key, the default layout is used if it exists.
        """
        if not is_layoutable_ext(ext):
            return ""
        if "layout" in doc_vars:
            return doc_vars.get_str("layout").strip()
        if (self.conf_dir / DEFAULT_LAYOUT).is_file():
            return DEFAULT_LAYOUT
        return ""

    def add(self, path: Path) -> Document:
        """Load and compile the layout at path, caching it under its key.

        Raises:
            BuildError: The layout cannot be read, parsed or compiled.
        """
        key = path.relative_to(self.conf_dir).as_posix()
        progress(f"{key} (LAYOUT)", self.color)
        try:
            layout = load_document(path, self.pattern)
            layout.name = key
            layout.template = self.engine.compile(
                layout.raw_body, layout.vars.delims(), key, path
            )
        except BuildError as exc:
            self.failed[key] = exc
            raise
        if self.show_vars:
            layout.vars.pretty_print(
                nonconforming=layout.nonconforming_keys,
                exclude=PPRINT_EXCLUDE_RE,
                color=self.color,
            )
        layout.vars.clear_delims()
        self.layouts[key] = layout
        self.failed.pop(key, None)
        return layout

    def get(self, key: str, doc: Document) -> Document:
        """Return the compiled layout for key, loading it on first use.

        Raises:
            LayoutNotFoundError: No layout file exists for key inside the
                configuration directory.
            BuildError: The layout exists but failed to load.
        """
        if key in self.layouts:
            return self.layouts[key]
        if key in self.failed:
            exc = self.failed[key]
            raise BuildError(
                doc.source_path, f"layout `{key}` failed to load: {exc.message}", exc
            )
        path = (self.conf_dir / key).resolve()
        if not is_within(path, self.conf_dir) or not path.is_file():
            raise LayoutNotFoundError(
                doc.source_path, f"layout `{key}` not found in {self.conf_dir}"
            )
        return self.add(path)

    def resolve(
        self, doc: Document, global_vars: Vars
    ) -> tuple[Document | None, Vars]:
        """Find a document's layout and compute its effective vars.

        The effective vars are ``global < layout < document``; without a
        layout the layout layer is simply absent. Delimiter overrides are
        removed, and ``DOC_KEY`` is set to the document's name.
        """
        layout = self.get(doc.layout_key, doc) if doc.layout_key else None
        layers = [global_vars, layout.vars if layout else None, doc.vars]
        effective = merge_vars(*layers).without_delims()
        effective["DOC_KEY"] = doc.name
        return layout, effective


def render_in_layout(
    engine: TemplateEngine, layout: Document | None, doc: Document
) -> str:
    """Render a document, wrapped in its layout when it has one.

    Layout output is used as is; only documents are post-processed.
    """
    if layout is None:
        return engine.render_document(doc)
    return engine.execute(layout.template, doc.effective_vars, layout.source_path)

