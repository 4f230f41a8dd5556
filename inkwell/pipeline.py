"""Content post-processing for Inkwell.

After template expansion, Markdown sources are converted to HTML and
CSS-preprocessor sources are compiled to CSS. Every other template
extension is final as rendered.

Key items:
- markdown_to_html: Markdown converter with heading ids and typography.
- css_preprocess: SCSS / indented Sass compiler.
- post_process: Dispatch on the source extension.
"""

from __future__ import annotations

import re
from pathlib import Path

import mistune
import sass

from .errors import PostProcessError
from .utils import is_css_preprocessor_ext, is_markdown_ext

TAG_RE = re.compile(r"<[^>]+>")

_TYPOGRAPHY = (
    ("---", "—"),
    ("--", "–"),
    ("...", "…"),
    ("<<", "«"),
    (">>", "»"),
)


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = TAG_RE.sub("", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def _smarten(text: str) -> str:
    for plain, fancy in _TYPOGRAPHY:
        text = text.replace(plain, fancy)
    return text


class _SiteRenderer(mistune.HTMLRenderer):
    """HTML renderer that passes raw HTML through, ids headings and highlights code."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def text(self, text: str) -> str:
        return super().text(_smarten(text))

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text) or "heading"
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        if info:
            try:
                from pygments import highlight
                from pygments.formatters import HtmlFormatter
                from pygments.lexers import get_lexer_by_name

                lexer = get_lexer_by_name(info.split()[0], stripall=True)
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
            except Exception:
                pass
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


def markdown_to_html(text: str) -> str:
    """Convert Markdown to HTML (tables, strikethrough, footnotes, autolinks)."""
    markdown = mistune.create_markdown(
        renderer=_SiteRenderer(),
        plugins=["strikethrough", "footnotes", "table", "url", "task_lists"],
    )
    return markdown(text)


def css_preprocess(text: str, indented: bool = False) -> str:
    """Compile SCSS (or indented Sass syntax) to plain CSS."""
    return sass.compile(string=text, indented=indented)


def post_process(ext: str, rendered: str, source_path: Path | str = "") -> str:
    """Apply extension-specific conversion to rendered template output.

    Args:
        ext: Source file extension, e.g. ".md".
        rendered: Output of template execution.
        source_path: Source file, for error context.

    Returns:
        The final text for the destination file.

    Raises:
        PostProcessError: The Markdown or CSS conversion failed.
    """
    ext = ext.lower()
    try:
        if is_markdown_ext(ext):
            return markdown_to_html(rendered)
        if is_css_preprocessor_ext(ext):
            return css_preprocess(rendered, indented=(ext == ".sass"))
    except Exception as exc:
        raise PostProcessError(source_path, f"{ext} conversion failed: {exc}", exc) from exc
    return rendered
