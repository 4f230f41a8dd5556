"""Document loading for Inkwell.

A source file is split at the first header delimiter line: the text above
is front matter, the text below is the template body. Files without a
delimiter are all body.

Key items:
- Document: A loaded source file plus its vars and compiled template.
- header_pattern: Build the delimiter regex for a delimiter token.
- load_document: Read and split a source file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import HeaderParseError, SourceIOError
from .utils import ext_of
from .vars import Vars, is_truthy, parse_header


@dataclass
class Document:
    """A source file slated for template rendering.

    Attributes:
        source_path: Absolute path of the source file.
        raw_body: Text following the header delimiter.
        vars: Front matter vars plus auto-injected keys.
        mtime: Source modification time.
        nonconforming_keys: Front matter keys rejected by the key check.
        name: Tree-relative posix name, used for renderNamed() lookups.
        dest_path: Absolute destination path.
        template: Compiled, not yet rendered, template of the body.
        layout_key: Layout this document renders into; "" renders directly.
        effective_vars: Merged global, layout and document vars of the last pass.
    """

    source_path: Path
    raw_body: str
    vars: Vars
    mtime: datetime
    nonconforming_keys: list[str] = field(default_factory=list)
    name: str = ""
    dest_path: Path | None = None
    template: Any = None
    layout_key: str = ""
    effective_vars: Vars | None = None

    @property
    def ext(self) -> str:
        return ext_of(self.source_path)

    @property
    def skipped(self) -> bool:
        return is_truthy(self.vars.get("skip"))


def header_pattern(delim: str | None) -> re.Pattern | None:
    """Compile the header delimiter regex; None or "" disables headers.

    The delimiter must sit on its own line, with LF or CRLF endings.
    """
    if not delim:
        return None
    return re.compile(r"(?:^|\r?\n)" + re.escape(delim) + r"(?:$|\r?\n)")


def split_header(text: str, pattern: re.Pattern | None) -> tuple[str | None, str]:
    """Split text into (header, body); header is None if no delimiter is found."""
    if pattern is None:
        return None, text
    match = pattern.search(text)
    if match is None:
        return None, text
    if match.start() == 0:
        # leading delimiter: header runs to the next delimiter line
        closing = pattern.search(text, match.end() - 1)
        if closing is not None and closing.start() >= match.end() - 1:
            return text[match.end() : closing.start()], text[closing.end() :]
    return text[: match.start()], text[match.end() :]


def load_document(path: Path, pattern: re.Pattern | None) -> Document:
    """Read a source file and parse its front matter.

    Args:
        path: Source file path.
        pattern: Header delimiter regex from header_pattern().

    Returns:
        Document with vars, body and mtime filled in.

    Raises:
        SourceIOError: The file cannot be read.
        HeaderParseError: The front matter is malformed.
    """
    try:
        stat = path.stat()
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceIOError(path, f"cannot read source: {exc}", exc) from exc

    header, body = split_header(text, pattern)
    doc_vars, rejected = Vars(), []
    if header is not None:
        try:
            doc_vars, rejected = parse_header(header)
        except ValueError as exc:
            raise HeaderParseError(path, f"malformed front matter: {exc}", exc) from exc
    return Document(
        source_path=path,
        raw_body=body,
        vars=doc_vars,
        mtime=datetime.fromtimestamp(stat.st_mtime).astimezone(),
        nonconforming_keys=rejected,
    )
