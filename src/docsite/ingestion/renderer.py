"""Markdown rendering to plain text plus heading extraction.

Rendering is delegated to Python-Markdown; the resulting HTML is walked with
the standard library HTML parser to collect searchable text and headings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Dict, List, Protocol, Tuple

import markdown
import yaml

from docsite.utils.text import collapse_spaces, normalize_whitespace

LOGGER = logging.getLogger(__name__)

FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

_HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
_BLOCK_TAGS = {"p", "li", "pre", "blockquote", "tr", "br", "div", "table", *_HEADING_TAGS}


class MetadataError(ValueError):
    """Raised when a front matter block exists but cannot be parsed."""


@dataclass(slots=True)
class RenderedDocument:
    """Renderer output: plain text and (level, text) heading pairs."""

    text: str
    headings: List[Tuple[int, str]] = field(default_factory=list)


class Renderer(Protocol):
    def render(self, body: str) -> RenderedDocument:
        ...


def split_front_matter(raw: str) -> Tuple[Dict[str, Any], str]:
    """Split a leading ``---`` YAML block from the document body."""
    match = FRONT_MATTER_RE.match(raw)
    if not match:
        return {}, raw
    body = raw[match.end() :]
    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise MetadataError(f"Invalid front matter: {exc}") from exc
    if not isinstance(metadata, dict):
        raise MetadataError("Front matter must be a mapping")
    return metadata, body


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.lines: List[str] = []
        self.headings: List[Tuple[int, str]] = []
        self._buffer: List[str] = []
        self._heading_level: int | None = None
        self._heading_parts: List[str] = []

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag in _BLOCK_TAGS:
            self._flush()
        if tag in _HEADING_TAGS:
            self._heading_level = _HEADING_TAGS[tag]
            self._heading_parts = []

    def handle_endtag(self, tag: str) -> None:
        if tag in _HEADING_TAGS and self._heading_level is not None:
            text = collapse_spaces("".join(self._heading_parts))
            if text:
                self.headings.append((self._heading_level, text))
            self._heading_level = None
        if tag in _BLOCK_TAGS:
            self._flush()

    def handle_data(self, data: str) -> None:
        self._buffer.append(data)
        if self._heading_level is not None:
            self._heading_parts.append(data)

    def _flush(self) -> None:
        if self._buffer:
            self.lines.append(collapse_spaces("".join(self._buffer)))
            self._buffer = []

    def close(self) -> None:
        super().close()
        self._flush()


class MarkdownRenderer:
    """Default renderer backed by Python-Markdown."""

    def __init__(self, extensions: List[str] | None = None) -> None:
        self.extensions = extensions or ["fenced_code", "tables"]

    def render(self, body: str) -> RenderedDocument:
        html = markdown.markdown(body, extensions=self.extensions)
        collector = _TextCollector()
        collector.feed(html)
        collector.close()
        return RenderedDocument(
            text=normalize_whitespace(collector.lines),
            headings=collector.headings,
        )
