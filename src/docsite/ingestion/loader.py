"""Content loading: scan a document tree into immutable Document records."""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from docsite.errors import (
    DUPLICATE_PATH,
    ERROR,
    INVALID_METADATA,
    IO,
    READ_TIMEOUT,
    STRUCTURAL,
    UNREADABLE_FILE,
    WARNING,
)
from docsite.ingestion.renderer import MarkdownRenderer, MetadataError, Renderer, split_front_matter
from docsite.models import Diagnostic, Document, DocumentSet, Heading
from docsite.utils.files import MARKDOWN_SUFFIXES, hash_text, iter_markdown_paths
from docsite.utils.text import humanize_stem, unique_slug

LOGGER = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 10.0


def canonical_path(root: Path, path: Path, suffixes: Iterable[str] = MARKDOWN_SUFFIXES) -> str:
    """Path relative to ``root``, forward-slash separated, Markdown extension stripped."""
    relative = Path(path).relative_to(root)
    if relative.suffix.lower() in tuple(suffixes):
        relative = relative.with_suffix("")
    return relative.as_posix()


def build_headings(pairs: Sequence[Tuple[int, str]]) -> Tuple[Heading, ...]:
    seen: dict[str, int] = {}
    return tuple(Heading(text=text, level=level, slug=unique_slug(text, seen)) for level, text in pairs)


def _parse_tags(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(tag.strip() for tag in value.split(",") if tag.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(tag).strip() for tag in value if str(tag).strip())
    return (str(value),)


def _choose_title(metadata: Dict[str, Any], headings: Sequence[Heading], stem: str) -> str:
    title = metadata.get("title")
    if title:
        return str(title).strip()
    for heading in headings:
        if heading.level == 1:
            return heading.text
    return humanize_stem(stem)


def _io_warning(kind: str, path: str, message: str) -> Diagnostic:
    return Diagnostic(kind=kind, category=IO, severity=WARNING, path=path, message=message)


def load_document(
    root: Path,
    path: Path,
    renderer: Renderer,
    *,
    suffixes: Iterable[str] = MARKDOWN_SUFFIXES,
) -> Tuple[Document | None, List[Diagnostic]]:
    """Read and parse one file. Unreadable files yield ``None`` and a warning."""
    canonical = canonical_path(root, path, suffixes)
    diagnostics: List[Diagnostic] = []
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Skipping unreadable file %s: %s", path, exc)
        return None, [_io_warning(UNREADABLE_FILE, canonical, f"Cannot read {path}: {exc}")]

    try:
        metadata, body = split_front_matter(raw)
    except MetadataError as exc:
        LOGGER.warning("Ignoring metadata of %s: %s", path, exc)
        diagnostics.append(_io_warning(INVALID_METADATA, canonical, str(exc)))
        metadata, body = {}, raw

    rendered = renderer.render(body)
    headings = build_headings(rendered.headings)
    document = Document(
        canonical_path=canonical,
        source_path=Path(path),
        raw=raw,
        body=body,
        text=rendered.text,
        title=_choose_title(metadata, headings, Path(path).stem),
        tags=_parse_tags(metadata.get("tags")),
        metadata=metadata,
        headings=headings,
        sha256=hash_text(raw),
    )
    LOGGER.debug("Loaded %s (%d headings)", canonical, len(headings))
    return document, diagnostics


def find_duplicates(documents: Iterable[Document]) -> Tuple[List[Document], List[Diagnostic]]:
    """Keep one document per case-insensitive canonical path; report the collisions."""
    groups: Dict[str, List[Document]] = defaultdict(list)
    for document in documents:
        groups[document.canonical_path.casefold()].append(document)

    unique: List[Document] = []
    diagnostics: List[Diagnostic] = []
    for _, group in sorted(groups.items()):
        group.sort(key=lambda doc: doc.source_path.as_posix())
        unique.append(group[0])
        if len(group) > 1:
            files = ", ".join(doc.canonical_path + doc.source_path.suffix for doc in group)
            diagnostics.append(
                Diagnostic(
                    kind=DUPLICATE_PATH,
                    category=STRUCTURAL,
                    severity=ERROR,
                    path=group[0].canonical_path,
                    message=f"Files map to the same canonical path {group[0].canonical_path!r}: {files}",
                )
            )
    return unique, diagnostics


def scan(
    root: Path,
    *,
    renderer: Renderer | None = None,
    suffixes: Iterable[str] = MARKDOWN_SUFFIXES,
    workers: int | None = None,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
) -> Tuple[DocumentSet, List[Diagnostic]]:
    """Load every Markdown document under ``root``.

    Files are parsed in a thread pool. Unreadable or slow files are skipped with
    an IO warning; case-insensitive canonical path collisions produce a fatal
    ``duplicate-path`` diagnostic.
    """
    root = Path(root)
    renderer = renderer or MarkdownRenderer()
    suffixes = tuple(suffixes)
    paths = list(iter_markdown_paths(root, suffixes=suffixes))
    LOGGER.info("Scanning %d files under %s", len(paths), root)

    documents: List[Document] = []
    diagnostics: List[Diagnostic] = []
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docsite-load")
    try:
        futures = [
            (path, executor.submit(load_document, root, path, renderer, suffixes=suffixes))
            for path in paths
        ]
        for path, future in futures:
            try:
                document, found = future.result(timeout=read_timeout)
            except FutureTimeoutError:
                future.cancel()
                LOGGER.warning("Timed out reading %s", path)
                diagnostics.append(
                    _io_warning(
                        READ_TIMEOUT,
                        canonical_path(root, path, suffixes),
                        f"Reading {path} exceeded {read_timeout}s",
                    )
                )
                continue
            diagnostics.extend(found)
            if document is not None:
                documents.append(document)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    unique, duplicates = find_duplicates(documents)
    diagnostics.extend(duplicates)
    LOGGER.info("Loaded %d documents (%d diagnostics)", len(unique), len(diagnostics))
    return DocumentSet(unique), diagnostics
