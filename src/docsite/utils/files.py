"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, Tuple

LOGGER = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")

FileStamp = Tuple[float, int]


def is_markdown_file(path: Path, suffixes: Iterable[str] = MARKDOWN_SUFFIXES) -> bool:
    return path.suffix.lower() in tuple(suffixes)


def is_hidden(relative: Path) -> bool:
    """True when any component of a root-relative path starts with a dot."""
    return any(part.startswith(".") for part in Path(relative).parts)


def iter_markdown_paths(
    root: Path, *, suffixes: Iterable[str] = MARKDOWN_SUFFIXES
) -> Iterator[Path]:
    """Yield Markdown paths under ``root`` in sorted order, descending into directories.

    Hidden files and directories are skipped. Each real directory is entered at
    most once, so symlinked directory loops terminate.
    """
    yield from _walk(Path(root), tuple(suffixes), set())


def _walk(directory: Path, suffixes: Tuple[str, ...], visited: set[str]) -> Iterator[Path]:
    real = os.path.realpath(directory)
    if real in visited:
        LOGGER.debug("Skipping already visited directory %s", directory)
        return
    visited.add(real)

    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        LOGGER.warning("Cannot list directory %s: %s", directory, exc)
        return

    for entry in entries:
        if entry.name.startswith("."):
            continue
        if entry.is_dir():
            yield from _walk(entry, suffixes, visited)
        elif entry.is_file() and is_markdown_file(entry, suffixes):
            yield entry


def hash_text(text: str) -> str:
    """Compute SHA256 hash for document content."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def snapshot_tree(
    root: Path, *, suffixes: Iterable[str] = MARKDOWN_SUFFIXES
) -> Dict[Path, FileStamp]:
    """Record modification time and size for every Markdown file under ``root``."""
    snapshot: Dict[Path, FileStamp] = {}
    for path in iter_markdown_paths(root, suffixes=suffixes):
        try:
            stat = path.stat()
        except OSError:
            continue
        snapshot[path] = (stat.st_mtime, stat.st_size)
    return snapshot
