"""Shared fixtures for building small document trees."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable, Dict

import pytest

from docsite.ingestion.loader import scan
from docsite.models import DocumentSet


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[..., Path]:
    """Write ``{relative path: markdown}`` under ``tmp_path/docs`` and return the root."""

    def _write(files: Dict[str, str], root: Path | None = None) -> Path:
        base = root or tmp_path / "docs"
        base.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = base / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return base

    return _write


@pytest.fixture
def load_tree(write_tree: Callable[..., Path]) -> Callable[[Dict[str, str]], DocumentSet]:
    """Write a tree and load it into a DocumentSet."""

    def _load(files: Dict[str, str]) -> DocumentSet:
        documents, diagnostics = scan(write_tree(files), workers=2)
        assert not [diagnostic for diagnostic in diagnostics if diagnostic.is_fatal]
        return documents

    return _load
