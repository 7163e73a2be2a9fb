"""Tests for document loading and scanning."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from docsite.errors import DUPLICATE_PATH, INVALID_METADATA, READ_TIMEOUT, UNREADABLE_FILE
from docsite.ingestion.loader import build_headings, canonical_path, load_document, scan
from docsite.ingestion.renderer import MarkdownRenderer, RenderedDocument


class TestCanonicalPath:
    def test_strips_extension_and_uses_forward_slashes(self, tmp_path: Path) -> None:
        assert canonical_path(tmp_path, tmp_path / "guide" / "Setup.md") == "guide/Setup"

    def test_keeps_case(self, tmp_path: Path) -> None:
        assert canonical_path(tmp_path, tmp_path / "API.markdown") == "API"


def test_build_headings_deduplicates_slugs() -> None:
    headings = build_headings([(1, "Intro"), (2, "Intro"), (2, "Usage")])
    assert [heading.slug for heading in headings] == ["intro", "intro-1", "usage"]
    assert [heading.level for heading in headings] == [1, 2, 2]


class TestLoadDocument:
    """Loading a single file."""

    def test_title_from_front_matter(self, write_tree) -> None:
        root = write_tree({"page.md": "---\ntitle: From Meta\ntags: a, b\n---\n# Heading\n"})
        document, diagnostics = load_document(root, root / "page.md", MarkdownRenderer())

        assert diagnostics == []
        assert document is not None
        assert document.title == "From Meta"
        assert document.tags == ("a", "b")
        assert document.body == "# Heading\n"

    def test_title_from_first_h1(self, write_tree) -> None:
        root = write_tree({"page.md": "## Sub\n\n# Main Title\n"})
        document, _ = load_document(root, root / "page.md", MarkdownRenderer())
        assert document is not None
        assert document.title == "Main Title"

    def test_title_from_file_name(self, write_tree) -> None:
        root = write_tree({"getting-started.md": "Plain text only.\n"})
        document, _ = load_document(root, root / "getting-started.md", MarkdownRenderer())
        assert document is not None
        assert document.title == "Getting Started"
        assert document.canonical_path == "getting-started"

    def test_headings_and_hash(self, write_tree) -> None:
        root = write_tree({"page.md": "# Intro\n\n## Intro\n"})
        document, _ = load_document(root, root / "page.md", MarkdownRenderer())
        assert document is not None
        assert [heading.slug for heading in document.headings] == ["intro", "intro-1"]
        assert len(document.sha256) == 64

    def test_invalid_metadata_is_a_warning(self, write_tree) -> None:
        root = write_tree({"page.md": "---\ntitle: [oops\n---\n# Still Loaded\n"})
        document, diagnostics = load_document(root, root / "page.md", MarkdownRenderer())

        assert document is not None
        assert document.metadata == {}
        assert [diagnostic.kind for diagnostic in diagnostics] == [INVALID_METADATA]
        assert not diagnostics[0].is_error

    def test_unreadable_file_is_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "binary.md"
        path.write_bytes(b"\xff\xfe\x00\x81 not utf-8")

        document, diagnostics = load_document(tmp_path, path, MarkdownRenderer())

        assert document is None
        assert [diagnostic.kind for diagnostic in diagnostics] == [UNREADABLE_FILE]
        assert diagnostics[0].path == "binary"
        assert not diagnostics[0].is_fatal


class TestScan:
    """Scanning a whole tree."""

    def test_loads_sorted_document_set(self, write_tree) -> None:
        root = write_tree({"index.md": "# Home\n", "guide/b.md": "# B\n", "guide/a.md": "# A\n"})
        documents, diagnostics = scan(root, workers=2)

        assert diagnostics == []
        assert list(documents) == ["guide/a", "guide/b", "index"]

    def test_case_insensitive_duplicates_are_fatal(self, write_tree) -> None:
        root = write_tree({"Foo.md": "# Upper\n", "foo.md": "# Lower\n"})
        if len(list(root.iterdir())) < 2:
            pytest.skip("case-insensitive file system")

        documents, diagnostics = scan(root)

        duplicates = [diagnostic for diagnostic in diagnostics if diagnostic.kind == DUPLICATE_PATH]
        assert len(duplicates) == 1
        assert duplicates[0].is_fatal
        assert "Foo.md" in duplicates[0].message
        assert "foo.md" in duplicates[0].message
        assert len(documents) == 1

    def test_unreadable_file_does_not_stop_scan(self, write_tree) -> None:
        root = write_tree({"good.md": "# Good\n"})
        (root / "bad.md").write_bytes(b"\xff\xfe")

        documents, diagnostics = scan(root)

        assert list(documents) == ["good"]
        assert [diagnostic.kind for diagnostic in diagnostics] == [UNREADABLE_FILE]

    def test_slow_file_times_out(self, write_tree) -> None:
        class SlowRenderer:
            def render(self, body: str) -> RenderedDocument:
                time.sleep(0.5)
                return RenderedDocument(text=body)

        root = write_tree({"slow.md": "# Slow\n"})
        documents, diagnostics = scan(root, renderer=SlowRenderer(), read_timeout=0.05)

        assert len(documents) == 0
        assert [diagnostic.kind for diagnostic in diagnostics] == [READ_TIMEOUT]
        assert diagnostics[0].path == "slow"
