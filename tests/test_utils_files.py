"""Tests for file helpers."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from docsite.utils.files import (
    hash_text,
    is_hidden,
    is_markdown_file,
    iter_markdown_paths,
    snapshot_tree,
)


class TestIsMarkdownFile:
    def test_markdown_suffixes(self) -> None:
        assert is_markdown_file(Path("a.md"))
        assert is_markdown_file(Path("b.MARKDOWN"))

    def test_other_suffixes(self) -> None:
        assert not is_markdown_file(Path("image.png"))
        assert not is_markdown_file(Path("README"))


def test_is_hidden() -> None:
    assert is_hidden(Path(".github/notes.md"))
    assert is_hidden(Path("guide/.scratch.md"))
    assert not is_hidden(Path("guide/setup.md"))


class TestIterMarkdownPaths:
    """Directory walking."""

    def test_sorted_depth_first(self, tmp_path: Path) -> None:
        (tmp_path / "guide").mkdir()
        for name in ("z.md", "a.md", "guide/b.md", "guide/a.markdown"):
            (tmp_path / name).write_text("x", encoding="utf-8")

        paths = [path.relative_to(tmp_path).as_posix() for path in iter_markdown_paths(tmp_path)]
        assert paths == ["a.md", "guide/a.markdown", "guide/b.md", "z.md"]

    def test_skips_hidden_and_other_files(self, tmp_path: Path) -> None:
        (tmp_path / ".cache").mkdir()
        (tmp_path / ".cache" / "page.md").write_text("x", encoding="utf-8")
        (tmp_path / ".draft.md").write_text("x", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
        (tmp_path / "page.md").write_text("x", encoding="utf-8")

        assert [path.name for path in iter_markdown_paths(tmp_path)] == ["page.md"]

    def test_custom_suffixes(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("x", encoding="utf-8")
        (tmp_path / "b.mdx").write_text("x", encoding="utf-8")
        assert [path.name for path in iter_markdown_paths(tmp_path, suffixes=(".mdx",))] == ["b.mdx"]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlink_loop_terminates(self, tmp_path: Path) -> None:
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "page.md").write_text("x", encoding="utf-8")
        try:
            os.symlink(tmp_path, sub / "loop", target_is_directory=True)
        except OSError:
            pytest.skip("cannot create symlinks here")

        paths = list(iter_markdown_paths(tmp_path))
        assert [path.name for path in paths] == ["page.md"]


def test_hash_text_is_stable_sha256() -> None:
    digest = hash_text("hello")
    assert digest == hash_text("hello")
    assert digest != hash_text("hello!")
    assert len(digest) == 64


def test_snapshot_tree_records_size(tmp_path: Path) -> None:
    page = tmp_path / "page.md"
    page.write_text("12345", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")

    snapshot = snapshot_tree(tmp_path)

    assert list(snapshot) == [page]
    assert snapshot[page][1] == 5
