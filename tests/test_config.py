"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from docsite.config import SiteConfig, load_config
from docsite.errors import ConfigError, StructuralError
from docsite.index.indexer import DEFAULT_STOP_WORDS
from docsite.navigation.builder import NavLeaf, NavSection


class TestSiteConfig:
    """SiteConfig defaults and helpers."""

    def test_defaults(self) -> None:
        config = SiteConfig()
        assert config.root == Path("docs")
        assert config.out_dir == Path("site")
        assert config.nav is None
        assert config.strict is False
        assert config.search_mode == "and"
        assert config.stop_words == DEFAULT_STOP_WORDS

    def test_paths_are_coerced(self) -> None:
        config = SiteConfig(root="content", out_dir="public")  # type: ignore[arg-type]
        assert config.root == Path("content")
        assert config.out_dir == Path("public")

    def test_invalid_search_mode(self) -> None:
        with pytest.raises(ConfigError, match="search_mode"):
            SiteConfig(search_mode="fuzzy")

    def test_resolve_db_path_default(self, tmp_path: Path) -> None:
        config = SiteConfig(out_dir=Path("public"))
        assert config.resolve_db_path(tmp_path) == tmp_path / "public" / "search.db"

    def test_resolve_db_path_absolute(self, tmp_path: Path) -> None:
        config = SiteConfig(db_path=tmp_path / "custom.db")
        assert config.resolve_db_path(Path("/elsewhere")) == tmp_path / "custom.db"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "docsite.yml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Reading docsite.yml."""

    def test_full_file(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "root: content\n"
            "out_dir: build/site\n"
            "site_title: Manual\n"
            "strict: true\n"
            "search_mode: or\n"
            "title_boost: 3\n"
            "stop_words: [The, A]\n"
            "nav:\n"
            "  - index.md\n"
            "  - Guide:\n"
            "      - guide/setup.md\n",
        )

        config = load_config(path)

        assert config.source == path
        assert config.root == tmp_path / "content"
        assert config.out_dir == tmp_path / "build" / "site"
        assert config.site_title == "Manual"
        assert config.strict is True
        assert config.search_mode == "or"
        assert config.title_boost == 3
        assert config.stop_words == frozenset({"the", "a"})
        assert config.nav == (NavLeaf("index.md"), NavSection("Guide", (NavLeaf("guide/setup.md"),)))

    def test_empty_file_uses_defaults_next_to_it(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, ""))
        assert config.root == tmp_path / "docs"
        assert config.out_dir == tmp_path / "site"
        assert config.nav is None

    def test_absolute_paths_are_kept(self, tmp_path: Path) -> None:
        target = tmp_path / "abs"
        config = load_config(_write(tmp_path, f"root: {target.as_posix()}\n"))
        assert config.root == target

    @pytest.mark.parametrize(
        "text",
        [
            "strict: maybe\n",
            "title_boost: high\n",
            "workers: 2.5\n",
            "stop_words: the\n",
            "root: 5\n",
            "unknown_key: 1\n",
            "- just\n- a list\n",
            "root: [unclosed\n",
            "nav:\n  - page.md#anchor\n",
            "search_mode: fuzzy\n",
        ],
    )
    def test_malformed_values(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, text))

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "absent.yml")

    def test_nav_cycle(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "nav: &loop\n  - index.md\n  - Loop: *loop\n")
        with pytest.raises(StructuralError):
            load_config(path)
