"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from docsite.cli import _load_config, _setup_logging, app

runner = CliRunner()

SITE = {
    "index.md": "# Home\n\nRead the [setup](setup.md).\n",
    "setup.md": "# Installing Docker\n\nInstall docker with the package manager.\n",
}


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        with patch("docsite.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        with patch("docsite.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        config = _load_config(None)
        assert config.source is None
        assert config.root == Path("docs")

    def test_picks_up_config_in_working_directory(self, tmp_path: Path) -> None:
        (tmp_path / "docsite.yml").write_text("site_title: Manual\n", encoding="utf-8")
        config = _load_config(None)
        assert config.site_title == "Manual"
        assert config.source == Path("docsite.yml")

    def test_flags_override_file(self, tmp_path: Path) -> None:
        (tmp_path / "docsite.yml").write_text("strict: false\n", encoding="utf-8")
        config = _load_config(None, root=tmp_path / "other", strict=True, db=tmp_path / "x.db")
        assert config.root == tmp_path / "other"
        assert config.strict is True
        assert config.db_path == tmp_path / "x.db"


class TestBuildCommand:
    """Tests for the build command."""

    def test_successful_build(self, write_tree, tmp_path: Path) -> None:
        root = write_tree(SITE)
        out = tmp_path / "public"

        result = runner.invoke(app, ["build", "--root", str(root), "--out", str(out)])

        assert result.exit_code == 0, result.output
        assert "Site built" in result.output
        assert (out / "site.json").exists()
        assert (out / "search.db").exists()

    def test_failed_build_exits_non_zero(self, write_tree, tmp_path: Path) -> None:
        write_tree(SITE)
        (tmp_path / "docsite.yml").write_text("nav:\n  - missing.md\n", encoding="utf-8")

        result = runner.invoke(app, ["build"])

        assert result.exit_code == 1
        assert "Build failed" in result.output
        report = json.loads((tmp_path / "site" / "report.json").read_text(encoding="utf-8"))
        assert report["errors"][0]["kind"] == "missing-nav-target"
        assert not (tmp_path / "site" / "site.json").exists()

    def test_fail_on_warning_flag(self, write_tree, tmp_path: Path) -> None:
        root = write_tree({"index.md": "[gone](missing.md)\n"})
        result = runner.invoke(app, ["build", "--root", str(root), "--fail-on-warning"])
        assert result.exit_code == 1

    def test_malformed_config(self, tmp_path: Path) -> None:
        (tmp_path / "docsite.yml").write_text("strict: sometimes\n", encoding="utf-8")
        result = runner.invoke(app, ["build"])
        assert result.exit_code == 1
        assert "Build failed" in result.output


class TestSearchCommand:
    def test_search_after_build(self, write_tree, tmp_path: Path) -> None:
        root = write_tree(SITE)
        assert runner.invoke(app, ["build", "--root", str(root)]).exit_code == 0

        result = runner.invoke(app, ["search", "install docker"])

        assert result.exit_code == 0, result.output
        assert "setup" in result.output

    def test_no_matches(self, write_tree, tmp_path: Path) -> None:
        root = write_tree(SITE)
        runner.invoke(app, ["build", "--root", str(root)])

        result = runner.invoke(app, ["search", "kubernetes"])

        assert result.exit_code == 0
        assert "No matches found." in result.output

    def test_missing_database(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["search", "anything", "--db", str(tmp_path / "absent.db")])
        assert result.exit_code != 0

    def test_invalid_mode(self) -> None:
        result = runner.invoke(app, ["search", "anything", "--mode", "xor"])
        assert result.exit_code != 0


class TestWatchCommand:
    def test_watch_builds_then_stops_on_interrupt(self, write_tree, tmp_path: Path) -> None:
        root = write_tree(SITE)
        with patch("docsite.cli.watch_tree", side_effect=KeyboardInterrupt) as mock_watch, patch(
            "docsite.cli.BuildCoordinator"
        ) as mock_coordinator_class:
            coordinator = MagicMock()
            mock_coordinator_class.return_value = coordinator

            result = runner.invoke(app, ["watch", "--root", str(root)])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "site" / "site.json").exists()
        mock_watch.assert_called_once()
        coordinator.start.assert_called_once()
        coordinator.stop.assert_called_once()


class TestServeCommand:
    def test_malformed_config_is_a_usage_error(self, tmp_path: Path) -> None:
        (tmp_path / "docsite.yml").write_text("strict: sometimes\n", encoding="utf-8")
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve"])

        assert result.exit_code == 2
        assert isinstance(result.exception, SystemExit)
        mock_run.assert_not_called()

    def test_serves_configured_site(self, write_tree, tmp_path: Path) -> None:
        root = write_tree(SITE)
        runner.invoke(app, ["build", "--root", str(root)])
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9001"])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        assert mock_run.call_args[1]["port"] == 9001
