"""Site configuration defaults and YAML loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, FrozenSet, Tuple

import yaml

from docsite.errors import ConfigError
from docsite.index.indexer import DEFAULT_STOP_WORDS
from docsite.index.search import SEARCH_MODES
from docsite.navigation.builder import NavEntry, parse_nav

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "docsite.yml"

_PATH_KEYS = {"root", "out_dir", "db_path"}
_BOOL_KEYS = {"strict", "fail_on_warning", "auto_discover"}
_NUMBER_KEYS = {"title_boost", "read_timeout", "debounce"}
_INT_KEYS = {"snippet_window", "workers"}
_STRING_KEYS = {"site_title", "catch_all_label", "search_mode"}


@dataclass(slots=True)
class SiteConfig:
    root: Path = Path("docs")
    nav: Tuple[NavEntry, ...] | None = None
    out_dir: Path = Path("site")
    db_path: Path | None = None
    site_title: str = "Home"
    strict: bool = False
    fail_on_warning: bool = False
    auto_discover: bool = False
    catch_all_label: str = "Other"
    stop_words: FrozenSet[str] = DEFAULT_STOP_WORDS
    search_mode: str = "and"
    title_boost: float = 2.0
    snippet_window: int = 24
    workers: int | None = None
    read_timeout: float = 10.0
    debounce: float = 0.2
    source: Path | None = None

    def __post_init__(self) -> None:
        if self.search_mode not in SEARCH_MODES:
            raise ConfigError(
                f"search_mode must be one of {', '.join(SEARCH_MODES)}, got {self.search_mode!r}"
            )
        self.root = Path(self.root)
        self.out_dir = Path(self.out_dir)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        db_path = Path(self.db_path) if self.db_path is not None else self.out_dir / "search.db"
        if db_path.is_absolute() or base_dir is None:
            return db_path
        return base_dir / db_path


def _check_type(key: str, value: Any) -> Any:
    if key in _BOOL_KEYS and not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    if key in _NUMBER_KEYS and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise ConfigError(f"{key} must be a number")
    if key in _INT_KEYS and value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ConfigError(f"{key} must be an integer")
    if key in _STRING_KEYS and not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    if key in _PATH_KEYS and not isinstance(value, str):
        raise ConfigError(f"{key} must be a path string")
    if key == "stop_words":
        if not isinstance(value, list) or not all(isinstance(word, str) for word in value):
            raise ConfigError("stop_words must be a list of strings")
        return frozenset(word.lower() for word in value)
    return value


def load_config(path: Path) -> SiteConfig:
    """Load a ``docsite.yml`` file.

    Relative paths are resolved against the file's directory. Any malformed
    value raises ``ConfigError`` before documents are read.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    known = {field.name for field in fields(SiteConfig)} - {"source"}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"{path}: unknown keys {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key == "nav":
            values["nav"] = parse_nav(value) if value is not None else None
            continue
        values[key] = _check_type(key, value)

    base = path.parent
    for key in _PATH_KEYS & set(values):
        candidate = Path(values[key])
        values[key] = candidate if candidate.is_absolute() else base / candidate
    values.setdefault("root", base / "docs")
    values.setdefault("out_dir", base / "site")

    LOGGER.debug("Loaded config from %s", path)
    return SiteConfig(source=path, **values)
