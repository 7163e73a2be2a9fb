"""Exceptions and diagnostic vocabulary shared by the build stages."""

from __future__ import annotations


class DocsiteError(Exception):
    """Base class for errors raised by docsite."""


class ConfigError(DocsiteError):
    """Raised when the site configuration or navigation config is malformed."""


class StructuralError(DocsiteError):
    """Raised when the document tree cannot form a consistent site."""

    def __init__(self, message: str, paths: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.paths = paths


# Diagnostic categories
STRUCTURAL = "structural"
CONFIG = "config"
REFERENCE = "reference"
IO = "io"

FATAL_CATEGORIES = frozenset({STRUCTURAL, CONFIG})

# Severities
ERROR = "error"
WARNING = "warning"

# Diagnostic kinds
DUPLICATE_PATH = "duplicate-path"
NAV_CYCLE = "nav-cycle"
MISSING_NAV_TARGET = "missing-nav-target"
MALFORMED_CONFIG = "malformed-config"
BROKEN_LINK = "broken-link"
BROKEN_ANCHOR = "broken-anchor"
AMBIGUOUS_LINK = "ambiguous-link"
ORPHAN_DOCUMENT = "orphan-document"
DUPLICATE_NAV_ENTRY = "duplicate-nav-entry"
UNREADABLE_FILE = "unreadable-file"
INVALID_METADATA = "invalid-metadata"
READ_TIMEOUT = "read-timeout"
