"""Build orchestration: cold and incremental builds, diagnostics aggregation, output."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from docsite.build.watch import ChangeEvent
from docsite.config import SiteConfig, load_config
from docsite.errors import (
    CONFIG,
    ERROR,
    MALFORMED_CONFIG,
    NAV_CYCLE,
    STRUCTURAL,
    ConfigError,
    StructuralError,
)
from docsite.index.indexer import SearchIndex, build_index, update_index
from docsite.index.storage import SQLiteIndexStore
from docsite.ingestion.loader import find_duplicates, load_document, scan
from docsite.ingestion.renderer import MarkdownRenderer, Renderer
from docsite.linking.resolver import LinkGraph, find_orphans, resolve, resolve_document
from docsite.models import (
    BuildReport,
    Diagnostic,
    Document,
    DocumentSet,
    LinkReference,
    NavigationTree,
    SiteArtifact,
)
from docsite.navigation import builder as navigation
from docsite.utils.files import MARKDOWN_SUFFIXES, is_hidden

LOGGER = logging.getLogger(__name__)

COLD = "cold"
INCREMENTAL = "incremental"

SITE_FILE = "site.json"
INDEX_FILE = "search_index.json"
REPORT_FILE = "report.json"


@dataclass(slots=True, frozen=True)
class BuildResult:
    report: BuildReport
    artifact: SiteArtifact | None = None


@dataclass(slots=True)
class BuildState:
    """Everything kept from the last build that passed structural validation."""

    documents: DocumentSet
    graph: LinkGraph
    navigation: NavigationTree
    index: SearchIndex
    load_diagnostics: Dict[str, List[Diagnostic]] = field(default_factory=dict)
    link_diagnostics: Dict[str, List[Diagnostic]] = field(default_factory=dict)
    nav_diagnostics: List[Diagnostic] = field(default_factory=list)


def _group_by_path(diagnostics: Iterable[Diagnostic]) -> Dict[str, List[Diagnostic]]:
    grouped: Dict[str, List[Diagnostic]] = {}
    for diagnostic in diagnostics:
        grouped.setdefault(diagnostic.path, []).append(diagnostic)
    return grouped


def _flatten(grouped: Dict[str, List[Diagnostic]]) -> List[Diagnostic]:
    return [diagnostic for path in sorted(grouped) for diagnostic in grouped[path]]


class SiteBuilder:
    """Runs Load -> Resolve Links -> Build Navigation -> Build Index -> aggregate."""

    def __init__(self, config: SiteConfig, *, renderer: Renderer | None = None) -> None:
        self.config = config
        self.renderer = renderer or MarkdownRenderer()
        self.state: BuildState | None = None

    @property
    def root(self) -> Path:
        return Path(self.config.root)

    def build(self) -> BuildResult:
        """Cold build: reprocess every document."""
        started = time.perf_counter()
        self.state = None
        config_problem = self._check_config()
        if config_problem is not None:
            return self._finish([config_problem], started, COLD, 0, None)

        documents, load_diagnostics = scan(
            self.root,
            renderer=self.renderer,
            workers=self.config.workers,
            read_timeout=self.config.read_timeout,
        )
        if any(diagnostic.is_fatal for diagnostic in load_diagnostics):
            return self._finish(load_diagnostics, started, COLD, len(documents), None)

        graph, link_diagnostics = resolve(
            documents, strict=self.config.strict, workers=self.config.workers
        )
        tree, nav_diagnostics = self._build_navigation(documents)
        if any(diagnostic.is_fatal for diagnostic in nav_diagnostics):
            return self._finish(
                load_diagnostics + link_diagnostics + nav_diagnostics,
                started,
                COLD,
                len(documents),
                None,
            )

        index = build_index(
            documents.values(), stop_words=self.config.stop_words, workers=self.config.workers
        )
        self.state = BuildState(
            documents=documents,
            graph=graph,
            navigation=tree,
            index=index,
            load_diagnostics=_group_by_path(load_diagnostics),
            link_diagnostics=_group_by_path(link_diagnostics),
            nav_diagnostics=nav_diagnostics,
        )
        return self._finish_state(started, COLD)

    def rebuild(self, changes: Sequence[ChangeEvent]) -> BuildResult:
        """Incremental build for ``changes``; falls back to a cold build when needed."""
        if self.state is None:
            LOGGER.info("No previous build state, running a cold build")
            return self.build()
        if self.config.source is not None and any(
            Path(event.path).resolve() == self.config.source.resolve() for event in changes
        ):
            LOGGER.info("Configuration changed, reloading and running a cold build")
            started = time.perf_counter()
            try:
                self.config = load_config(self.config.source)
            except (ConfigError, StructuralError) as exc:
                self.state = None
                return self._finish([_config_diagnostic(exc)], started, COLD, 0, None)
            return self.build()

        started = time.perf_counter()
        state = self.state
        touched = self._touched_paths(changes)
        updated: List[Document] = []
        removed: Set[str] = set()
        load_diagnostics = dict(state.load_diagnostics)

        for canonical, path in sorted(touched.items()):
            load_diagnostics.pop(canonical, None)
            document: Document | None = None
            if path.is_file():
                document, found = load_document(self.root, path, self.renderer)
                if found:
                    load_diagnostics[canonical] = found
            if document is None:
                if canonical in state.documents:
                    removed.add(canonical)
                continue
            previous = state.documents.get(canonical)
            if previous is not None and previous.sha256 == document.sha256:
                continue
            updated.append(document)

        if not updated and not removed:
            LOGGER.info("No effective document changes")
            state.load_diagnostics = load_diagnostics
            return self._finish_state(started, INCREMENTAL)

        try:
            documents = state.documents.replace(updated, removed)
        except StructuralError:
            self.state = None
            replaced = removed | {document.canonical_path for document in updated}
            survivors = [doc for path, doc in state.documents.items() if path not in replaced]
            _, duplicates = find_duplicates(survivors + updated)
            return self._finish(
                _flatten(load_diagnostics) + duplicates, started, INCREMENTAL, len(state.documents), None
            )

        changed_paths = {document.canonical_path for document in updated} | removed
        sources = (state.graph.sources_referencing(changed_paths) | changed_paths) - removed
        link_diagnostics = {
            path: found for path, found in state.link_diagnostics.items() if path not in removed
        }
        refreshed: Dict[str, Tuple[LinkReference, ...]] = {}
        for source in sorted(sources):
            if source not in documents:
                continue
            references, found = resolve_document(
                documents, documents[source], strict=self.config.strict
            )
            refreshed[source] = references
            if found:
                link_diagnostics[source] = found
            else:
                link_diagnostics.pop(source, None)
        graph = state.graph.replace(refreshed, removed)
        LOGGER.debug("Re-resolved links of %d documents", len(refreshed))

        tree, nav_diagnostics = state.navigation, state.nav_diagnostics
        if self._navigation_affected(changed_paths):
            tree, nav_diagnostics = self._build_navigation(documents)
            if any(diagnostic.is_fatal for diagnostic in nav_diagnostics):
                self.state = None
                return self._finish(
                    _flatten(load_diagnostics) + _flatten(link_diagnostics) + nav_diagnostics,
                    started,
                    INCREMENTAL,
                    len(documents),
                    None,
                )

        # Artifacts already handed out keep the previous index.
        index = state.index.copy()
        update_index(index, updated, removed)
        self.state = BuildState(
            documents=documents,
            graph=graph,
            navigation=tree,
            index=index,
            load_diagnostics=load_diagnostics,
            link_diagnostics=link_diagnostics,
            nav_diagnostics=nav_diagnostics,
        )
        return self._finish_state(started, INCREMENTAL)

    def _check_config(self) -> Diagnostic | None:
        if not self.root.is_dir():
            return Diagnostic(
                kind=MALFORMED_CONFIG,
                category=CONFIG,
                severity=ERROR,
                path=str(self.root),
                message=f"Content root {self.root} is not a directory",
            )
        return None

    def _build_navigation(self, documents: DocumentSet) -> Tuple[NavigationTree, List[Diagnostic]]:
        return navigation.build(
            self.config.nav,
            documents,
            strict=self.config.strict,
            auto_discover=self.config.auto_discover,
            catch_all_label=self.config.catch_all_label,
            site_title=self.config.site_title,
        )

    def _navigation_affected(self, changed: Set[str]) -> bool:
        if self.config.nav is None or self.config.auto_discover:
            return bool(changed)
        declared = {path.casefold() for path in navigation.declared_paths(self.config.nav)}
        return any(path.casefold() in declared for path in changed)

    def _touched_paths(self, changes: Iterable[ChangeEvent]) -> Dict[str, Path]:
        """Map change events inside the content root to canonical path -> file."""
        touched: Dict[str, Path] = {}
        for event in changes:
            path = Path(event.path)
            if path.suffix.lower() not in MARKDOWN_SUFFIXES:
                continue
            absolute = path if path.is_absolute() else self.root / path
            relative = self._relative_to_root(absolute)
            if relative is None:
                LOGGER.debug("Ignoring %s change outside content root: %s", event.kind.value, path)
                continue
            if is_hidden(relative):
                LOGGER.debug("Ignoring %s change to hidden path: %s", event.kind.value, path)
                continue
            touched[relative.with_suffix("").as_posix()] = self.root / relative
        return touched

    def _relative_to_root(self, path: Path) -> Path | None:
        for candidate, root in ((path, self.root), (path.resolve(), self.root.resolve())):
            try:
                return candidate.relative_to(root)
            except ValueError:
                continue
        return None

    def _finish_state(self, started: float, mode: str) -> BuildResult:
        assert self.state is not None
        state = self.state
        orphans = find_orphans(state.documents, state.graph, state.navigation.targets())
        diagnostics = (
            _flatten(state.load_diagnostics)
            + _flatten(state.link_diagnostics)
            + state.nav_diagnostics
            + orphans
        )
        artifact = SiteArtifact(
            navigation=state.navigation,
            links=dict(state.graph.references),
            search_index=state.index,
            documents={path: document.title for path, document in state.documents.items()},
        )
        return self._finish(diagnostics, started, mode, len(state.documents), artifact)

    def _finish(
        self,
        diagnostics: Sequence[Diagnostic],
        started: float,
        mode: str,
        document_count: int,
        artifact: SiteArtifact | None,
    ) -> BuildResult:
        errors = tuple(sorted((d for d in diagnostics if d.is_error), key=Diagnostic.sort_key))
        warnings = tuple(sorted((d for d in diagnostics if not d.is_error), key=Diagnostic.sort_key))
        emit = artifact is not None and not errors and not (self.config.fail_on_warning and warnings)
        report = BuildReport(
            errors=errors,
            warnings=warnings,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            document_count=document_count,
            mode=mode,
            artifact_emitted=emit,
        )
        LOGGER.info(
            "%s build finished in %.1f ms: %d documents, %d errors, %d warnings",
            mode.capitalize(),
            report.duration_ms,
            document_count,
            len(errors),
            len(warnings),
        )
        return BuildResult(report=report, artifact=artifact if emit else None)


def _config_diagnostic(exc: Exception) -> Diagnostic:
    if isinstance(exc, StructuralError):
        return Diagnostic(
            kind=NAV_CYCLE, category=STRUCTURAL, severity=ERROR, path="nav", message=str(exc)
        )
    return Diagnostic(kind=MALFORMED_CONFIG, category=CONFIG, severity=ERROR, path="config", message=str(exc))


def config_failure(exc: Exception) -> BuildResult:
    """Report for a configuration that could not be loaded at all."""
    report = BuildReport(errors=(_config_diagnostic(exc),), warnings=(), duration_ms=0.0, document_count=0)
    return BuildResult(report=report)


def write_report(report: BuildReport, out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / REPORT_FILE
    path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    return path


def write_artifact(artifact: SiteArtifact, out_dir: Path, *, db_path: Path | None = None) -> List[Path]:
    """Serialize the artifact to ``out_dir`` and optionally mirror the index to SQLite."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    site_path = out_dir / SITE_FILE
    site_path.write_text(
        json.dumps(artifact.to_dict(include_index=False), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    index_path = out_dir / INDEX_FILE
    index_path.write_text(
        json.dumps(artifact.search_index.to_dict(), ensure_ascii=False), encoding="utf-8"
    )
    written = [site_path, index_path]
    if db_path is not None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        store = SQLiteIndexStore(Path(db_path))
        try:
            store.save(artifact.search_index)
        finally:
            store.close()
        written.append(Path(db_path))
    LOGGER.info("Wrote site artifact to %s", out_dir)
    return written


def emit(result: BuildResult, config: SiteConfig, base_dir: Path | None = None) -> List[Path]:
    """Write the report, and the artifact when the build produced one."""
    written = [write_report(result.report, config.out_dir)]
    if result.artifact is not None:
        written.extend(
            write_artifact(result.artifact, config.out_dir, db_path=config.resolve_db_path(base_dir))
        )
    return written
