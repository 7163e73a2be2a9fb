"""Core docsite data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, Mapping, Tuple

from docsite.errors import ERROR, FATAL_CATEGORIES, StructuralError

if TYPE_CHECKING:
    from docsite.index.indexer import SearchIndex


@dataclass(slots=True, frozen=True)
class Heading:
    """A heading of a document together with its anchor slug."""

    text: str
    level: int
    slug: str


@dataclass(slots=True, frozen=True)
class Document:
    """A loaded source document. Never mutated once created."""

    canonical_path: str
    source_path: Path
    raw: str
    body: str
    text: str
    title: str
    tags: Tuple[str, ...]
    metadata: Mapping[str, Any]
    headings: Tuple[Heading, ...]
    sha256: str

    @property
    def directory(self) -> str:
        head, _, _ = self.canonical_path.rpartition("/")
        return head

    @property
    def slug_map(self) -> Dict[str, str]:
        """Map each heading text to the slug of its first occurrence."""
        mapping: Dict[str, str] = {}
        for heading in self.headings:
            mapping.setdefault(heading.text, heading.slug)
        return mapping

    def has_anchor(self, slug: str) -> bool:
        return any(heading.slug == slug for heading in self.headings)


class DocumentSet(Mapping[str, Document]):
    """Immutable snapshot of documents keyed by canonical path.

    Canonical paths are unique when compared case-insensitively; building a set
    that violates this raises :class:`StructuralError`. The case-folded lookup
    table is built once here and only read afterwards.
    """

    __slots__ = ("_documents", "_folded")

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        self._documents: Dict[str, Document] = {}
        self._folded: Dict[str, str] = {}
        for document in sorted(documents, key=lambda doc: doc.canonical_path):
            key = document.canonical_path.casefold()
            existing = self._folded.get(key)
            if existing is not None:
                raise StructuralError(
                    f"Duplicate canonical path: {existing!r} and {document.canonical_path!r}",
                    paths=(existing, document.canonical_path),
                )
            self._folded[key] = document.canonical_path
            self._documents[document.canonical_path] = document

    def __getitem__(self, key: str) -> Document:
        return self._documents[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __repr__(self) -> str:
        return f"DocumentSet({len(self)} documents)"

    def lookup(self, path: str) -> str | None:
        """Return the canonical path equal to ``path`` ignoring case, if any."""
        if path in self._documents:
            return path
        return self._folded.get(path.casefold())

    def replace(
        self, updated: Iterable[Document] = (), removed: Iterable[str] = ()
    ) -> "DocumentSet":
        """Return a new set with ``removed`` dropped and ``updated`` swapped in."""
        updated = list(updated)
        dropped = {path for path in removed}
        dropped.update(document.canonical_path for document in updated)
        kept = [doc for path, doc in self._documents.items() if path not in dropped]
        return DocumentSet(kept + updated)


@dataclass(slots=True, frozen=True)
class ResolvedTarget:
    """A document (and optional anchor) a reference points to."""

    path: str
    anchor: str | None = None

    def __str__(self) -> str:
        return f"{self.path}#{self.anchor}" if self.anchor else self.path


@dataclass(slots=True, frozen=True)
class LinkReference:
    """Reference from one document to another, resolved or not."""

    source: str
    raw_target: str
    line: int
    normalized: str | None
    target: ResolvedTarget | None

    @property
    def resolved(self) -> bool:
        return self.target is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.raw_target,
            "line": self.line,
            "resolved": self.target.path if self.target else None,
            "anchor": self.target.anchor if self.target else None,
        }


@dataclass(slots=True, frozen=True)
class NavigationNode:
    """Node of the navigation tree. Sections have no target."""

    label: str
    target: ResolvedTarget | None = None
    children: Tuple["NavigationNode", ...] = ()
    draft: bool = False

    def iter_nodes(self) -> Iterator["NavigationNode"]:
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"label": self.label}
        if self.target is not None:
            result["path"] = self.target.path
        if self.draft:
            result["draft"] = True
        if self.children:
            result["children"] = [child.to_dict() for child in self.children]
        return result


@dataclass(slots=True, frozen=True)
class NavigationTree:
    """Frozen navigation hierarchy with a single root."""

    root: NavigationNode

    def targets(self) -> frozenset[str]:
        return frozenset(
            node.target.path for node in self.root.iter_nodes() if node.target is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.root.to_dict()


@dataclass(slots=True)
class SearchResult:
    document_path: str
    title: str
    score: float
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """A single problem found while building."""

    kind: str
    category: str
    severity: str
    path: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    @property
    def is_fatal(self) -> bool:
        """Fatal diagnostics stop the pipeline before later stages run."""
        return self.is_error and self.category in FATAL_CATEGORIES

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.path, self.kind, self.message)

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "path": self.path, "message": self.message}


@dataclass(slots=True, frozen=True)
class BuildReport:
    """Outcome of one build pass."""

    errors: Tuple[Diagnostic, ...]
    warnings: Tuple[Diagnostic, ...]
    duration_ms: float
    document_count: int
    mode: str = "cold"
    artifact_emitted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.artifact_emitted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errors": [diagnostic.to_dict() for diagnostic in self.errors],
            "warnings": [diagnostic.to_dict() for diagnostic in self.warnings],
            "durationMs": round(self.duration_ms, 3),
            "documentCount": self.document_count,
            "mode": self.mode,
            "artifactEmitted": self.artifact_emitted,
        }


@dataclass(slots=True, frozen=True)
class SiteArtifact:
    """Everything a renderer needs to publish the site."""

    navigation: NavigationTree
    links: Mapping[str, Tuple[LinkReference, ...]]
    search_index: "SearchIndex"
    documents: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self, *, include_index: bool = True) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "navigation": self.navigation.to_dict(),
            "documents": dict(sorted(self.documents.items())),
            "links": {
                source: [reference.to_dict() for reference in references]
                for source, references in sorted(self.links.items())
            },
        }
        if include_index:
            result["searchIndex"] = self.search_index.to_dict()
        return result
