"""Cross-document link extraction and resolution."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Set, Tuple
from urllib.parse import unquote

from docsite.errors import (
    AMBIGUOUS_LINK,
    BROKEN_ANCHOR,
    BROKEN_LINK,
    ERROR,
    ORPHAN_DOCUMENT,
    REFERENCE,
    WARNING,
)
from docsite.models import Diagnostic, Document, DocumentSet, LinkReference, ResolvedTarget
from docsite.utils.files import MARKDOWN_SUFFIXES

LOGGER = logging.getLogger(__name__)

INLINE_LINK_RE = re.compile(
    r"(?<!!)\[[^\]\n]*\]\(\s*<?([^)\s>]+)>?(?:\s+(?:\"[^\"]*\"|'[^']*'))?\s*\)"
)
# Footnote definitions (``[^1]: text``) are not links.
REFERENCE_DEF_RE = re.compile(r"^[ ]{0,3}\[(?!\^)[^\]\n]+\]:\s*<?([^\s>]+)>?", re.MULTILINE)
FENCE_RE = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})")
INLINE_CODE_RE = re.compile(r"(`+)(?:(?!\1).)+?\1")
SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

SEVERITY_OVERRIDE_KEY = "broken_links"


@dataclass(slots=True, frozen=True)
class LinkGraph:
    """Resolved references keyed by source document."""

    references: Mapping[str, Tuple[LinkReference, ...]] = field(default_factory=dict)

    def outbound(self, source: str) -> Set[str]:
        return {
            reference.target.path
            for reference in self.references.get(source, ())
            if reference.target is not None
        }

    def edges(self) -> Iterator[Tuple[str, str]]:
        for source in sorted(self.references):
            for target in sorted(self.outbound(source)):
                yield source, target

    def inbound(self) -> Dict[str, Set[str]]:
        result: Dict[str, Set[str]] = {}
        for source, target in self.edges():
            result.setdefault(target, set()).add(source)
        return result

    def replace(
        self,
        updated: Mapping[str, Tuple[LinkReference, ...]],
        removed: Iterable[str] = (),
    ) -> "LinkGraph":
        dropped = set(removed)
        references = {
            source: refs for source, refs in self.references.items() if source not in dropped
        }
        references.update(updated)
        return LinkGraph(dict(sorted(references.items())))

    def sources_referencing(self, paths: Iterable[str]) -> Set[str]:
        """Sources with a reference whose candidate paths touch any of ``paths``."""
        folded = {path.casefold() for path in paths}
        found: Set[str] = set()
        for source, references in self.references.items():
            for reference in references:
                if reference.normalized is None:
                    continue
                if any(candidate.casefold() in folded for candidate in candidate_paths(reference.normalized)):
                    found.add(source)
                    break
        return found


def _strip_code(body: str) -> List[str]:
    """Blank out fenced blocks and inline code spans, keeping line numbering."""
    lines: List[str] = []
    fence: str | None = None
    for line in body.splitlines():
        match = FENCE_RE.match(line)
        if fence is not None:
            if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
                fence = None
            lines.append("")
            continue
        if match:
            fence = match.group(1)
            lines.append("")
            continue
        lines.append(INLINE_CODE_RE.sub(lambda m: " " * len(m.group(0)), line))
    return lines


def extract_targets(document: Document) -> List[Tuple[int, str]]:
    """Return ``(line, target)`` pairs for every document reference in the body."""
    offset = document.raw[: len(document.raw) - len(document.body)].count("\n")
    lines = _strip_code(document.body)
    found: List[Tuple[int, str]] = []
    for number, line in enumerate(lines, start=1 + offset):
        for match in INLINE_LINK_RE.finditer(line):
            found.append((number, match.group(1)))
    stripped = "\n".join(lines)
    for match in REFERENCE_DEF_RE.finditer(stripped):
        number = stripped[: match.start()].count("\n") + 1 + offset
        found.append((number, match.group(1)))
    found.sort()
    return [(number, target) for number, target in found if is_document_target(target)]


def is_document_target(target: str) -> bool:
    if not target or target.startswith("//") or SCHEME_RE.match(target):
        return False
    path = target.split("#", 1)[0].split("?", 1)[0]
    name = path.rstrip("/").rsplit("/", 1)[-1]
    if path.endswith("/") or "." not in name or name in (".", ".."):
        return True
    return "." + name.rsplit(".", 1)[-1].lower() in MARKDOWN_SUFFIXES


def normalize_target(source_dir: str, path: str) -> str | None:
    """Normalize ``path`` against ``source_dir`` into a canonical-path candidate.

    Returns ``None`` when the path climbs above the content root. A trailing
    ``/`` is kept to mark a directory reference; ``""`` is the root directory.
    """
    directory_only = path.endswith("/") or path.rsplit("/", 1)[-1] in (".", "..")
    if path.startswith("/"):
        parts: List[str] = []
    else:
        parts = [part for part in source_dir.split("/") if part]
    for part in unquote(path).split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(part)
    if parts and not directory_only:
        last = parts[-1]
        stem, dot, suffix = last.rpartition(".")
        if dot and "." + suffix.lower() in MARKDOWN_SUFFIXES:
            parts[-1] = stem
    normalized = "/".join(parts)
    if directory_only and normalized:
        normalized += "/"
    return normalized


def candidate_paths(normalized: str) -> List[str]:
    """Canonical paths a normalized target may denote, most specific first."""
    if normalized == "" or normalized.endswith("/"):
        return [normalized + "index"]
    return [normalized, normalized + "/index"]


def lookup(documents: DocumentSet, normalized: str) -> Tuple[str | None, Tuple[str, ...]]:
    """Find the document for ``normalized``.

    Exact-case matches win. Otherwise a single case-insensitive match is used;
    several matches yield the lexicographically smallest plus the candidate list.
    """
    matches: List[Tuple[str, str]] = []
    for candidate in candidate_paths(normalized):
        found = documents.lookup(candidate)
        if found is not None:
            matches.append((candidate, found))
    for candidate, found in matches:
        if candidate == found:
            return found, ()
    distinct = sorted({found for _, found in matches})
    if not distinct:
        return None, ()
    if len(distinct) == 1:
        return distinct[0], ()
    return distinct[0], tuple(distinct)


def broken_link_severity(document: Document, strict: bool) -> str:
    override = str(document.metadata.get(SEVERITY_OVERRIDE_KEY, "")).strip().lower()
    if override in (ERROR, WARNING):
        return override
    return ERROR if strict else WARNING


def _reference_diagnostic(kind: str, severity: str, source: str, message: str) -> Diagnostic:
    return Diagnostic(kind=kind, category=REFERENCE, severity=severity, path=source, message=message)


def resolve_reference(
    documents: DocumentSet,
    source: Document,
    line: int,
    raw_target: str,
    *,
    strict: bool = False,
) -> Tuple[LinkReference, List[Diagnostic]]:
    """Resolve one raw target found in ``source``."""
    diagnostics: List[Diagnostic] = []
    location = f"{source.canonical_path}:{line}"
    path_part, _, anchor = raw_target.partition("#")
    path_part = path_part.split("?", 1)[0]
    anchor = unquote(anchor) or None

    if path_part:
        normalized = normalize_target(source.directory, path_part)
    else:
        normalized = source.canonical_path

    found: str | None = None
    if normalized is not None:
        found, ambiguous = lookup(documents, normalized)
        if ambiguous:
            diagnostics.append(
                _reference_diagnostic(
                    AMBIGUOUS_LINK,
                    WARNING,
                    source.canonical_path,
                    f"{location}: {raw_target!r} matches {', '.join(ambiguous)}; using {found!r}",
                )
            )

    if found is None:
        diagnostics.append(
            _reference_diagnostic(
                BROKEN_LINK,
                broken_link_severity(source, strict),
                source.canonical_path,
                f"{location}: no document for {raw_target!r}",
            )
        )
        return LinkReference(source.canonical_path, raw_target, line, normalized, None), diagnostics

    target = documents[found]
    slug: str | None = None
    if anchor:
        if target.has_anchor(anchor):
            slug = anchor
        elif target.has_anchor(anchor.lower()):
            slug = anchor.lower()
        else:
            diagnostics.append(
                _reference_diagnostic(
                    BROKEN_ANCHOR,
                    WARNING,
                    source.canonical_path,
                    f"{location}: {found!r} has no heading #{anchor}",
                )
            )
    reference = LinkReference(
        source.canonical_path, raw_target, line, normalized, ResolvedTarget(found, slug)
    )
    return reference, diagnostics


def resolve_document(
    documents: DocumentSet,
    document: Document,
    targets: Sequence[Tuple[int, str]] | None = None,
    *,
    strict: bool = False,
) -> Tuple[Tuple[LinkReference, ...], List[Diagnostic]]:
    """Resolve all outgoing references of a single document."""
    if targets is None:
        targets = extract_targets(document)
    references: List[LinkReference] = []
    diagnostics: List[Diagnostic] = []
    for line, raw_target in targets:
        reference, found = resolve_reference(documents, document, line, raw_target, strict=strict)
        references.append(reference)
        diagnostics.extend(found)
    return tuple(references), diagnostics


def resolve(
    documents: DocumentSet,
    *,
    strict: bool = False,
    workers: int | None = None,
) -> Tuple[LinkGraph, List[Diagnostic]]:
    """Resolve every reference in ``documents``.

    Extraction runs in parallel and completes for all documents before any
    resolution starts; resolution then reads the frozen path table without locks.
    """
    ordered = [documents[path] for path in documents]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docsite-links") as executor:
        extracted = list(executor.map(extract_targets, ordered))
        resolved = list(
            executor.map(
                lambda pair: resolve_document(documents, pair[0], pair[1], strict=strict),
                zip(ordered, extracted),
            )
        )

    references: Dict[str, Tuple[LinkReference, ...]] = {}
    diagnostics: List[Diagnostic] = []
    for document, (refs, found) in zip(ordered, resolved):
        references[document.canonical_path] = refs
        diagnostics.extend(found)

    total = sum(len(refs) for refs in references.values())
    LOGGER.info("Resolved %d references across %d documents", total, len(references))
    return LinkGraph(references), diagnostics


def find_orphans(
    documents: DocumentSet, graph: LinkGraph, nav_targets: Iterable[str]
) -> List[Diagnostic]:
    """Report documents neither in the navigation nor linked from another document."""
    in_nav = set(nav_targets)
    linked = {
        target for target, sources in graph.inbound().items() if sources - {target}
    }
    orphans: List[Diagnostic] = []
    for path in documents:
        if path in in_nav or path in linked:
            continue
        orphans.append(
            _reference_diagnostic(
                ORPHAN_DOCUMENT,
                WARNING,
                path,
                f"{path!r} is not in the navigation and no document links to it",
            )
        )
    return orphans
