"""Inverted index construction with per-document replacement."""

from __future__ import annotations

import logging
import re
from bisect import bisect_left
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Set, Tuple

from docsite.models import Document

LOGGER = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)

DEFAULT_STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in",
        "into", "is", "it", "no", "not", "of", "on", "or", "such", "that", "the",
        "their", "then", "there", "these", "they", "this", "to", "was", "will", "with",
    }
)


@dataclass(slots=True, frozen=True)
class Token:
    text: str
    position: int
    start: int
    end: int


def tokenize(text: str, stop_words: Iterable[str] = frozenset()) -> List[Token]:
    """Lowercase, split on non-alphanumeric boundaries and drop stop words.

    Positions count every word, including dropped stop words, so offsets keep
    pointing at the same place in the text.
    """
    stop = stop_words if isinstance(stop_words, (set, frozenset)) else frozenset(stop_words)
    tokens: List[Token] = []
    for position, match in enumerate(TOKEN_RE.finditer(text)):
        word = match.group(0).lower()
        if word in stop:
            continue
        tokens.append(Token(word, position, match.start(), match.end()))
    return tokens


@dataclass(slots=True)
class IndexedDocument:
    """Tokenized form of a document ready to merge into the index."""

    path: str
    title: str
    text: str
    tokens: Tuple[Token, ...]
    title_terms: FrozenSet[str]

    def postings(self) -> Dict[str, Tuple[int, ...]]:
        grouped: Dict[str, List[int]] = {}
        for token in self.tokens:
            grouped.setdefault(token.text, []).append(token.position)
        return {term: tuple(positions) for term, positions in grouped.items()}


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    removed: int = 0
    processed: List[str] = field(default_factory=list)

    def increment(self, status: str, path: str) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "removed":
            self.removed += 1
        self.processed.append(path)


class SearchIndex:
    """Token -> {document path -> positions} postings plus stored text for snippets.

    Re-adding a document purges all of its previous postings first.
    """

    def __init__(self, stop_words: Iterable[str] = DEFAULT_STOP_WORDS) -> None:
        self.stop_words: FrozenSet[str] = frozenset(stop_words)
        self.postings: Dict[str, Dict[str, Tuple[int, ...]]] = {}
        self.title_postings: Dict[str, Set[str]] = {}
        self.documents: Dict[str, IndexedDocument] = {}
        self._vocabulary: List[str] | None = None

    def __len__(self) -> int:
        return len(self.documents)

    def __contains__(self, path: object) -> bool:
        return path in self.documents

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchIndex):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def copy(self) -> "SearchIndex":
        """Independent index with the same contents; updates to either do not touch the other."""
        clone = SearchIndex(self.stop_words)
        clone.postings = {term: dict(bucket) for term, bucket in self.postings.items()}
        clone.title_postings = {term: set(paths) for term, paths in self.title_postings.items()}
        clone.documents = dict(self.documents)
        return clone

    def analyze_text(self, path: str, title: str, text: str) -> IndexedDocument:
        return IndexedDocument(
            path=path,
            title=title,
            text=text,
            tokens=tuple(tokenize(text, self.stop_words)),
            title_terms=frozenset(token.text for token in tokenize(title, self.stop_words)),
        )

    def analyze(self, document: Document) -> IndexedDocument:
        return self.analyze_text(document.canonical_path, document.title, document.text)

    def insert(self, indexed: IndexedDocument) -> str:
        """Merge a tokenized document, replacing any previous postings for it."""
        status = "updated" if self._purge(indexed.path) else "inserted"
        for term, positions in indexed.postings().items():
            self.postings.setdefault(term, {})[indexed.path] = positions
        for term in indexed.title_terms:
            self.title_postings.setdefault(term, set()).add(indexed.path)
        self.documents[indexed.path] = indexed
        self._vocabulary = None
        return status

    def add(self, document: Document) -> str:
        return self.insert(self.analyze(document))

    def remove(self, path: str) -> bool:
        removed = self._purge(path)
        self._vocabulary = None
        return removed

    def _purge(self, path: str) -> bool:
        existing = self.documents.pop(path, None)
        if existing is None:
            return False
        for term in {token.text for token in existing.tokens}:
            bucket = self.postings.get(term)
            if bucket is None:
                continue
            bucket.pop(path, None)
            if not bucket:
                del self.postings[term]
        for term in existing.title_terms:
            paths = self.title_postings.get(term)
            if paths is None:
                continue
            paths.discard(path)
            if not paths:
                del self.title_postings[term]
        return True

    def vocabulary(self) -> List[str]:
        if self._vocabulary is None:
            self._vocabulary = sorted(set(self.postings) | set(self.title_postings))
        return self._vocabulary

    def expand(self, term: str, *, min_prefix: int = 3) -> List[Tuple[str, float]]:
        """Indexed terms matching ``term``: itself at weight 1.0, longer words it prefixes at 0.5."""
        vocabulary = self.vocabulary()
        matches: List[Tuple[str, float]] = []
        start = bisect_left(vocabulary, term)
        for candidate in vocabulary[start:]:
            if candidate == term:
                matches.append((candidate, 1.0))
            elif len(term) >= min_prefix and candidate.startswith(term):
                matches.append((candidate, 0.5))
            else:
                break
        return matches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents": {
                path: {"title": doc.title, "text": doc.text}
                for path, doc in sorted(self.documents.items())
            },
            "postings": {
                term: {path: list(positions) for path, positions in sorted(bucket.items())}
                for term, bucket in sorted(self.postings.items())
            },
        }


def build_index(
    documents: Iterable[Document],
    *,
    stop_words: Iterable[str] = DEFAULT_STOP_WORDS,
    workers: int | None = None,
) -> SearchIndex:
    """Tokenize documents in parallel and merge them into a fresh index.

    Merging happens on the calling thread, one document at a time, so the
    shared postings are never written concurrently.
    """
    index = SearchIndex(stop_words)
    ordered = sorted(documents, key=lambda doc: doc.canonical_path)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docsite-index") as executor:
        analyzed = list(executor.map(index.analyze, ordered))
    stats = IndexStats()
    for indexed in analyzed:
        stats.increment(index.insert(indexed), indexed.path)
    LOGGER.info(
        "Indexed %d documents, %d distinct tokens", stats.inserted + stats.updated, len(index.postings)
    )
    return index


def update_index(
    index: SearchIndex,
    changed: Iterable[Document] = (),
    removed: Iterable[str] = (),
) -> IndexStats:
    """Apply an incremental change set: purge removed paths, re-tokenize changed ones."""
    stats = IndexStats()
    for path in sorted(removed):
        if index.remove(path):
            stats.increment("removed", path)
    for document in sorted(changed, key=lambda doc: doc.canonical_path):
        stats.increment(index.add(document), document.canonical_path)
    LOGGER.debug(
        "Index update: %d inserted, %d updated, %d removed", stats.inserted, stats.updated, stats.removed
    )
    return stats
