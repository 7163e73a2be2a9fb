"""Ranked queries over the inverted index."""

from __future__ import annotations

from typing import Dict, List, Sequence, Set, Tuple

import numpy as np

from docsite.index.indexer import IndexedDocument, SearchIndex, tokenize
from docsite.models import SearchResult

SEARCH_MODES = ("and", "or")


class Searcher:
    """High-level API to query a :class:`SearchIndex`."""

    def __init__(
        self,
        index: SearchIndex,
        *,
        mode: str = "and",
        title_boost: float = 2.0,
        snippet_window: int = 24,
    ) -> None:
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode {mode!r}")
        self.index = index
        self.mode = mode
        self.title_boost = title_boost
        self.snippet_window = snippet_window

    def query_terms(self, text: str) -> List[str]:
        terms: List[str] = []
        for token in tokenize(text, self.index.stop_words):
            if token.text not in terms:
                terms.append(token.text)
        return terms

    def search(self, query: str, *, limit: int = 10, mode: str | None = None) -> List[SearchResult]:
        mode = mode or self.mode
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode {mode!r}")
        terms = self.query_terms(query)
        if not terms or limit <= 0:
            return []

        expansions = [self.index.expand(term) for term in terms]
        matched: List[Set[str]] = []
        for expansion in expansions:
            paths: Set[str] = set()
            for token, _ in expansion:
                paths.update(self.index.postings.get(token, {}))
                paths.update(self.index.title_postings.get(token, ()))
            matched.append(paths)

        if mode == "and":
            candidates = set.intersection(*matched)
        else:
            candidates = set.union(*matched)
        if not candidates:
            return []

        paths = sorted(candidates)
        position = {path: i for i, path in enumerate(paths)}
        frequency = np.zeros(len(paths), dtype="float64")
        title_hits = np.zeros(len(paths), dtype="float64")

        for expansion in expansions:
            in_title = np.zeros(len(paths), dtype="float64")
            for token, weight in expansion:
                for path, positions in self.index.postings.get(token, {}).items():
                    if path in position:
                        frequency[position[path]] += weight * len(positions)
                for path in self.index.title_postings.get(token, ()):
                    if path in position:
                        in_title[position[path]] = 1.0
            title_hits += in_title

        boost = 1.0 + self.title_boost * (title_hits / len(terms))
        scores = (frequency + title_hits) * boost

        # lexsort: last key is primary; ties fall back to path order.
        order = np.lexsort((np.arange(len(paths)), -scores))[:limit]
        results: List[SearchResult] = []
        for i in order:
            document = self.index.documents[paths[i]]
            results.append(
                SearchResult(
                    document_path=document.path,
                    title=document.title,
                    score=float(scores[i]),
                    snippet=make_snippet(document, terms, window=self.snippet_window),
                )
            )
        return results


def _matches(word: str, term: str) -> bool:
    return word == term or (len(term) >= 3 and word.startswith(term))


def make_snippet(document: IndexedDocument, terms: Sequence[str], *, window: int = 24) -> str:
    """Text of the first ``window``-word span covering the most distinct query terms."""
    tokens = document.tokens
    if not tokens:
        return document.text[:200]

    best: Tuple[int, int] = (-1, 0)
    for i, token in enumerate(tokens):
        if not any(_matches(token.text, term) for term in terms):
            continue
        found: Set[str] = set()
        last = token.position + window
        for other in tokens[i:]:
            if other.position >= last:
                break
            found.update(term for term in terms if _matches(other.text, term))
        if len(found) > best[0]:
            best = (len(found), i)
            if len(found) == len(terms):
                break

    start_index = best[1] if best[0] >= 0 else 0
    first = tokens[start_index]
    covered: List[int] = [
        other.end for other in tokens[start_index:] if other.position < first.position + window
    ]
    start, end = first.start, max(covered)
    snippet = " ".join(document.text[start:end].split())
    prefix = "… " if start > 0 else ""
    suffix = " …" if end < len(document.text.rstrip()) else ""
    return f"{prefix}{snippet}{suffix}"


def search(index: SearchIndex, text: str, limit: int = 10, **options) -> List[Dict[str, object]]:
    """Query ``index`` and return plain dictionaries ready for serialization."""
    return [result.to_dict() for result in Searcher(index, **options).search(text, limit=limit)]
