"""Tests for ranked search."""

from __future__ import annotations

import pytest

from docsite.index.indexer import SearchIndex
from docsite.index.search import Searcher, make_snippet, search


@pytest.fixture
def index() -> SearchIndex:
    index = SearchIndex()
    for path, title, text in [
        ("guide/docker", "Installing Docker", "Installing Docker\nRun the installer and start the daemon."),
        ("guide/podman", "Podman", "Install podman instead of docker if you prefer."),
        ("faq", "FAQ", "Questions about docker networking."),
    ]:
        index.insert(index.analyze_text(path, title, text))
    return index


class TestSearcher:
    """Query evaluation and ranking."""

    def test_title_match_ranks_first(self, index: SearchIndex) -> None:
        results = Searcher(index).search("install docker")

        assert [result.document_path for result in results] == ["guide/docker", "guide/podman"]
        assert results[0].title == "Installing Docker"
        assert results[0].score > results[1].score

    def test_and_mode_requires_every_term(self, index: SearchIndex) -> None:
        results = Searcher(index).search("docker networking")
        assert [result.document_path for result in results] == ["faq"]

    def test_or_mode_accepts_any_term(self, index: SearchIndex) -> None:
        results = Searcher(index, mode="or").search("podman networking")
        assert sorted(result.document_path for result in results) == ["faq", "guide/podman"]

    def test_mode_override_per_query(self, index: SearchIndex) -> None:
        searcher = Searcher(index)
        assert searcher.search("podman networking") == []
        assert len(searcher.search("podman networking", mode="or")) == 2

    def test_limit(self, index: SearchIndex) -> None:
        assert len(Searcher(index).search("docker", limit=1)) == 1
        assert Searcher(index).search("docker", limit=0) == []

    def test_stop_words_only_query(self, index: SearchIndex) -> None:
        assert Searcher(index).search("the and of") == []

    def test_unknown_term(self, index: SearchIndex) -> None:
        assert Searcher(index).search("kubernetes") == []

    def test_equal_scores_fall_back_to_path_order(self) -> None:
        index = SearchIndex()
        for path in ("zeta", "alpha", "mid"):
            index.insert(index.analyze_text(path, path.title(), "identical body text"))

        results = Searcher(index).search("identical")
        assert [result.document_path for result in results] == ["alpha", "mid", "zeta"]

    def test_title_boost_can_be_disabled(self, index: SearchIndex) -> None:
        boosted = Searcher(index).search("docker", mode="or")
        flat = Searcher(index, title_boost=0.0).search("docker", mode="or")
        assert boosted[0].score > flat[0].score

    def test_invalid_mode(self, index: SearchIndex) -> None:
        with pytest.raises(ValueError):
            Searcher(index, mode="xor")
        with pytest.raises(ValueError):
            Searcher(index).search("docker", mode="near")


class TestSnippet:
    def test_window_around_match(self) -> None:
        index = SearchIndex()
        words = [f"word{i}" for i in range(60)]
        words[30] = "needle"
        indexed = index.analyze_text("page", "Page", " ".join(words))

        snippet = make_snippet(indexed, ["needle"], window=5)

        assert snippet == "… needle word31 word32 word33 word34 …"

    def test_prefers_span_with_most_terms(self) -> None:
        index = SearchIndex()
        indexed = index.analyze_text("page", "Page", "alpha one two three four five six alpha beta")

        snippet = make_snippet(indexed, ["alpha", "beta"], window=3)

        assert snippet == "… alpha beta"

    def test_empty_document(self) -> None:
        index = SearchIndex()
        indexed = index.analyze_text("page", "Page", "")
        assert make_snippet(indexed, ["x"]) == ""


def test_search_returns_plain_dicts(index: SearchIndex) -> None:
    results = search(index, "podman", limit=5)
    assert results == [
        {
            "document_path": "guide/podman",
            "title": "Podman",
            "score": pytest.approx(6.0),
            "snippet": results[0]["snippet"],
        }
    ]
