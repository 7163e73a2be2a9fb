"""Text helpers for slugs, titles and snippets."""

from __future__ import annotations

import re
from typing import Iterable

_PUNCTUATION_RE = re.compile(r"[^\w\s-]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_STEM_SEPARATOR_RE = re.compile(r"[-_\s]+")


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def slugify(text: str) -> str:
    """Turn heading text into an anchor slug.

    Lowercases, strips punctuation and replaces whitespace runs with a hyphen.
    """
    slug = _PUNCTUATION_RE.sub("", text.strip().lower())
    slug = _WHITESPACE_RE.sub("-", slug.strip())
    return slug or "section"


def unique_slug(text: str, seen: dict[str, int]) -> str:
    """Return a slug for ``text`` that is unique among those recorded in ``seen``.

    Repeated headings get ``-1``, ``-2``... appended in order of appearance.
    """
    base = slugify(text)
    slug = base
    count = seen.get(base, 0)
    while slug in seen:
        count += 1
        slug = f"{base}-{count}"
    seen[base] = count
    seen.setdefault(slug, 0)
    return slug


def humanize_stem(stem: str) -> str:
    """``getting-started`` -> ``Getting Started``."""
    words = [word for word in _STEM_SEPARATOR_RE.split(stem.strip()) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words) or stem


def collapse_spaces(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()
