"""Shared text utilities for the link curator engine."""

from __future__ import annotations

import re
from typing import Dict, List, Mapping

from .types import PageView

_SPACE_RE = re.compile(r"\s+")

_DEFAULT_WEIGHTS: Dict[str, int] = {"title": 2, "h1": 2, "meta_description": 1}


def collapse_whitespace(text: str) -> str:
    """Return ``text`` stripped, with internal whitespace runs collapsed."""

    return _SPACE_RE.sub(" ", text or "").strip()


def normalize_phrase(text: str) -> str:
    """Lowercase, single-space version of ``text`` used as a lookup key."""

    return collapse_whitespace(text).lower()


def embedding_text(page: PageView, weights: Mapping[str, int] | None = None) -> str:
    """Compose the text embedded for a page.

    Fields are repeated according to ``weights`` so the title dominates the
    vector. The H1 is skipped when it duplicates the title.
    """

    weights = weights or _DEFAULT_WEIGHTS
    title = collapse_whitespace(page.title)
    h1 = collapse_whitespace(page.h1)
    meta = collapse_whitespace(page.meta_description)

    parts: List[str] = []
    if title:
        parts.extend([title] * int(weights.get("title", 1)))
    if h1 and h1 != title:
        parts.extend([h1] * int(weights.get("h1", 1)))
    if meta:
        parts.extend([meta] * int(weights.get("meta_description", 1)))
    return " ".join(parts)


def has_embeddable_content(page: PageView) -> bool:
    return any(collapse_whitespace(value) for value in (page.title, page.h1, page.meta_description))
