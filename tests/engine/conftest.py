"""Shared fixtures for engine tests."""

from __future__ import annotations

from typing import Dict, List, Sequence

import pytest

from linkcurator.engine.config import load_config
from linkcurator.engine.types import PageView, SearchHit
from linkcurator.engine.vectors import rank_vectors


@pytest.fixture()
def engine_config():
    """Provide a mutable copy of the default engine configuration."""

    return load_config(None)


def make_page(
    page_id: int,
    url: str | None = None,
    *,
    title: str = "",
    h1: str = "",
    meta_description: str = "",
    content: str = "",
    status_code: int | None = 200,
    excluded: bool = False,
) -> PageView:
    return PageView(
        id=page_id,
        url=url or f"https://example.com/page-{page_id}",
        title=title,
        h1=h1,
        meta_description=meta_description,
        content=content,
        status_code=status_code,
        excluded=excluded,
    )


class FakeEmbedder:
    """Return canned vectors keyed by text and count calls."""

    def __init__(self, vectors: Dict[str, List[float]], default: List[float] | None = None) -> None:
        self.vectors = vectors
        self.default = default
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.vectors:
            return self.vectors[text]
        if self.default is None:
            raise KeyError(text)
        return self.default


class MemoryIndex:
    """In-memory vector index over ``(page_id, vector)`` pairs."""

    def __init__(self, vectors: Dict[int, List[float]]) -> None:
        self.vectors = vectors

    def search(self, query_vector: Sequence[float], top_k: int, similarity_floor: float) -> List[SearchHit]:
        return rank_vectors(query_vector, self.vectors.items(), top_k, similarity_floor)


class MemoryLookup:
    def __init__(self, pages: Sequence[PageView]) -> None:
        self.pages = {page.id: page for page in pages}

    def pages_by_id(self, page_ids: Sequence[int]) -> Dict[int, PageView]:
        return {page_id: self.pages[page_id] for page_id in page_ids if page_id in self.pages}
