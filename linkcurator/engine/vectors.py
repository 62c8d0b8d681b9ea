"""Dense vector helpers for the embedding index."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .types import SearchHit

# Hard server-side cap on nearest-neighbour results.
MAX_TOP_K = 10


def normalize(vector: Sequence[float]) -> np.ndarray:
    """Return a unit-length float32 copy of ``vector`` (zeros stay zeros)."""

    arr = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr
    return arr / norm


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """Cosine similarity between two vectors of the same dimensionality."""

    a = normalize(vector_a)
    b = normalize(vector_b)
    if a.shape != b.shape:
        raise ValueError(f"dimension mismatch: {a.shape[0]} != {b.shape[0]}")
    return float(np.dot(a, b))


def is_valid_vector(vector: object, dimensions: int | None = None) -> bool:
    """Return True for a non-empty list of finite numbers of the expected size."""

    if not isinstance(vector, (list, tuple)) or not vector:
        return False
    if dimensions and len(vector) != dimensions:
        return False
    if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in vector):
        return False
    return bool(np.all(np.isfinite(np.asarray(vector, dtype=np.float64))))


def rank_vectors(
    query_vector: Sequence[float],
    candidates: Iterable[Tuple[int, Sequence[float]]],
    top_k: int,
    similarity_floor: float,
) -> List[SearchHit]:
    """Return the ``top_k`` most similar candidates at or above the floor.

    Candidates whose dimensionality differs from the query are ignored.
    Ordering is by similarity descending, then page id ascending, and
    ``top_k`` never exceeds :data:`MAX_TOP_K`.
    """

    limit = max(0, min(int(top_k), MAX_TOP_K))
    if limit == 0:
        return []

    query = normalize(query_vector)
    ids: List[int] = []
    rows: List[np.ndarray] = []
    for page_id, vector in candidates:
        if len(vector) != query.shape[0]:
            continue
        ids.append(page_id)
        rows.append(normalize(vector))
    if not rows:
        return []

    matrix = np.stack(rows, axis=0)
    scores = matrix @ query
    # Clamp float noise so an identical vector scores exactly within [-1, 1].
    scores = np.clip(scores, -1.0, 1.0)

    hits = [
        SearchHit(page_id=page_id, similarity=float(score))
        for page_id, score in zip(ids, scores)
        if float(score) >= similarity_floor
    ]
    hits.sort(key=lambda hit: (-hit.similarity, hit.page_id))
    return hits[:limit]
