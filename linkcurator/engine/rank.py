"""Match ranking: turn an anchor phrase into ranked link suggestions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Protocol, Sequence

from ..errors import EmbeddingFailed, UpstreamUnavailable, ValidationError
from .anchors import AnchorExtractor
from .config import EngineConfig, load_config
from .singleflight import SingleFlight
from .text import normalize_phrase
from .types import AnchorMatch, PageView, SearchHit, Suggestion

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class VectorIndex(Protocol):
    def search(self, query_vector: Sequence[float], top_k: int, similarity_floor: float) -> List[SearchHit]:
        ...


class PageLookup(Protocol):
    def pages_by_id(self, page_ids: Sequence[int]) -> Mapping[int, PageView]:
        ...


# Shared across rankers so identical in-flight anchors hit the upstream once.
_EMBED_FLIGHT: SingleFlight[List[float]] = SingleFlight()


class MatchRanker:
    """Embed an anchor, search the index and map hits to suggestions."""

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        lookup: PageLookup,
        config: EngineConfig | None = None,
        flight: SingleFlight[List[float]] | None = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.lookup = lookup
        self.config = config or load_config(None)
        self.flight = flight or _EMBED_FLIGHT

    def suggest(
        self,
        anchor_text: Any,
        max_suggestions: int | None = None,
        similarity_floor: float | None = None,
    ) -> List[Suggestion]:
        """Return suggestions sorted by similarity, best first.

        An empty list means nothing cleared the similarity floor; upstream
        failures are raised, never reported as "no matches".
        """

        anchor = self._validate_anchor(anchor_text)
        top_k = self._top_k(max_suggestions)
        floor = self._floor(similarity_floor)

        key = (self.config.embedding_model, normalize_phrase(anchor))
        vector = self.flight.do(key, lambda: self.embedder.embed(anchor))
        hits = self.index.search(vector, top_k, floor)
        pages = self.lookup.pages_by_id([hit.page_id for hit in hits])

        suggestions: List[Suggestion] = []
        seen: set[int] = set()
        for hit in hits:
            page = pages.get(hit.page_id)
            # The stored vector may predate an exclusion; eligibility is re-checked here.
            if page is None or page.excluded or hit.page_id in seen:
                continue
            seen.add(hit.page_id)
            suggestions.append(
                Suggestion(
                    page_id=page.id,
                    url=page.url,
                    title=page.title or page.h1 or page.url,
                    description=page.meta_description,
                    similarity=round(hit.similarity, 6),
                    rank=len(suggestions) + 1,
                )
            )
        logger.info("Anchor %r matched %s pages (floor=%.2f, top_k=%s)", anchor, len(suggestions), floor, top_k)
        return suggestions

    def analyze(
        self,
        extractor: AnchorExtractor,
        text: Any,
        max_candidates: int | None = None,
        max_suggestions: int | None = None,
        similarity_floor: float | None = None,
    ) -> Dict[str, Any]:
        """Extract anchors from ``text`` and collect suggestions for each one.

        Anchors are matched one after another; anchors without options are
        left out of ``matches``. An anchor whose embedding fails is counted in
        ``failed_anchors`` and the rest are still matched. Rate limits and an
        exhausted quota stop the whole report.
        """

        candidates = extractor.extract(text, max_candidates)
        matches: List[AnchorMatch] = []
        failed: Dict[str, str] = {}
        scores: List[float] = []
        for candidate in candidates:
            try:
                options = self.suggest(candidate, max_suggestions, similarity_floor)
            except (EmbeddingFailed, UpstreamUnavailable) as exc:
                logger.warning("Matching anchor %r failed: %s", candidate, exc.detail)
                failed[candidate] = exc.detail
                continue
            if not options:
                continue
            matches.append(AnchorMatch(anchor=candidate, options=options))
            scores.extend(option.similarity for option in options)

        return {
            "matches": matches,
            "total_candidates": len(candidates),
            "total_matches": len(scores),
            "failed_anchors": failed,
            "average_score": sum(scores) / len(scores) if scores else 0.0,
        }

    def _validate_anchor(self, anchor_text: Any) -> str:
        if not isinstance(anchor_text, str) or not anchor_text.strip():
            raise ValidationError("Invalid anchor text - must be a non-empty string")
        limit = int(self.config.get("max_anchor_chars", 200))
        if len(anchor_text) > limit:
            raise ValidationError(f"Anchor text too long - must be {limit} characters or less")
        return anchor_text.strip()

    def _top_k(self, max_suggestions: int | None) -> int:
        requested = max_suggestions
        if requested is None:
            requested = int(self.config.get("default_suggestions", 5))
        if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            raise ValidationError("maxSuggestions must be a positive integer")
        return min(requested, self.config.max_suggestions)

    def _floor(self, similarity_floor: float | None) -> float:
        if similarity_floor is None:
            return self.config.similarity_floor
        if isinstance(similarity_floor, bool) or not isinstance(similarity_floor, (int, float)):
            raise ValidationError("similarityFloor must be a number")
        if not 0.0 <= float(similarity_floor) <= 1.0:
            raise ValidationError("similarityFloor must be between 0 and 1")
        return float(similarity_floor)
