"""Typed data structures used by the link curator engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class PageView:
    """Normalized, immutable snapshot of one crawled page."""

    id: int
    url: str
    title: str = ""
    h1: str = ""
    meta_description: str = ""
    content: str = ""
    status_code: Optional[int] = None
    excluded: bool = False
    crawled_at: Optional[str] = None


@dataclass(frozen=True)
class Criterion:
    """A single filter condition on one page field."""

    field: str
    operator: str
    value: str = ""
    label: str = ""


@dataclass(frozen=True)
class FilterRule:
    """A set of criteria; a page matches when any criterion matches."""

    name: str
    criteria: Tuple[Criterion, ...]
    description: str = ""
    color: str = "red"


@dataclass(frozen=True)
class EligibilityChangeSet:
    """Request to set ``excluded`` to one target value for a set of pages."""

    page_ids: Tuple[int, ...]
    excluded: bool

    def apply(self, pages: Sequence[PageView]) -> List[PageView]:
        """Return a new page list with the change applied.

        Applying the same change set twice yields the same pages as applying
        it once.
        """

        targets = set(self.page_ids)
        result: List[PageView] = []
        for page in pages:
            if page.id in targets and page.excluded != self.excluded:
                result.append(replace(page, excluded=self.excluded))
            else:
                result.append(page)
        return result


@dataclass(frozen=True)
class BulkUpdateResult:
    """Outcome of a single bulk eligibility write."""

    updated_ids: Tuple[int, ...] = ()
    failed_ids: Tuple[int, ...] = ()
    unchanged_ids: Tuple[int, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed_ids


@dataclass(frozen=True)
class SearchHit:
    """A nearest-neighbour match returned by the embedding index."""

    page_id: int
    similarity: float


@dataclass(frozen=True)
class Suggestion:
    """One ranked link target for an anchor phrase."""

    page_id: int
    url: str
    title: str
    similarity: float
    rank: int
    description: str = ""


@dataclass(frozen=True)
class AnchorMatch:
    """Suggestions found for one extracted anchor phrase."""

    anchor: str
    options: List[Suggestion] = field(default_factory=list)


@dataclass(frozen=True)
class Coverage:
    """Embedding coverage of the eligible corpus."""

    total_eligible_pages: int
    pages_with_embedding: int
    issues: List[str] = field(default_factory=list)


@dataclass
class GenerationResult:
    """Counts reported by a batch embedding run."""

    generated: int = 0
    failed: int = 0
    skipped: int = 0
    failures: Dict[int, str] = field(default_factory=dict)
    stopped_reason: Optional[str] = None

