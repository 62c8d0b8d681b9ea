"""Optimistic local view of a crawl session's page eligibility.

A :class:`TriageView` keeps a shadow copy of the pages of one session. Every
mutation is shown immediately, persisted as one batch through the backend,
and then either replaced wholesale by the backend's authoritative read or
rolled back to the exact pre-mutation snapshot. The view is never patched
piecemeal.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Protocol, Sequence, Set

from ..errors import LinkCuratorError, PartialUpdateError
from .types import BulkUpdateResult, EligibilityChangeSet, PageView

logger = logging.getLogger(__name__)


class TriageBackend(Protocol):
    """Store of record for page eligibility."""

    def read(self, session_id: int) -> List[PageView]:
        ...

    def bulk_update(self, page_ids: Sequence[int], excluded: bool) -> BulkUpdateResult:
        ...


class TriageView:
    """Shadow copy of a session's pages with optimistic eligibility edits."""

    def __init__(self, backend: TriageBackend, session_id: int) -> None:
        self.backend = backend
        self.session_id = session_id
        self.pages: List[PageView] = []
        self.error: str | None = None
        self.pending = False
        self._selected: Set[int] = set()
        self.highlighted: List[int] = []

    # Reads -----------------------------------------------------------------

    def load(self) -> List[PageView]:
        """Replace the view with the backend's current pages."""

        self.pages = list(self.backend.read(self.session_id))
        self.error = None
        return self.pages

    @property
    def eligible(self) -> List[PageView]:
        return [page for page in self.pages if not page.excluded]

    @property
    def excluded(self) -> List[PageView]:
        return [page for page in self.pages if page.excluded]

    # Mutations -------------------------------------------------------------

    def apply_exclusions(self, page_ids: Iterable[int]) -> BulkUpdateResult:
        """Exclude the given pages; pages already excluded are left alone."""

        return self._mutate(page_ids, excluded=True)

    def remove_exclusions(self, page_ids: Iterable[int]) -> BulkUpdateResult:
        """Ensure the given pages are included; included pages are no-ops."""

        return self._mutate(page_ids, excluded=False)

    def _mutate(self, page_ids: Iterable[int], *, excluded: bool) -> BulkUpdateResult:
        requested = tuple(dict.fromkeys(page_ids))
        if not requested:
            return BulkUpdateResult()

        # The local copy may be stale: every requested id goes to the backend.
        snapshot = list(self.pages)
        change_set = EligibilityChangeSet(page_ids=requested, excluded=excluded)
        self.pages = change_set.apply(snapshot)
        self.pending = True
        try:
            result = self.backend.bulk_update(change_set.page_ids, excluded)
            if not result.ok:
                raise PartialUpdateError(
                    f"Failed to update {len(result.failed_ids)} of {len(requested)} pages",
                    updated_ids=result.updated_ids,
                    failed_ids=result.failed_ids,
                )
            self.pages = list(self.backend.read(self.session_id))
        except LinkCuratorError as exc:
            self.pages = snapshot
            self.error = exc.detail
            logger.warning("Rolled back eligibility change for session %s: %s", self.session_id, exc.detail)
            raise
        finally:
            self.pending = False

        self.error = None
        return result

    # Selection -------------------------------------------------------------

    def toggle_selection(self, page_id: int) -> bool:
        """Toggle ``page_id`` in the selection and return its new state."""

        if page_id in self._selected:
            self._selected.discard(page_id)
            return False
        self._selected.add(page_id)
        return True

    def clear_selection(self) -> None:
        self._selected = set()

    @property
    def selected_ids(self) -> Set[int]:
        return set(self._selected)

    def set_highlighted(self, page_ids: Iterable[int]) -> None:
        self.highlighted = list(page_ids)
