"""Page store: the persistence boundary for pages, eligibility and vectors.

Eligibility is only ever written through :meth:`PageStore.bulk_update`,
which the filter services call; nothing else in the app assigns
``RawPage.excluded``.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from django.db import DatabaseError, transaction
from django.utils import timezone

from .engine.types import BulkUpdateResult, PageView, SearchHit
from .engine.vectors import rank_vectors
from .errors import NotFoundError, PersistenceError
from .models import CrawlSession, PageEmbedding, RawPage

logger = logging.getLogger(__name__)


class PageStore:
    """Django ORM implementation of the persistence layer."""

    # Reads -----------------------------------------------------------------

    def get_session(self, session_id: int) -> CrawlSession:
        try:
            return CrawlSession.objects.get(pk=session_id)
        except (CrawlSession.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f'Crawl session {session_id} does not exist') from None

    def list(self, session_id: int) -> List[RawPage]:
        """Return the session's pages, most recently crawled first."""

        session = self.get_session(session_id)
        try:
            return list(session.pages.order_by('-crawled_at', '-id'))
        except DatabaseError as exc:
            raise PersistenceError(f'Failed to fetch raw pages: {exc}') from exc

    def get(self, page_id: int) -> RawPage:
        try:
            return RawPage.objects.get(pk=page_id)
        except (RawPage.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f'Page {page_id} does not exist') from None

    def read(self, session_id: int) -> List[PageView]:
        return [page.to_view() for page in self.list(session_id)]

    def pages_by_id(self, page_ids: Sequence[int]) -> Dict[int, PageView]:
        if not page_ids:
            return {}
        try:
            return {page.pk: page.to_view() for page in RawPage.objects.filter(pk__in=list(page_ids))}
        except DatabaseError as exc:
            raise PersistenceError(f'Failed to fetch pages: {exc}') from exc

    # Eligibility -----------------------------------------------------------

    def bulk_update(
        self,
        page_ids: Iterable[int],
        excluded: bool,
        *,
        session_id: int | None = None,
        reason: str = '',
    ) -> BulkUpdateResult:
        """Set ``excluded`` for all ids in one transaction.

        Ids that do not exist (or belong to another session) are reported in
        ``failed_ids``; pages already at the target value are reported in
        ``unchanged_ids``.
        """

        requested = list(dict.fromkeys(page_ids))
        try:
            with transaction.atomic():
                queryset = RawPage.objects.select_for_update().filter(pk__in=requested)
                if session_id is not None:
                    queryset = queryset.filter(session_id=session_id)
                current = dict(queryset.values_list('pk', 'excluded'))
                to_change = [pk for pk in requested if pk in current and current[pk] != excluded]
                if to_change:
                    RawPage.objects.filter(pk__in=to_change).update(
                        excluded=excluded,
                        filtered_reason=reason if excluded else '',
                    )
        except DatabaseError as exc:
            logger.error('Bulk update of %s pages failed: %s', len(requested), exc)
            raise PersistenceError(f'Failed to update page exclusions: {exc}') from exc

        failed = tuple(pk for pk in requested if pk not in current)
        unchanged = tuple(pk for pk in requested if pk in current and current[pk] == excluded)
        logger.info(
            'Bulk update excluded=%s: %s updated, %s unchanged, %s failed',
            excluded,
            len(to_change),
            len(unchanged),
            len(failed),
        )
        return BulkUpdateResult(updated_ids=tuple(to_change), failed_ids=failed, unchanged_ids=unchanged)

    # Embeddings ------------------------------------------------------------

    def write_embedding(self, page_id: int, vector: Sequence[float], model: str) -> PageEmbedding:
        try:
            embedding, _ = PageEmbedding.objects.update_or_create(
                page_id=page_id,
                defaults={
                    'vector': list(vector),
                    'dimensions': len(vector),
                    'model': model,
                    'generated_at': timezone.now(),
                },
            )
        except DatabaseError as exc:
            raise PersistenceError(f'Failed to store embedding for page {page_id}: {exc}') from exc
        return embedding

    def embedding_rows(self, session_id: int | None = None) -> Iterator[Tuple[int, List[float]]]:
        """Yield ``(page_id, vector)`` for pages that are currently eligible."""

        queryset = PageEmbedding.objects.filter(page__excluded=False)
        if session_id is not None:
            queryset = queryset.filter(page__session_id=session_id)
        try:
            rows = list(queryset.values_list('page_id', 'vector'))
        except DatabaseError as exc:
            raise PersistenceError(f'Failed to read embeddings: {exc}') from exc
        for page_id, vector in rows:
            if isinstance(vector, list) and vector:
                yield page_id, vector

    def nearest(
        self,
        vector: Sequence[float],
        top_k: int,
        floor: float,
        *,
        session_id: int | None = None,
    ) -> List[SearchHit]:
        return rank_vectors(vector, self.embedding_rows(session_id), top_k, floor)
