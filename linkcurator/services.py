"""Service functions for triaging pages and building link suggestions.

These functions sit between the JSON views and the pure engine. They
encapsulate the database side of eligibility changes (exclusion membership
rows, match counts), embedding generation and coverage reporting, and wire
the engine's ranker and extractor to the upstream client and page store.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Sequence

from django.conf import settings
from django.db import DatabaseError, transaction

from .engine.anchors import AnchorExtractor
from .engine.config import EngineConfig, load_config
from .engine.filters import compute_match_count, parse_criteria, preview_matches
from .engine.rank import MatchRanker
from .engine.text import embedding_text, has_embeddable_content
from .engine.types import BulkUpdateResult, Coverage, FilterRule, GenerationResult, PageView, SearchHit
from .engine.vectors import is_valid_vector
from .errors import (
    PartialUpdateError,
    PersistenceError,
    UpstreamError,
    UpstreamQuotaExceeded,
    ValidationError,
)
from .llm import OpenAIClient, get_client
from .models import CrawlSession, FilterBlock, PageEmbedding, PageExclusion, RawPage
from .store import PageStore

logger = logging.getLogger(__name__)

MANUAL_REASON = 'Manual exclusion'


@lru_cache(maxsize=1)
def get_engine_config() -> EngineConfig:
    """Load the engine configuration named by ``settings.LINKCURATOR_CONFIG``."""

    return load_config(getattr(settings, 'LINKCURATOR_CONFIG', None))


# ---------------------------------------------------------------------------
# Filter engine
# ---------------------------------------------------------------------------


def refresh_match_counts(session_ids: Iterable[int], store: PageStore | None = None) -> None:
    """Recompute ``match_count`` for every block of the given sessions."""

    store = store or PageStore()
    for session_id in set(session_ids):
        views = store.read(session_id)
        blocks = list(FilterBlock.objects.filter(session_id=session_id))
        for block in blocks:
            block.match_count = compute_match_count(block.to_rule(), views)
        if blocks:
            FilterBlock.objects.bulk_update(blocks, ['match_count'])


def _session_ids_for(page_ids: Sequence[int]) -> List[int]:
    return list(RawPage.objects.filter(pk__in=list(page_ids)).values_list('session_id', flat=True).distinct())


def apply_exclusions(
    page_ids: Iterable[int],
    *,
    block: FilterBlock | None = None,
    session_id: int | None = None,
    store: PageStore | None = None,
) -> BulkUpdateResult:
    """Exclude ``page_ids`` and record ``block`` (or a manual source) as the reason.

    The batch is all-or-nothing: when any id is unknown the transaction is
    rolled back and :class:`PartialUpdateError` names the failing ids.

    A source is attached to every page it newly excluded and to already
    excluded pages that other sources track. Pages delivered excluded by
    the crawler keep no membership, so retracting a source never
    re-includes them.
    """

    store = store or PageStore()
    requested = list(dict.fromkeys(page_ids))
    if block is not None:
        session_id = block.session_id
    reason = block.name if block is not None else MANUAL_REASON

    try:
        with transaction.atomic():
            result = store.bulk_update(requested, True, session_id=session_id, reason=reason)
            if not result.ok:
                raise PartialUpdateError(
                    f'{len(result.failed_ids)} of {len(requested)} pages could not be excluded',
                    updated_ids=(),
                    failed_ids=result.failed_ids,
                )
            tracked = set(
                PageExclusion.objects.filter(page_id__in=result.unchanged_ids)
                .values_list('page_id', flat=True)
            )
            owners = list(result.updated_ids) + [pk for pk in result.unchanged_ids if pk in tracked]
            existing = set(
                PageExclusion.objects.filter(page_id__in=owners, block=block).values_list('page_id', flat=True)
            )
            PageExclusion.objects.bulk_create(
                [PageExclusion(page_id=pk, block=block) for pk in owners if pk not in existing]
            )
            refresh_match_counts(_session_ids_for(requested), store)
    except DatabaseError as exc:
        raise PersistenceError(f'Failed to record exclusions: {exc}') from exc

    logger.info('Excluded %s pages (%s)', len(result.updated_ids), reason)
    return result


def remove_exclusions(
    page_ids: Iterable[int],
    *,
    session_id: int | None = None,
    store: PageStore | None = None,
) -> BulkUpdateResult:
    """Ensure ``page_ids`` are included, dropping every exclusion source they have."""

    store = store or PageStore()
    requested = list(dict.fromkeys(page_ids))
    try:
        with transaction.atomic():
            result = store.bulk_update(requested, False, session_id=session_id)
            if not result.ok:
                raise PartialUpdateError(
                    f'{len(result.failed_ids)} of {len(requested)} pages could not be included',
                    updated_ids=(),
                    failed_ids=result.failed_ids,
                )
            PageExclusion.objects.filter(page_id__in=requested).delete()
            refresh_match_counts(_session_ids_for(requested), store)
    except DatabaseError as exc:
        raise PersistenceError(f'Failed to remove exclusions: {exc}') from exc

    logger.info('Re-included %s pages', len(result.updated_ids))
    return result


def create_block(
    session: CrawlSession,
    name: str,
    criteria: Any,
    *,
    description: str = '',
    color: str = 'red',
    store: PageStore | None = None,
) -> tuple[FilterBlock, BulkUpdateResult]:
    """Store a filter block and exclude every eligible page it matches."""

    store = store or PageStore()
    name = (name or '').strip()
    if not name:
        raise ValidationError('Block name is required')
    rule = FilterRule(name=name, criteria=parse_criteria(criteria), description=description, color=color)

    with transaction.atomic():
        block = FilterBlock.objects.create(
            session=session,
            name=name,
            description=description,
            color=color,
            criteria=[
                {'field': c.field, 'operator': c.operator, 'value': c.value, 'label': c.label}
                for c in rule.criteria
            ],
        )
        matched = [page.id for page in preview_matches(rule, store.read(session.pk))]
        if matched:
            result = apply_exclusions(matched, block=block, store=store)
        else:
            result = BulkUpdateResult()
            refresh_match_counts([session.pk], store)

    block.refresh_from_db()
    logger.info('Created filter block %r in session %s: %s pages excluded', name, session.pk, len(result.updated_ids))
    return block, result


def remove_block(block: FilterBlock, store: PageStore | None = None) -> BulkUpdateResult:
    """Delete ``block`` and re-include the pages no other source still excludes."""

    store = store or PageStore()
    session_id = block.session_id
    with transaction.atomic():
        owned = list(block.exclusions.values_list('page_id', flat=True))
        block.delete()
        still_excluded = set(PageExclusion.objects.filter(page_id__in=owned).values_list('page_id', flat=True))
        released = [pk for pk in owned if pk not in still_excluded]
        result = store.bulk_update(released, False, session_id=session_id) if released else BulkUpdateResult()
        refresh_match_counts([session_id], store)

    logger.info(
        'Removed filter block %s: %s pages re-included, %s still excluded by other sources',
        block.name,
        len(result.updated_ids),
        len(still_excluded),
    )
    return result


def preview_block(session: CrawlSession, criteria: Any, store: PageStore | None = None) -> Dict[str, Any]:
    """Report which pages a prospective block would match, without writing."""

    store = store or PageStore()
    rule = FilterRule(name='preview', criteria=parse_criteria(criteria))
    views = store.read(session.pk)
    matched = preview_matches(rule, views)
    return {
        'matchCount': compute_match_count(rule, views),
        'totalMatches': len(matched),
        'pageIds': [page.id for page in matched],
    }


class ServiceTriageBackend:
    """Adapter exposing the service layer to :class:`~linkcurator.engine.triage.TriageView`."""

    def __init__(self, store: PageStore | None = None) -> None:
        self.store = store or PageStore()
        self._session_id: int | None = None

    def read(self, session_id: int) -> List[PageView]:
        self._session_id = session_id
        return self.store.read(session_id)

    def bulk_update(self, page_ids: Sequence[int], excluded: bool) -> BulkUpdateResult:
        if excluded:
            return apply_exclusions(page_ids, session_id=self._session_id, store=self.store)
        return remove_exclusions(page_ids, session_id=self._session_id, store=self.store)


# ---------------------------------------------------------------------------
# Embedding index
# ---------------------------------------------------------------------------


class OpenAIEmbedder:
    """Embed text with the configured model through :class:`OpenAIClient`."""

    def __init__(self, client: OpenAIClient, config: EngineConfig) -> None:
        self.client = client
        self.config = config

    def embed(self, text: str) -> List[float]:
        return self.client.embed(
            text,
            model=self.config.embedding_model,
            dimensions=self.config.embedding_dimensions,
        )


class EmbeddingIndex:
    """Generate, inspect and search page vectors.

    ``session_id`` scopes every operation to one crawl session; ``None``
    covers all sessions.
    """

    def __init__(
        self,
        embedder: Any = None,
        *,
        session_id: int | None = None,
        store: PageStore | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or get_engine_config()
        self.embedder = embedder
        self.session_id = session_id
        self.store = store or PageStore()

    def _pages(self):
        queryset = RawPage.objects.all()
        if self.session_id is not None:
            queryset = queryset.filter(session_id=self.session_id)
        return queryset

    def _embeddings(self):
        queryset = PageEmbedding.objects.all()
        if self.session_id is not None:
            queryset = queryset.filter(page__session_id=self.session_id)
        return queryset

    def _is_current(self, model: str, dimensions: int) -> bool:
        return model == self.config.embedding_model and dimensions == self.config.embedding_dimensions

    def generate(self, pages: Iterable[RawPage] | None = None) -> GenerationResult:
        """Embed every eligible page that has no current vector.

        Per-page upstream failures are counted and the batch continues;
        an exhausted quota stops it. Vectors written before a stop are kept.
        """

        if self.embedder is None:
            raise ValidationError('No embedder configured')
        pages = list(self._pages() if pages is None else pages)
        current = {
            page_id: self._is_current(model, dimensions)
            for page_id, model, dimensions in PageEmbedding.objects.filter(
                page_id__in=[page.pk for page in pages]
            ).values_list('page_id', 'model', 'dimensions')
        }
        weights = self.config.get('embedding_fields')

        result = GenerationResult()
        for page in pages:
            view = page.to_view()
            if view.excluded or current.get(view.id) or not has_embeddable_content(view):
                result.skipped += 1
                continue
            try:
                vector = self.embedder.embed(embedding_text(view, weights))
                self.store.write_embedding(view.id, vector, self.config.embedding_model)
            except UpstreamQuotaExceeded as exc:
                result.failed += 1
                result.failures[view.id] = exc.detail
                result.stopped_reason = 'quota_exceeded'
                logger.error('Embedding quota exhausted after %s pages; stopping batch', result.generated)
                break
            except UpstreamError as exc:
                result.failed += 1
                result.failures[view.id] = exc.detail
                logger.warning('Embedding page %s (%s) failed: %s', view.id, view.url, exc.detail)
                continue
            result.generated += 1

        logger.info(
            'Embedding run: %s generated, %s failed, %s skipped',
            result.generated,
            result.failed,
            result.skipped,
        )
        return result

    def coverage(self) -> Coverage:
        """Report how much of the eligible corpus has usable vectors."""

        eligible_ids = set(self._pages().filter(excluded=False).values_list('pk', flat=True))
        rows = list(self._embeddings().values_list('page_id', 'model', 'dimensions', 'page__excluded', 'vector'))

        embedded: set[int] = set()
        with_vectors = 0
        wrong_dimensions = 0
        other_model = 0
        orphaned = 0
        for page_id, model, dimensions, excluded, vector in rows:
            if excluded:
                orphaned += 1
                continue
            embedded.add(page_id)
            if not is_valid_vector(vector, self.config.embedding_dimensions) or dimensions != self.config.embedding_dimensions:
                wrong_dimensions += 1
            elif model != self.config.embedding_model:
                other_model += 1
            elif page_id in eligible_ids:
                with_vectors += 1

        issues: List[str] = []
        missing = len(eligible_ids - embedded)
        if missing:
            issues.append(f'{missing} eligible pages have no embedding')
        if wrong_dimensions:
            issues.append(
                f'{wrong_dimensions} embeddings do not have {self.config.embedding_dimensions} dimensions'
            )
        if other_model:
            issues.append(f'{other_model} embeddings were generated with a model other than {self.config.embedding_model}')
        if orphaned:
            issues.append(f'{orphaned} embeddings belong to pages that are now excluded')
        return Coverage(total_eligible_pages=len(eligible_ids), pages_with_embedding=with_vectors, issues=issues)

    def search(self, query_vector: Sequence[float], top_k: int, similarity_floor: float) -> List[SearchHit]:
        return self.store.nearest(query_vector, top_k, similarity_floor, session_id=self.session_id)

    def reset(self) -> int:
        """Delete vectors in scope and return how many were removed."""

        try:
            deleted, _ = self._embeddings().delete()
        except DatabaseError as exc:
            raise PersistenceError(f'Failed to reset embeddings: {exc}') from exc
        logger.info('Deleted %s embeddings (session=%s)', deleted, self.session_id)
        return deleted

    def diagnose(self, examples: int = 5) -> Dict[str, Any]:
        """Explain why eligible pages are missing vectors."""

        missing = [page.to_view() for page in self._pages().filter(excluded=False, embedding__isnull=True)]
        embeddable = [view for view in missing if has_embeddable_content(view)]
        unembeddable = [view for view in missing if not has_embeddable_content(view)]
        return {
            'pagesWithoutEmbeddings': len(missing),
            'embeddable': len(embeddable),
            'unembeddable': len(unembeddable),
            'embeddableExamples': [{'id': view.id, 'url': view.url, 'title': view.title} for view in embeddable[:examples]],
            'unembeddableExamples': [{'id': view.id, 'url': view.url} for view in unembeddable[:examples]],
        }


# ---------------------------------------------------------------------------
# Factories used by the views
# ---------------------------------------------------------------------------


def _client(config: EngineConfig) -> OpenAIClient:
    return get_client(timeout=float(config.get('request_timeout', 20.0)))


def get_embedder() -> OpenAIEmbedder:
    config = get_engine_config()
    return OpenAIEmbedder(_client(config), config)


def get_index(session_id: int | None = None) -> EmbeddingIndex:
    return EmbeddingIndex(get_embedder(), session_id=session_id)


def get_extractor() -> AnchorExtractor:
    config = get_engine_config()
    return AnchorExtractor(_client(config), config)


def get_ranker(session_id: int | None = None) -> MatchRanker:
    index = get_index(session_id)
    return MatchRanker(index.embedder, index, index.store, get_engine_config())
