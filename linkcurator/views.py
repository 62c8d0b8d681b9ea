"""JSON views for the linkcurator app.

Each view decodes the request body, validates it with a form from
:mod:`linkcurator.forms` and delegates to :mod:`linkcurator.services`.
Domain errors are rendered as ``{"error": kind, "detail": ...}`` with the
status code the error carries.
"""

from __future__ import annotations

import functools
import json
import logging
import math
from typing import Any, Callable, Dict

from django import forms
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import services
from .engine.filters import PRESETS
from .engine.types import AnchorMatch, BulkUpdateResult, Suggestion
from .errors import LinkCuratorError, NotFoundError, ValidationError
from .forms import (
    AnalyzeForm,
    CriteriaForm,
    ExtractAnchorsForm,
    FilterBlockForm,
    PageIdsForm,
    PageUpdatesForm,
    SuggestionForm,
)
from .models import FilterBlock, RawPage
from .store import PageStore

logger = logging.getLogger(__name__)


def api_view(*methods: str) -> Callable:
    """Restrict ``methods`` and render :class:`LinkCuratorError` as JSON."""

    def decorator(view: Callable[..., HttpResponse]) -> Callable[..., HttpResponse]:
        @csrf_exempt
        @require_http_methods(list(methods))
        @functools.wraps(view)
        def wrapper(request: HttpRequest, *args: Any, **kwargs: Any) -> HttpResponse:
            try:
                return view(request, *args, **kwargs)
            except LinkCuratorError as exc:
                if exc.status >= 500:
                    logger.error('%s %s failed: %s', request.method, request.path, exc.detail)
                else:
                    logger.info('%s %s rejected (%s): %s', request.method, request.path, exc.kind, exc.detail)
                response = JsonResponse(exc.as_dict(), status=exc.status)
                if getattr(exc, 'retry_after', None) is not None:
                    response['Retry-After'] = str(math.ceil(exc.retry_after))
                return response

        return wrapper

    return decorator


def _json_body(request: HttpRequest) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body)
    except ValueError:
        raise ValidationError('Request body is not valid JSON') from None
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def _validated(form: forms.Form) -> Dict[str, Any]:
    if not form.is_valid():
        errors = form.errors.get_json_data()
        first = next(iter(errors.values()))[0]['message']
        raise ValidationError(first)
    return form.cleaned_data


def _optional_int(request: HttpRequest, name: str) -> int | None:
    value = request.GET.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer') from None


def serialize_page(page: RawPage) -> Dict[str, Any]:
    return {
        'id': page.pk,
        'sessionId': page.session_id,
        'url': page.url,
        'title': page.title,
        'h1': page.h1,
        'metaDescription': page.meta_description,
        'contentLength': len(page.content or ''),
        'statusCode': page.status_code,
        'excluded': page.excluded,
        'filteredReason': page.filtered_reason or None,
        'crawledAt': page.crawled_at.isoformat() if page.crawled_at else None,
    }


def serialize_block(block: FilterBlock) -> Dict[str, Any]:
    return {
        'id': block.pk,
        'sessionId': block.session_id,
        'name': block.name,
        'description': block.description,
        'color': block.color,
        'criteria': block.criteria,
        'matchCount': block.match_count,
        'createdAt': block.created_at.isoformat() if block.created_at else None,
    }


def serialize_result(result: BulkUpdateResult, excluded: bool) -> Dict[str, Any]:
    return {
        'excluded': excluded,
        'updatedIds': list(result.updated_ids),
        'unchangedIds': list(result.unchanged_ids),
        'updatedCount': len(result.updated_ids),
    }


def serialize_suggestion(suggestion: Suggestion) -> Dict[str, Any]:
    return {
        'pageId': suggestion.page_id,
        'url': suggestion.url,
        'title': suggestion.title,
        'description': suggestion.description,
        'similarity': suggestion.similarity,
        'rank': suggestion.rank,
    }


def serialize_match(match: AnchorMatch) -> Dict[str, Any]:
    return {'anchor': match.anchor, 'options': [serialize_suggestion(option) for option in match.options]}


# Pages & eligibility -------------------------------------------------------


@api_view('GET')
def raw_pages(request: HttpRequest, session_id: int) -> HttpResponse:
    """List a crawl session's pages, most recently crawled first."""

    pages = PageStore().list(session_id)
    return JsonResponse([serialize_page(page) for page in pages], safe=False)


@api_view('PATCH')
def update_raw_pages(request: HttpRequest) -> HttpResponse:
    """Apply one eligibility change set given as ``pageUpdates``."""

    data = _validated(PageUpdatesForm(_json_body(request)))
    page_ids, excluded = data['pageUpdates']
    if excluded:
        result = services.apply_exclusions(page_ids)
    else:
        result = services.remove_exclusions(page_ids)
    return JsonResponse(serialize_result(result, excluded))


def _get_block(block_id: int) -> FilterBlock:
    try:
        return FilterBlock.objects.get(pk=block_id)
    except FilterBlock.DoesNotExist:
        raise NotFoundError(f'Filter block {block_id} does not exist') from None


@api_view('POST')
def exclude_pages(request: HttpRequest) -> HttpResponse:
    data = _validated(PageIdsForm(_json_body(request)))
    block = _get_block(data['blockId']) if data.get('blockId') else None
    result = services.apply_exclusions(data['pageIds'], block=block)
    return JsonResponse(serialize_result(result, True))


@api_view('POST')
def include_pages(request: HttpRequest) -> HttpResponse:
    data = _validated(PageIdsForm(_json_body(request)))
    result = services.remove_exclusions(data['pageIds'])
    return JsonResponse(serialize_result(result, False))


# Filter blocks -------------------------------------------------------------


@api_view('GET', 'POST')
def filter_blocks(request: HttpRequest, session_id: int) -> HttpResponse:
    """List the session's blocks, or create one and exclude its matches."""

    session = PageStore().get_session(session_id)
    if request.method == 'GET':
        return JsonResponse([serialize_block(block) for block in session.filter_blocks.all()], safe=False)

    data = _validated(FilterBlockForm(_json_body(request)))
    criteria = [
        {'field': c.field, 'operator': c.operator, 'value': c.value, 'label': c.label}
        for c in data['criteria']
    ]
    block, result = services.create_block(
        session,
        data['name'],
        criteria,
        description=data.get('description') or '',
        color=data['color'],
    )
    payload = serialize_block(block)
    payload['excludedIds'] = list(result.updated_ids)
    return JsonResponse(payload, status=201)


@api_view('POST')
def preview_filter_block(request: HttpRequest, session_id: int) -> HttpResponse:
    session = PageStore().get_session(session_id)
    data = _validated(CriteriaForm(_json_body(request)))
    criteria = [
        {'field': c.field, 'operator': c.operator, 'value': c.value}
        for c in data['criteria']
    ]
    return JsonResponse(services.preview_block(session, criteria))


@api_view('DELETE')
def filter_block_detail(request: HttpRequest, block_id: int) -> HttpResponse:
    """Remove a block; pages it alone excluded become eligible again."""

    block = _get_block(block_id)
    result = services.remove_block(block)
    return JsonResponse({'deleted': block_id, 'reincludedIds': list(result.updated_ids)})


@api_view('GET')
def filter_presets(request: HttpRequest) -> HttpResponse:
    return JsonResponse(PRESETS, safe=False)


# Embeddings ----------------------------------------------------------------


@api_view('POST', 'DELETE')
def embeddings(request: HttpRequest) -> HttpResponse:
    """Generate missing vectors (POST) or delete vectors (DELETE)."""

    if request.method == 'DELETE':
        deleted = services.get_index(_optional_int(request, 'sessionId')).reset()
        return JsonResponse({'deleted': deleted})

    body = _json_body(request)
    session_id = body.get('sessionId')
    if session_id is not None and (isinstance(session_id, bool) or not isinstance(session_id, int)):
        raise ValidationError('sessionId must be an integer')
    if session_id is not None:
        PageStore().get_session(session_id)

    result = services.get_index(session_id).generate()
    payload = {
        'generated': result.generated,
        'failed': result.failed,
        'skipped': result.skipped,
        'failures': {str(page_id): detail for page_id, detail in result.failures.items()},
        'stoppedReason': result.stopped_reason,
    }
    return JsonResponse(payload)


@api_view('GET')
def embeddings_compatibility(request: HttpRequest) -> HttpResponse:
    coverage = services.get_index(_optional_int(request, 'sessionId')).coverage()
    return JsonResponse(
        {
            'totalPages': coverage.total_eligible_pages,
            'pagesWithEmbeddings': coverage.pages_with_embedding,
            'issues': coverage.issues,
        }
    )


@api_view('GET')
def embeddings_diagnose(request: HttpRequest) -> HttpResponse:
    return JsonResponse(services.get_index(_optional_int(request, 'sessionId')).diagnose())


# Anchors & suggestions -----------------------------------------------------


@api_view('POST')
def extract_anchors(request: HttpRequest) -> HttpResponse:
    data = _validated(ExtractAnchorsForm(_json_body(request)))
    candidates = services.get_extractor().extract(data['text'], data.get('maxCandidates'))
    return JsonResponse({'candidates': candidates, 'count': len(candidates)})


@api_view('POST')
def suggestions(request: HttpRequest) -> HttpResponse:
    """Rank eligible pages for one anchor phrase."""

    data = _validated(SuggestionForm(_json_body(request)))
    ranker = services.get_ranker(data.get('sessionId'))
    options = ranker.suggest(data['anchorText'], data.get('maxSuggestions'), data.get('similarityFloor'))
    return JsonResponse(
        {
            'anchorText': data['anchorText'],
            'suggestions': [serialize_suggestion(option) for option in options],
        }
    )


@api_view('POST')
def analyze(request: HttpRequest) -> HttpResponse:
    data = _validated(AnalyzeForm(_json_body(request)))
    ranker = services.get_ranker(data.get('sessionId'))
    report = ranker.analyze(
        services.get_extractor(),
        data['text'],
        data.get('maxCandidates'),
        data.get('maxSuggestions'),
        data.get('similarityFloor'),
    )
    return JsonResponse(
        {
            'matches': [serialize_match(match) for match in report['matches']],
            'totalCandidates': report['total_candidates'],
            'totalMatches': report['total_matches'],
            'failedAnchors': report['failed_anchors'],
            'averageScore': round(report['average_score'], 6),
        }
    )
