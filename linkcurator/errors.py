"""Domain errors raised by the link curator.

Every error carries a stable ``kind`` string and a human-readable
``detail`` so views can render a consistent JSON payload, plus the HTTP
status the error maps to.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List


class LinkCuratorError(Exception):
    """Base class for all errors surfaced to callers."""

    kind = 'error'
    status = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def as_dict(self) -> Dict[str, Any]:
        return {'error': self.kind, 'detail': self.detail}


class ValidationError(LinkCuratorError):
    """Malformed caller input. Never retried."""

    kind = 'validation_error'
    status = 400


class NotFoundError(LinkCuratorError):
    """A referenced crawl session, page or filter block does not exist."""

    kind = 'not_found'
    status = 404


class UpstreamError(LinkCuratorError):
    """Base class for failures of the text or embedding generation dependency."""

    kind = 'upstream_error'
    status = 502


class UpstreamRateLimited(UpstreamError):
    """The dependency throttled us; the caller may retry after a backoff."""

    kind = 'upstream_rate_limited'
    status = 429

    def __init__(self, detail: str, retry_after: float | None = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after

    def as_dict(self) -> Dict[str, Any]:
        payload = super().as_dict()
        if self.retry_after is not None:
            payload['retryAfter'] = self.retry_after
        return payload


class UpstreamQuotaExceeded(UpstreamError):
    """Quota is exhausted for the current period. Callers should stop retrying."""

    kind = 'upstream_quota_exceeded'
    status = 503


class UpstreamUnavailable(UpstreamError):
    """Timeouts, transport errors and server errors from the dependency."""

    kind = 'upstream_unavailable'
    status = 504


class ExtractionFailed(UpstreamError):
    """The text-generation dependency returned content that is not a JSON array."""

    kind = 'extraction_failed'
    status = 502


class EmbeddingFailed(UpstreamError):
    """The embedding dependency returned a vector we cannot use."""

    kind = 'embedding_failed'
    status = 502


class PersistenceError(LinkCuratorError):
    """A store read or write failed."""

    kind = 'persistence_error'
    status = 500


class PartialUpdateError(PersistenceError):
    """A bulk update persisted for some ids and failed for others."""

    def __init__(self, detail: str, updated_ids: Iterable[int], failed_ids: Iterable[int]) -> None:
        super().__init__(detail)
        self.updated_ids: List[int] = list(updated_ids)
        self.failed_ids: List[int] = list(failed_ids)

    def as_dict(self) -> Dict[str, Any]:
        payload = super().as_dict()
        payload.update(
            {
                'updatedIds': self.updated_ids,
                'failedIds': self.failed_ids,
                'updatedCount': len(self.updated_ids),
                'failedCount': len(self.failed_ids),
            }
        )
        return payload
