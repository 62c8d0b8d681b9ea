"""HTTP client for the OpenAI-compatible text and embedding endpoints.

The client never retries on its own: every failure is classified into one of
the upstream errors from :mod:`linkcurator.errors` and raised to the caller,
who decides whether to back off. Every request has a bounded timeout.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

import httpx
from django.conf import settings

from .errors import (
    EmbeddingFailed,
    UpstreamError,
    UpstreamQuotaExceeded,
    UpstreamRateLimited,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.openai.com/v1'
DEFAULT_TIMEOUT = 20.0


class OpenAIClient:
    """Thin synchronous wrapper around ``/chat/completions`` and ``/embeddings``."""

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout
        self._client = http_client

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                headers={
                    'Authorization': f'Bearer {self._api_key}',
                    'Content-Type': 'application/json',
                },
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> str:
        """Run a chat completion and return the assistant message text.

        Returns an empty string when the response carries no content.
        """

        body = {
            'model': model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }
        data = self._post('/chat/completions', body, model=model)
        try:
            content = data['choices'][0]['message'].get('content')
        except (KeyError, IndexError, TypeError, AttributeError):
            return ''
        return (content or '').strip()

    def embed(self, text: str, *, model: str, dimensions: int | None = None) -> List[float]:
        """Return the embedding vector for ``text``.

        Raises :class:`EmbeddingFailed` when the response holds no usable
        vector or its length differs from ``dimensions``.
        """

        data = self._post('/embeddings', {'model': model, 'input': text}, model=model)
        try:
            vector = data['data'][0]['embedding']
        except (KeyError, IndexError, TypeError):
            raise EmbeddingFailed('Embedding response did not contain a vector') from None
        if not isinstance(vector, list) or not vector:
            raise EmbeddingFailed('Embedding response did not contain a vector')
        if dimensions and len(vector) != dimensions:
            raise EmbeddingFailed(
                f'Embedding has {len(vector)} dimensions, expected {dimensions}'
            )
        try:
            return [float(value) for value in vector]
        except (TypeError, ValueError):
            raise EmbeddingFailed('Embedding vector contains non-numeric values') from None

    def _post(self, path: str, body: Dict[str, Any], *, model: str) -> Dict[str, Any]:
        if not self.available:
            raise UpstreamError('Upstream model is not configured (missing API key)')

        start = time.monotonic()
        try:
            response = self._get_client().post(path, json=body)
        except httpx.TimeoutException as exc:
            logger.warning('Upstream %s timed out after %.1fs', path, time.monotonic() - start)
            raise UpstreamUnavailable(f'Upstream request timed out: {exc}') from exc
        except httpx.HTTPError as exc:
            logger.warning('Upstream %s transport error: %s', path, exc)
            raise UpstreamUnavailable(f'Upstream request failed: {exc}') from exc

        duration_ms = (time.monotonic() - start) * 1000
        logger.debug('Upstream %s model=%s status=%s in %.0fms', path, model, response.status_code, duration_ms)
        _raise_for_status(response)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamError('Upstream returned a non-JSON response') from None
        if not isinstance(data, dict):
            raise UpstreamError('Upstream returned an unexpected response shape')
        return data


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return

    code, message = _error_details(response)
    if status == 429:
        if code == 'insufficient_quota':
            raise UpstreamQuotaExceeded(message or 'Upstream quota exceeded. Check API usage.')
        retry_after = _retry_after(response)
        raise UpstreamRateLimited(message or 'Rate limit exceeded. Try again in a moment.', retry_after=retry_after)
    if status in (401, 403):
        logger.error('Upstream authentication failed (%s)', status)
        raise UpstreamError(f'Upstream authentication failed ({status})')
    if status >= 500:
        raise UpstreamUnavailable(f'Upstream server error ({status})')
    raise UpstreamError(message or f'Upstream request rejected ({status})')


def _error_details(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        payload = response.json()
    except ValueError:
        return None, None
    error = payload.get('error') if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None, None
    return error.get('code') or error.get('type'), error.get('message')


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get('retry-after')
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


_default_client: OpenAIClient | None = None


def get_client(timeout: float = DEFAULT_TIMEOUT) -> OpenAIClient:
    """Return the process-wide client built from Django settings.

    ``timeout`` only applies when the client is first built.
    """

    global _default_client
    if _default_client is None:
        _default_client = OpenAIClient(
            getattr(settings, 'OPENAI_API_KEY', None),
            base_url=getattr(settings, 'OPENAI_BASE_URL', DEFAULT_BASE_URL),
            timeout=float(timeout),
        )
    return _default_client
