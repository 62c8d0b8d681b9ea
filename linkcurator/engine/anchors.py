"""Anchor candidate extraction and post-filtering."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Protocol

from ..errors import ExtractionFailed, ValidationError
from .config import EngineConfig, load_config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert SEO content analyzer. Your goal is to extract ALL high-quality anchor text candidates from the provided text for internal linking purposes.

PRIORITY TARGETS (focus on these):
- Specific techniques, methods, processes
- Products, tools, equipment, materials
- Problems and solutions
- Step-by-step procedures
- Technical concepts and terminology
- Location-specific terms when relevant
- Seasonal/timing-related activities

QUALITY GUIDELINES:
- Length: 1-5 words optimal (avoid very long phrases)
- Specificity: Prefer specific terms over generic ones
- Linkability: Choose terms likely to have their own dedicated pages
- Search intent: Terms people would actually search for help with

AVOID:
- Generic words
- Personal pronouns and common articles
- Overly broad category terms unless no specifics exist
- Repetitive variations of the same concept

OUTPUT:
- Maximum 100 candidates
- JSON array format only: ["term1", "term2", ...]

Example candidates: ["wall mounting", "drill bits", "soil preparation", "safety equipment", "paint primer", "pest control", "insulation types", "wood staining", "pipe fitting", "pruning techniques"]"""

USER_PROMPT = (
    "Extract ALL potential relevant anchor candidates from this text "
    "and strictly follow the guidelines:\n\n{text}"
)


class CompletionClient(Protocol):
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        temperature: float = ...,
        max_tokens: int = ...,
    ) -> str:
        ...


def validate_text(text: Any, max_chars: int) -> str:
    """Return ``text`` when it is a non-blank string within ``max_chars``."""

    if not isinstance(text, str):
        raise ValidationError("Text is required and must be a string")
    if not text.strip():
        raise ValidationError("Text cannot be empty")
    if len(text) > max_chars:
        raise ValidationError(f"Text too long (max {max_chars:,} characters)")
    return text


def parse_candidates(content: str) -> List[Any]:
    """Parse the model output as a JSON array or raise :class:`ExtractionFailed`."""

    if not content or not content.strip():
        raise ExtractionFailed("No response from the text-generation model")
    try:
        data = json.loads(content)
    except ValueError:
        logger.error("Failed to parse anchor response as JSON: %.200s", content)
        raise ExtractionFailed("Invalid JSON response from the text-generation model") from None
    if not isinstance(data, list):
        raise ExtractionFailed("Model response is not an array")
    return data


def clean_candidates(items: List[Any], limit: int, min_chars: int, max_chars: int) -> List[str]:
    """Trim, length-filter and de-duplicate candidates, keeping first occurrences.

    Kept candidates satisfy ``min_chars < len(candidate) < max_chars``.
    """

    cleaned: List[str] = []
    seen: set[str] = set()
    for item in items:
        if len(cleaned) >= limit:
            break
        if not isinstance(item, str):
            continue
        candidate = " ".join(item.split())
        if not (min_chars < len(candidate) < max_chars):
            continue
        key = candidate.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(candidate)
    return cleaned


class AnchorExtractor:
    """Extract linkable phrases from source text with a text-generation model."""

    def __init__(self, client: CompletionClient, config: EngineConfig | None = None) -> None:
        self.client = client
        self.config = config or load_config(None)

    def extract(self, text: Any, max_candidates: int | None = None) -> List[str]:
        ceiling = int(self.config.get("max_candidates", 50))
        limit = ceiling if max_candidates is None else max_candidates
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("max_candidates must be a positive integer")
        limit = min(limit, ceiling)

        text = validate_text(text, int(self.config.get("max_input_chars", 10000)))
        logger.info("Extracting anchors from %s character text", len(text))

        content = self.client.complete(
            SYSTEM_PROMPT,
            USER_PROMPT.format(text=text),
            model=str(self.config.get("chat_model")),
            temperature=float(self.config.get("chat_temperature", 0.3)),
            max_tokens=int(self.config.get("chat_max_tokens", 1000)),
        )
        items = parse_candidates(content)
        candidates = clean_candidates(
            items,
            limit,
            int(self.config.get("candidate_min_chars", 2)),
            int(self.config.get("candidate_max_chars", 50)),
        )
        logger.info("Extracted %s anchor candidates", len(candidates))
        return candidates
