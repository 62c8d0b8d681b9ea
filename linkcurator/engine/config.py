"""Configuration helpers for the link curator engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Typed wrapper around the engine configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    @property
    def similarity_floor(self) -> float:
        return float(self.raw.get("similarity_floor", 0.7))

    @property
    def max_suggestions(self) -> int:
        return int(self.raw.get("max_suggestions", 10))

    @property
    def embedding_model(self) -> str:
        return str(self.raw.get("embedding_model", ""))

    @property
    def embedding_dimensions(self) -> int:
        return int(self.raw.get("embedding_dimensions", 0))


DEFAULTS: Dict[str, Any] = {
    # Match ranker
    "similarity_floor": 0.7,
    "max_suggestions": 10,
    "default_suggestions": 5,
    "max_anchor_chars": 200,
    # Anchor extractor
    "max_input_chars": 10000,
    "max_candidates": 50,
    "candidate_min_chars": 2,
    "candidate_max_chars": 50,
    # Upstream models
    "embedding_model": "text-embedding-3-small",
    "embedding_dimensions": 1536,
    "chat_model": "gpt-3.5-turbo",
    "chat_temperature": 0.3,
    "chat_max_tokens": 1000,
    "request_timeout": 20.0,
    # Embedding text weights (repetitions per field)
    "embedding_fields": {
        "title": 2,
        "h1": 2,
        "meta_description": 1,
    },
}


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from YAML, merging with defaults."""

    data: Dict[str, Any] = DEFAULTS.copy()
    data["embedding_fields"] = dict(DEFAULTS["embedding_fields"])

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        merge_into(data, user)

    return EngineConfig(data)


def merge_into(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value
