"""Anchor extraction tests."""

from __future__ import annotations

import json

import pytest

from linkcurator.engine.anchors import AnchorExtractor, clean_candidates, parse_candidates
from linkcurator.errors import ExtractionFailed, ValidationError


class FakeCompletion:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls = []

    def complete(self, system_prompt, user_prompt, *, model, temperature=0.3, max_tokens=1000):
        self.calls.append({"model": model, "temperature": temperature, "max_tokens": max_tokens, "user": user_prompt})
        return self.content


def test_rejects_empty_and_oversized_text(engine_config):
    client = FakeCompletion("[]")
    extractor = AnchorExtractor(client, engine_config)

    with pytest.raises(ValidationError):
        extractor.extract("")
    with pytest.raises(ValidationError):
        extractor.extract("   \n\t")
    with pytest.raises(ValidationError) as excinfo:
        extractor.extract("x" * 10001)

    assert "10,000" in excinfo.value.detail
    assert client.calls == []


def test_extract_cleans_and_caps_candidates(engine_config):
    items = ["  soil   preparation ", "Soil Preparation", "ok", "drill bits", 42, None, "x" * 60, "pest control"]
    client = FakeCompletion(json.dumps(items))
    extractor = AnchorExtractor(client, engine_config)

    candidates = extractor.extract("Gardening guide about soil and pests.", max_candidates=2)

    assert candidates == ["soil preparation", "drill bits"]
    assert client.calls[0]["temperature"] == 0.3
    assert client.calls[0]["max_tokens"] == 1000
    assert client.calls[0]["model"] == "gpt-3.5-turbo"
    assert "Gardening guide" in client.calls[0]["user"]


def test_valid_text_yields_bounded_trimmed_strings(engine_config):
    items = [f"phrase number {index}" for index in range(80)]
    extractor = AnchorExtractor(FakeCompletion(json.dumps(items)), engine_config)

    candidates = extractor.extract("Some article text " * 20)

    assert 1 <= len(candidates) <= 50
    assert all(2 < len(candidate) < 100 and candidate == candidate.strip() for candidate in candidates)


@pytest.mark.parametrize("max_candidates", [0, -1, True, "5"])
def test_rejects_bad_max_candidates(engine_config, max_candidates):
    extractor = AnchorExtractor(FakeCompletion("[]"), engine_config)
    with pytest.raises(ValidationError):
        extractor.extract("valid text", max_candidates=max_candidates)


@pytest.mark.parametrize("content", ["", "not json", '{"anchors": ["a"]}', '"just a string"'])
def test_unparseable_responses_fail(content):
    with pytest.raises(ExtractionFailed):
        parse_candidates(content)


def test_clean_candidates_length_bounds():
    assert clean_candidates(["abc", "ab", "a" * 49, "a" * 50], limit=10, min_chars=2, max_chars=50) == ["abc", "a" * 49]
