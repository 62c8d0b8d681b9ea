"""Filter criteria and match-count tests."""

from __future__ import annotations

import pytest

from linkcurator.engine.filters import (
    PRESETS,
    compute_match_count,
    get_preset,
    matches_rule,
    parse_criteria,
    preview_matches,
)
from linkcurator.engine.types import FilterRule
from linkcurator.errors import ValidationError

from .conftest import make_page


def rule_for(*criteria):
    return FilterRule(name="test", criteria=parse_criteria(list(criteria)))


def test_text_criteria_are_case_insensitive():
    page = make_page(1, "https://example.com/Admin/settings", title="Settings")
    rule = rule_for({"field": "url", "operator": "contains", "value": "/admin/"})
    assert matches_rule(page, rule)

    rule = rule_for({"field": "title", "operator": "not_contains", "value": "SETTINGS"})
    assert not matches_rule(page, rule)


def test_any_criterion_matches():
    rule = rule_for(
        {"field": "title", "operator": "is_empty"},
        {"field": "status_code", "operator": "equals", "value": "404"},
    )
    assert matches_rule(make_page(1, title=""), rule)
    assert matches_rule(make_page(2, title="Found", status_code=404), rule)
    assert not matches_rule(make_page(3, title="Fine", status_code=200), rule)


def test_status_is_one_of_handles_null_token():
    rule = rule_for({"field": "status_code", "operator": "is_one_of", "value": "404, 500, null"})
    assert matches_rule(make_page(1, status_code=500), rule)
    assert matches_rule(make_page(2, status_code=None), rule)
    assert not matches_rule(make_page(3, status_code=200), rule)


def test_unparseable_number_never_matches():
    rule = rule_for({"field": "content_length", "operator": "less_than", "value": "lots"})
    assert not matches_rule(make_page(1, content=""), rule)


def test_content_length_comparisons():
    rule = rule_for({"field": "content_length", "operator": "less_than", "value": "100"})
    assert matches_rule(make_page(1, content="short"), rule)
    assert not matches_rule(make_page(2, content="x" * 100), rule)

    rule = rule_for({"field": "content_length", "operator": "is_empty"})
    assert matches_rule(make_page(3, content=""), rule)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        "url contains admin",
        [{"field": "body", "operator": "contains", "value": "x"}],
        [{"field": "url", "operator": "greater_than", "value": "3"}],
        [{"field": "url", "operator": "contains", "value": "  "}],
        [{"field": "url", "operator": "contains", "value": ["a"]}],
        ["not-an-object"],
    ],
)
def test_parse_criteria_rejects_malformed_payloads(payload):
    with pytest.raises(ValidationError):
        parse_criteria(payload)


def test_parse_criteria_fills_labels():
    (criterion,) = parse_criteria([{"field": "url", "operator": "contains", "value": "/tag/"}])
    assert criterion.label == 'URL contains "/tag/"'


def test_match_count_ignores_excluded_pages():
    pages = [
        make_page(1, "https://example.com/admin/a"),
        make_page(2, "https://example.com/admin/b", excluded=True),
        make_page(3, "https://example.com/blog"),
    ]
    rule = rule_for({"field": "url", "operator": "contains", "value": "/admin/"})

    assert compute_match_count(rule, pages) == 1
    assert [page.id for page in preview_matches(rule, pages)] == [1, 2]


def test_presets_parse_and_lookup():
    for preset in PRESETS:
        assert parse_criteria(preset["criteria"])
    assert get_preset("error-pages")["color"] == "orange"
    assert get_preset("missing") is None
