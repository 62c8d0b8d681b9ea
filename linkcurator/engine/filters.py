"""Filter criteria evaluation for page exclusion rules."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from ..errors import ValidationError
from .types import Criterion, FilterRule, PageView

TEXT_FIELDS = {"url", "title", "meta_description"}

FIELD_OPERATORS: Dict[str, set[str]] = {
    "url": {"contains", "not_contains", "is_empty", "is_not_empty"},
    "title": {"contains", "not_contains", "is_empty", "is_not_empty"},
    "meta_description": {"contains", "not_contains", "is_empty", "is_not_empty"},
    "content_length": {"equals", "not_equals", "greater_than", "less_than", "is_empty"},
    "status_code": {"equals", "not_equals", "is_one_of", "is_empty"},
}

# Operators that ignore the criterion value.
VALUELESS_OPERATORS = {"is_empty", "is_not_empty"}

PRESETS: List[Dict[str, Any]] = [
    {
        "id": "admin-pages",
        "name": "Admin Pages",
        "description": "Exclude /admin/, /wp-admin/, /dashboard/",
        "color": "red",
        "criteria": [
            {"field": "url", "operator": "contains", "value": "/admin/", "label": 'URL contains "/admin/"'},
        ],
    },
    {
        "id": "error-pages",
        "name": "Error Pages",
        "description": "Exclude 404s and server errors",
        "color": "orange",
        "criteria": [
            {
                "field": "status_code",
                "operator": "is_one_of",
                "value": "404,500,502,503",
                "label": "Status is one of 404, 500, 502, 503",
            },
        ],
    },
    {
        "id": "short-content",
        "name": "Short Content",
        "description": "Exclude pages < 100 characters",
        "color": "yellow",
        "criteria": [
            {
                "field": "content_length",
                "operator": "less_than",
                "value": "100",
                "label": "Content length is less than 100",
            },
        ],
    },
    {
        "id": "missing-seo",
        "name": "Missing SEO",
        "description": "No title or meta description",
        "color": "purple",
        "criteria": [
            {"field": "title", "operator": "is_empty", "value": "", "label": "Title is empty"},
        ],
    },
]


def get_preset(preset_id: str) -> Dict[str, Any] | None:
    for preset in PRESETS:
        if preset["id"] == preset_id:
            return preset
    return None


def parse_criteria(raw: Any) -> tuple[Criterion, ...]:
    """Validate a loosely-typed criteria payload and return typed criteria.

    The whole payload is rejected on the first shape violation.
    """

    if not isinstance(raw, list) or not raw:
        raise ValidationError("criteria must be a non-empty list")

    parsed: List[Criterion] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, Mapping):
            raise ValidationError(f"criterion {index} must be an object")
        field_name = item.get("field")
        operator = item.get("operator")
        value = item.get("value", "")
        if field_name not in FIELD_OPERATORS:
            raise ValidationError(f"criterion {index} has unknown field {field_name!r}")
        if operator not in FIELD_OPERATORS[field_name]:
            raise ValidationError(
                f"criterion {index} operator {operator!r} is not valid for field {field_name!r}"
            )
        if value is None:
            value = ""
        if not isinstance(value, (str, int)):
            raise ValidationError(f"criterion {index} value must be a string")
        value = str(value)
        if operator not in VALUELESS_OPERATORS and not value.strip():
            raise ValidationError(f"criterion {index} requires a value")
        label = str(item.get("label") or describe(field_name, operator, value))
        parsed.append(Criterion(field=field_name, operator=operator, value=value, label=label))
    return tuple(parsed)


def describe(field_name: str, operator: str, value: str) -> str:
    """Return a human-readable label such as ``URL contains "/admin/"``."""

    field_label = {
        "url": "URL",
        "title": "Title",
        "meta_description": "Meta description",
        "content_length": "Content length",
        "status_code": "Status",
    }.get(field_name, field_name)
    operator_label = operator.replace("_", " ")
    if operator in VALUELESS_OPERATORS:
        return f"{field_label} {operator_label}"
    if field_name in TEXT_FIELDS:
        return f'{field_label} {operator_label} "{value}"'
    return f"{field_label} {operator_label} {value}"


def matches_criterion(page: PageView, criterion: Criterion) -> bool:
    """Return True when the page satisfies the criterion."""

    if criterion.field in TEXT_FIELDS:
        return _evaluate_text(getattr(page, criterion.field) or "", criterion.operator, criterion.value)
    if criterion.field == "content_length":
        return _evaluate_length(len(page.content or ""), criterion.operator, criterion.value)
    if criterion.field == "status_code":
        return _evaluate_status(page.status_code, criterion.operator, criterion.value)
    return False


def matches_rule(page: PageView, rule: FilterRule) -> bool:
    return any(matches_criterion(page, criterion) for criterion in rule.criteria)


def preview_matches(rule: FilterRule, pages: Iterable[PageView]) -> List[PageView]:
    """Return every page the rule matches, excluded or not."""

    return [page for page in pages if matches_rule(page, rule)]


def compute_match_count(rule: FilterRule, current_pages: Sequence[PageView]) -> int:
    """Count pages the rule would newly exclude.

    Only pages that are not already excluded count, so the result depends on
    the current eligibility state rather than on history.
    """

    return sum(1 for page in current_pages if not page.excluded and matches_rule(page, rule))


def _evaluate_text(text: str, operator: str, value: str) -> bool:
    lowered = text.lower()
    needle = value.lower()
    if operator == "contains":
        return needle in lowered
    if operator == "not_contains":
        return needle not in lowered
    if operator == "is_empty":
        return not text.strip()
    if operator == "is_not_empty":
        return bool(text.strip())
    return False


def _evaluate_length(length: int, operator: str, value: str) -> bool:
    if operator == "is_empty":
        return length == 0
    number = _parse_int(value)
    if number is None:
        return False
    if operator == "equals":
        return length == number
    if operator == "not_equals":
        return length != number
    if operator == "greater_than":
        return length > number
    if operator == "less_than":
        return length < number
    return False


def _evaluate_status(status_code: int | None, operator: str, value: str) -> bool:
    if operator == "is_empty":
        return not status_code
    if operator == "is_one_of":
        for token in value.split(","):
            token = token.strip().lower()
            if token == "null":
                if not status_code:
                    return True
                continue
            code = _parse_int(token)
            if code is not None and code == status_code:
                return True
        return False
    number = _parse_int(value)
    if number is None:
        return False
    if operator == "equals":
        return status_code == number
    if operator == "not_equals":
        return status_code != number
    return False


def _parse_int(value: str) -> int | None:
    try:
        return int(str(value).strip())
    except ValueError:
        return None
