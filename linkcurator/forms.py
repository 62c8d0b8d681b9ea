"""Forms validating the JSON payloads accepted by the linkcurator API.

Views decode the request body and bind the resulting dict to one of these
forms. A payload that violates the expected shape is rejected as a whole;
nothing from a malformed batch is applied.
"""

from __future__ import annotations

from typing import Any, List, Tuple

from django import forms

from .engine.anchors import validate_text
from .engine.filters import get_preset, parse_criteria
from .errors import ValidationError as CuratorValidationError
from .services import get_engine_config


def _page_id(value: Any, position: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise forms.ValidationError(f'Item {position} must have a positive integer page id.')
    return value


def _raw_list(form: forms.Form, name: str) -> List[Any]:
    # JSONField decodes strings, so the shape is checked on the submitted value.
    raw_value = form.data.get(name)
    if not isinstance(raw_value, list) or not raw_value:
        raise forms.ValidationError(f'{name} must be a non-empty list.')
    return raw_value


def _engine_limit(key: str) -> int:
    return int(get_engine_config().get(key))


class PageUpdatesForm(forms.Form):
    """``{"pageUpdates": [{"id": 1, "excluded": true}, ...]}``.

    One batch is one eligibility change, so every update must carry the
    same ``excluded`` value.
    """

    pageUpdates = forms.JSONField()

    def clean_pageUpdates(self) -> Tuple[List[int], bool]:
        raw_value = _raw_list(self, 'pageUpdates')

        page_ids: List[int] = []
        targets: set[bool] = set()
        for index, item in enumerate(raw_value, start=1):
            if not isinstance(item, dict):
                raise forms.ValidationError(f'Item {index} must be an object with id and excluded.')
            page_ids.append(_page_id(item.get('id'), index))
            excluded = item.get('excluded')
            if not isinstance(excluded, bool):
                raise forms.ValidationError(f'Item {index} must have a boolean excluded value.')
            targets.add(excluded)

        if len(targets) > 1:
            raise forms.ValidationError('All page updates in one batch must share the same excluded value.')
        return page_ids, targets.pop()


class PageIdsForm(forms.Form):
    """``{"pageIds": [1, 2, 3], "blockId": 7}``; ``blockId`` is optional."""

    pageIds = forms.JSONField()
    blockId = forms.IntegerField(required=False, min_value=1)

    def clean_pageIds(self) -> List[int]:
        raw_value = _raw_list(self, 'pageIds')
        return [_page_id(value, index) for index, value in enumerate(raw_value, start=1)]


class CriteriaForm(forms.Form):
    """Criteria given inline or by naming one of the presets."""

    criteria = forms.JSONField(required=False)
    preset = forms.CharField(required=False, max_length=64)

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        preset_id = cleaned_data.get('preset')
        raw_criteria = self.data.get('criteria')
        if preset_id:
            preset = get_preset(preset_id)
            if preset is None:
                raise forms.ValidationError(f'Unknown filter preset "{preset_id}".')
            cleaned_data['preset'] = preset
            raw_criteria = preset['criteria']
        if raw_criteria in (None, [], ''):
            raise forms.ValidationError('Provide criteria or a preset.')
        try:
            cleaned_data['criteria'] = parse_criteria(raw_criteria)
        except CuratorValidationError as exc:
            raise forms.ValidationError(exc.detail) from exc
        return cleaned_data


class FilterBlockForm(CriteriaForm):
    """Create a filter block. Name, description and color default to the preset's."""

    name = forms.CharField(required=False, max_length=255)
    description = forms.CharField(required=False, max_length=500)
    color = forms.CharField(required=False, max_length=32)

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        preset = cleaned_data.get('preset') or {}
        for key in ('name', 'description', 'color'):
            if not cleaned_data.get(key) and preset:
                cleaned_data[key] = preset[key]
        if not cleaned_data.get('name'):
            raise forms.ValidationError('Block name is required.')
        cleaned_data['color'] = cleaned_data.get('color') or 'red'
        return cleaned_data


class ExtractAnchorsForm(forms.Form):
    """``{"text": "...", "maxCandidates": 20}``.

    Length limits come from the engine configuration.
    """

    maxCandidates = forms.IntegerField(required=False, min_value=1)

    def clean_maxCandidates(self) -> int | None:
        value = self.cleaned_data.get('maxCandidates')
        limit = _engine_limit('max_candidates')
        if value is not None and value > limit:
            raise forms.ValidationError(f'maxCandidates must be {limit} or less.')
        return value

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        try:
            cleaned_data['text'] = validate_text(self.data.get('text'), _engine_limit('max_input_chars'))
        except CuratorValidationError as exc:
            self.add_error(None, exc.detail)
        return cleaned_data


class SuggestionForm(forms.Form):
    """``{"anchorText": "...", "maxSuggestions": 5, "similarityFloor": 0.7}``."""

    maxSuggestions = forms.IntegerField(required=False, min_value=1)
    similarityFloor = forms.FloatField(required=False, min_value=0.0, max_value=1.0)
    sessionId = forms.IntegerField(required=False, min_value=1)

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        anchor = self.data.get('anchorText')
        limit = _engine_limit('max_anchor_chars')
        if not isinstance(anchor, str) or not anchor.strip():
            self.add_error(None, 'Invalid anchor text - must be a non-empty string')
        elif len(anchor) > limit:
            self.add_error(None, f'Anchor text too long - must be {limit} characters or less')
        else:
            cleaned_data['anchorText'] = anchor
        return cleaned_data


class AnalyzeForm(ExtractAnchorsForm):
    """Extraction plus matching in one request."""

    maxSuggestions = forms.IntegerField(required=False, min_value=1)
    similarityFloor = forms.FloatField(required=False, min_value=0.0, max_value=1.0)
    sessionId = forms.IntegerField(required=False, min_value=1)
