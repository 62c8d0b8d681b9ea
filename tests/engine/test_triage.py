"""Optimistic triage view tests."""

from __future__ import annotations

from typing import Dict, List, Sequence

import pytest

from linkcurator.engine.triage import TriageView
from linkcurator.engine.types import BulkUpdateResult, EligibilityChangeSet, PageView
from linkcurator.errors import PartialUpdateError, PersistenceError

from .conftest import make_page


class RecordingBackend:
    """Backend that persists into a dict and can fail for chosen ids."""

    def __init__(self, pages: Sequence[PageView], failing: Sequence[int] = ()) -> None:
        self.state: Dict[int, PageView] = {page.id: page for page in pages}
        self.failing = set(failing)
        self.calls: List[tuple] = []
        self.raise_error: Exception | None = None

    def read(self, session_id: int) -> List[PageView]:
        return list(self.state.values())

    def bulk_update(self, page_ids: Sequence[int], excluded: bool) -> BulkUpdateResult:
        self.calls.append((tuple(page_ids), excluded))
        if self.raise_error is not None:
            raise self.raise_error
        failed = tuple(pk for pk in page_ids if pk in self.failing or pk not in self.state)
        if failed:
            # All-or-nothing: nothing is written when any id fails.
            return BulkUpdateResult(failed_ids=failed)
        updated = tuple(pk for pk in page_ids if self.state[pk].excluded != excluded)
        for pk in updated:
            self.state[pk] = EligibilityChangeSet((pk,), excluded).apply([self.state[pk]])[0]
        unchanged = tuple(pk for pk in page_ids if pk not in updated)
        return BulkUpdateResult(updated_ids=updated, unchanged_ids=unchanged)


def five_pages():
    return [make_page(index, title=f"Page {index}") for index in range(1, 6)]


def test_change_set_is_idempotent():
    pages = five_pages()
    change = EligibilityChangeSet(page_ids=(1, 3), excluded=True)

    once = change.apply(pages)
    twice = change.apply(once)

    assert once == twice
    assert [page.id for page in once if page.excluded] == [1, 3]


def test_apply_exclusions_replaces_view_with_backend_read():
    backend = RecordingBackend(five_pages())
    view = TriageView(backend, session_id=1)
    view.load()

    result = view.apply_exclusions([1, 2])

    assert result.updated_ids == (1, 2)
    assert [page.id for page in view.excluded] == [1, 2]
    assert view.pages == backend.read(1)
    assert view.error is None
    assert not view.pending


def test_repeated_exclusion_is_a_no_op():
    backend = RecordingBackend(five_pages())
    view = TriageView(backend, session_id=1)
    view.load()
    view.apply_exclusions([1])

    result = view.apply_exclusions([1])

    assert result.updated_ids == ()
    assert result.unchanged_ids == (1,)
    assert [page.id for page in view.excluded] == [1]


def test_stale_view_still_sends_every_requested_id():
    backend = RecordingBackend(five_pages())
    view = TriageView(backend, session_id=1)
    view.load()
    view.apply_exclusions([2])
    # Another operator re-includes page 2 behind this view's back.
    backend.state[2] = make_page(2, title="Page 2")

    result = view.apply_exclusions([2])

    assert backend.calls[-1] == ((2,), True)
    assert result.updated_ids == (2,)
    assert backend.state[2].excluded is True
    assert view.pages == backend.read(1)


def test_stale_view_picks_up_server_state_on_no_op():
    backend = RecordingBackend(five_pages())
    view = TriageView(backend, session_id=1)
    view.load()
    backend.state[3] = make_page(3, title="Page 3", excluded=True)

    result = view.apply_exclusions([3])

    assert result.unchanged_ids == (3,)
    assert [page.id for page in view.excluded] == [3]


def test_unknown_id_is_reported_as_failed():
    backend = RecordingBackend(five_pages())
    view = TriageView(backend, session_id=1)
    before = list(view.load())

    with pytest.raises(PartialUpdateError) as excinfo:
        view.apply_exclusions([1, 999])

    assert excinfo.value.failed_ids == [999]
    assert view.pages == before
    assert backend.state[1].excluded is False


def test_partial_failure_rolls_back_entire_view():
    backend = RecordingBackend(five_pages(), failing=[2, 4])
    view = TriageView(backend, session_id=1)
    before = list(view.load())

    with pytest.raises(PartialUpdateError) as excinfo:
        view.apply_exclusions([1, 2, 3, 4, 5])

    assert set(excinfo.value.failed_ids) == {2, 4}
    assert view.pages == before
    assert view.excluded == []
    assert view.error
    assert excinfo.value.as_dict()["failedIds"] == [2, 4]


def test_backend_error_restores_snapshot():
    pages = five_pages()
    pages[0] = make_page(1, title="Page 1", excluded=True)
    backend = RecordingBackend(pages)
    backend.raise_error = PersistenceError("database is locked")
    view = TriageView(backend, session_id=1)
    before = list(view.load())

    with pytest.raises(PersistenceError):
        view.remove_exclusions([1])

    assert view.pages == before
    assert view.error == "database is locked"


def test_remove_exclusions_only_changes_excluded_pages():
    pages = five_pages()
    pages[2] = make_page(3, title="Page 3", excluded=True)
    backend = RecordingBackend(pages)
    view = TriageView(backend, session_id=1)
    view.load()

    result = view.remove_exclusions([2, 3])

    assert backend.calls == [((2, 3), False)]
    assert result.updated_ids == (3,)
    assert result.unchanged_ids == (2,)
    assert view.excluded == []


def test_selection_is_ephemeral():
    view = TriageView(RecordingBackend(five_pages()), session_id=1)

    assert view.toggle_selection(2) is True
    assert view.toggle_selection(3) is True
    assert view.toggle_selection(2) is False
    assert view.selected_ids == {3}

    view.clear_selection()
    assert view.selected_ids == set()

    view.set_highlighted([4, 5])
    assert view.highlighted == [4, 5]
