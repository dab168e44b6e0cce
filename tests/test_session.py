"""
Tests: editing session (mutations + autosave + analytics glue).

Covers:
    - edits notify autosave, no-op edits do not
    - analytics cached per document value
    - restore via replace_document behaves like an edit
    - close() flushes unsaved changes only
"""

import pytest

from app.services.journey import mutations as m
from app.services.journey.autosave import SaveState
from app.services.journey.session import EditingSession


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def saved():
    return []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def editing(sample_document, saved, clock):
    return EditingSession(sample_document, saved.append, map_id=7, debounce_seconds=10, clock=clock)


class TestEditing:
    def test_edit_schedules_save(self, editing, clock, saved):
        editing.edit(m.rename_stage, "a", "Explore")
        assert editing.autosave.state == SaveState.PENDING
        clock.now = 10
        editing.tick()
        assert saved[-1].find_stage("a").name == "Explore"

    def test_noop_edit_does_not_schedule(self, editing):
        editing.edit(m.rename_stage, "missing", "X")
        assert editing.autosave.state == SaveState.IDLE

    def test_apply_operations(self, editing):
        editing.apply({"op": "add_stage", "name": "Renew"})
        editing.apply_many([{"op": "set_title", "title": "Renamed"}])
        assert editing.document.stages[-1].name == "Renew"
        assert editing.document.title == "Renamed"
        assert editing.autosave.has_unsaved_changes

    def test_replace_document_is_an_edit(self, editing, sample_document):
        restored = m.set_title(sample_document, "Restored")
        editing.replace_document(restored)
        assert editing.document is restored
        assert editing.autosave.state == SaveState.PENDING

    def test_status(self, editing):
        status = editing.status()
        assert status["map_id"] == 7
        assert status["state"] == "idle"


class TestDerivedViews:
    def test_analytics_cached_until_document_changes(self, editing):
        first = editing.analytics()
        assert editing.analytics() is first
        editing.edit(m.set_cell, "sent", "c", {"value": 5})
        second = editing.analytics()
        assert second is not first
        assert second.sentiment_by_stage == [2, -1, 5]

    def test_curve(self, editing):
        assert len(editing.curve("sent").points) == 3
        assert editing.curve("nope") is None


class TestClose:
    def test_close_flushes(self, editing, saved):
        editing.edit(m.set_title, "Closing")
        future = editing.close()
        assert future is not None
        assert saved[-1].title == "Closing"
        assert editing.autosave.state == SaveState.IDLE

    def test_close_without_changes(self, editing, saved):
        assert editing.close() is None
        assert saved == []

    def test_explicit_save(self, editing, saved):
        editing.save()
        assert saved == [editing.document]
