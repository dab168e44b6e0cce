"""
Journey Map Platform
Tests: journey map service layer.

Covers:
    - create / list / update / duplicate / delete
    - load_document defaults and repair
    - save_document versioning (max + 1, never reused) and restore
    - apply_operations (save only when changed, validation)
    - comments anchored to cells
    - templates: system seed, tenant templates, map from template
    - analytics via the service
    - tenant isolation, PersistenceError wrapping (commits and reads)
    - open_session autosave writing through save_document
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query

from app.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.models import db as _db
from app.models.journey_map import JourneyMap, JourneyMapComment, JourneyMapVersion
from app.services import journey_map_service as svc
from app.services.journey import mutations as m
from app.services.journey.autosave import SaveState
from app.services.journey.builtin_templates import SYSTEM_TEMPLATES

TENANT = 1
OTHER_TENANT = 2


def _create(title="Checkout Journey", tenant_id=TENANT, **kw):
    return svc.create_map({"title": title, **kw}, tenant_id=tenant_id, created_by="alice")


# ═════════════════════════════════════════════════════════════════════════════
# Maps
# ═════════════════════════════════════════════════════════════════════════════


class TestMaps:
    def test_create_seeds_one_stage(self):
        jm = _create()
        assert jm["status"] == "draft"
        assert jm["data"]["title"] == "Checkout Journey"
        assert [s["name"] for s in jm["data"]["stages"]] == ["Awareness"]
        assert jm["data"]["sections"] == []
        assert JourneyMapVersion.query.count() == 0

    def test_create_with_document(self, sample_document):
        jm = _create(title="", data=sample_document.to_dict())
        assert jm["title"] == "Sample"
        assert len(jm["data"]["sections"]) == 3

    def test_create_rejects_bad_status(self):
        with pytest.raises(ValidationError):
            _create(status="deleted")

    def test_create_rejects_unrepairable_document(self):
        with pytest.raises(ValidationError):
            _create(data={"stages": "nope"})
        assert JourneyMap.query.count() == 0

    def test_list_filters_and_sorts(self):
        _create("Beta", description="returns flow")
        _create("Alpha", status="published")
        _create("Gamma", tenant_id=OTHER_TENANT)

        items, total = svc.list_maps(TENANT, sort="title")
        assert total == 2
        assert [i["title"] for i in items] == ["Alpha", "Beta"]
        assert "data" not in items[0]
        assert items[0]["stage_count"] == 1

        items, _ = svc.list_maps(TENANT, search="returns")
        assert [i["title"] for i in items] == ["Beta"]
        items, _ = svc.list_maps(TENANT, status="published")
        assert [i["title"] for i in items] == ["Alpha"]
        _, total = svc.list_maps(TENANT, status="all")
        assert total == 2

    def test_list_pagination(self):
        for i in range(5):
            _create(f"Map {i}")
        items, total = svc.list_maps(TENANT, limit=2, offset=4)
        assert total == 5
        assert len(items) == 1

    def test_update_metadata_and_title(self):
        jm = _create()
        out = svc.update_map(jm["id"], {"title": "Renamed", "status": "archived", "tags": ["b2b"]},
                             tenant_id=TENANT)
        assert out["title"] == "Renamed"
        assert out["data"]["title"] == "Renamed"
        assert out["status"] == "archived"
        assert out["tags"] == ["b2b"]
        assert JourneyMapVersion.query.count() == 0

    def test_update_with_data_saves_version(self, sample_document):
        jm = _create()
        svc.update_map(jm["id"], {"data": sample_document.to_dict()}, tenant_id=TENANT)
        assert JourneyMapVersion.query.filter_by(map_id=jm["id"]).count() == 1

    def test_duplicate(self):
        jm = _create()
        svc.save_document(jm["id"], svc.load_document(jm["id"]), tenant_id=TENANT)
        copy_ = svc.duplicate_map(jm["id"], tenant_id=TENANT)
        assert copy_["title"] == "Checkout Journey (Copy)"
        assert copy_["status"] == "draft"
        assert copy_["data"]["stages"] == jm["data"]["stages"]
        assert svc.list_versions(copy_["id"]) == []

    def test_delete_cascades(self):
        jm = _create()
        svc.save_document(jm["id"], svc.load_document(jm["id"]), tenant_id=TENANT)
        svc.create_comment(jm["id"], {"section_id": "s", "stage_id": "st_1", "content": "hi"})
        svc.delete_map(jm["id"], tenant_id=TENANT)
        assert JourneyMap.query.count() == 0
        assert JourneyMapVersion.query.count() == 0
        assert JourneyMapComment.query.count() == 0

    def test_tenant_isolation(self):
        jm = _create()
        with pytest.raises(NotFoundError):
            svc.get_map(jm["id"], tenant_id=OTHER_TENANT)
        with pytest.raises(NotFoundError):
            svc.delete_map(jm["id"], tenant_id=OTHER_TENANT)
        assert svc.get_map(jm["id"], tenant_id=None)["id"] == jm["id"]

    def test_missing_map(self):
        with pytest.raises(NotFoundError):
            svc.load_document(9999)


# ═════════════════════════════════════════════════════════════════════════════
# Documents & versions
# ═════════════════════════════════════════════════════════════════════════════


class TestDocuments:
    def test_load_repairs_missing_stages(self):
        jm = _create()
        row = _db.session.get(JourneyMap, jm["id"])
        row.data = {"title": "Bare"}
        _db.session.commit()
        doc = svc.load_document(jm["id"])
        assert doc.title == "Bare"
        assert doc.stage_ids == ["st_1"]
        assert doc.sections == ()

    def test_save_numbers_versions(self):
        jm = _create()
        doc = svc.load_document(jm["id"])
        numbers = []
        for name in ("A", "B", "C"):
            doc = m.add_stage(doc, name)
            numbers.append(svc.save_document(jm["id"], doc, tenant_id=TENANT)["version"]["version_number"])
        assert numbers == [1, 2, 3]
        assert [v["version_number"] for v in svc.list_versions(jm["id"])] == [3, 2, 1]

    def test_save_without_version(self, app):
        jm = _create()
        result = svc.save_document(jm["id"], svc.load_document(jm["id"]), create_version=False)
        assert result["version"] is None

    def test_save_updates_persona(self):
        jm = _create()
        out = svc.save_document(jm["id"], svc.load_document(jm["id"]), persona_id="p-7")
        assert out["map"]["persona_id"] == "p-7"

    def test_save_rejects_unknown_type(self):
        jm = _create()
        with pytest.raises(ValidationError):
            svc.save_document(jm["id"], {"sections": [{"type": "hologram"}]})

    def test_get_version_snapshot(self):
        jm = _create()
        saved = svc.save_document(jm["id"], m.set_title(svc.load_document(jm["id"]), "V1"))
        version = svc.get_version(jm["id"], saved["version"]["id"])
        assert version["snapshot"]["title"] == "V1"

    def test_get_version_of_other_map(self):
        first, second = _create("One"), _create("Two")
        saved = svc.save_document(first["id"], svc.load_document(first["id"]))
        with pytest.raises(NotFoundError):
            svc.get_version(second["id"], saved["version"]["id"])

    def test_restore_without_persist(self):
        jm = _create()
        v1 = svc.save_document(jm["id"], m.set_title(svc.load_document(jm["id"]), "First"))
        svc.save_document(jm["id"], m.set_title(svc.load_document(jm["id"]), "Second"))

        doc, saved = svc.restore_version(jm["id"], v1["version"]["id"])
        assert doc.title == "First"
        assert saved is None
        assert svc.load_document(jm["id"]).title == "Second"

    def test_restore_persist_appends_new_version(self):
        jm = _create()
        doc = svc.load_document(jm["id"])
        v1 = svc.save_document(jm["id"], m.set_title(doc, "One"))
        svc.save_document(jm["id"], m.set_title(doc, "Two"))
        svc.save_document(jm["id"], m.set_title(doc, "Three"))

        restored, saved = svc.restore_version(jm["id"], v1["version"]["id"], persist=True)
        assert saved["version"]["version_number"] == 4
        assert svc.load_document(jm["id"]).title == "One"
        assert svc.get_version(jm["id"], v1["version"]["id"])["snapshot"]["title"] == "One"
        assert len(svc.list_versions(jm["id"])) == 4

    def test_persistence_error_rolls_back(self, monkeypatch):
        jm = _create()

        def _boom():
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(_db.session, "commit", _boom)
        with pytest.raises(PersistenceError) as exc:
            svc.save_document(jm["id"], m.set_title(svc.load_document(jm["id"]), "Lost"))
        assert exc.value.operation == "save"
        monkeypatch.undo()
        assert svc.load_document(jm["id"]).title == "Checkout Journey"


class TestReadFailures:
    """Query errors surface as PersistenceError, like commit errors do."""

    @pytest.fixture
    def broken(self, monkeypatch):
        def _boom(self, *args, **kwargs):
            raise SQLAlchemyError("connection reset")

        def _break(method):
            monkeypatch.setattr(Query, method, _boom)

        return _break

    def test_list_versions(self, broken):
        jm = _create()
        broken("all")
        with pytest.raises(PersistenceError) as exc:
            svc.list_versions(jm["id"])
        assert exc.value.operation == "version_list"

    def test_list_comments(self, broken):
        jm = _create()
        svc.create_comment(jm["id"], {"section_id": "s", "stage_id": "st_1", "content": "hi"})
        broken("all")
        with pytest.raises(PersistenceError) as exc:
            svc.list_comments(jm["id"])
        assert exc.value.operation == "comment_list"

    def test_comment_lookup(self, broken):
        jm = _create()
        c = svc.create_comment(jm["id"], {"section_id": "s", "stage_id": "st_1", "content": "hi"})
        broken("first")
        with pytest.raises(PersistenceError) as exc:
            svc.update_comment(jm["id"], c["id"], {"resolved": True})
        assert exc.value.operation == "comment_fetch"

    def test_list_maps(self, broken):
        _create()
        broken("count")
        with pytest.raises(PersistenceError) as exc:
            svc.list_maps(TENANT)
        assert exc.value.operation == "list"


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════


class TestOperations:
    def test_apply_and_save(self):
        jm = _create()
        result = svc.apply_operations(jm["id"], [
            {"op": "add_section", "type": "sentiment_graph", "section_id": "s"},
            {"op": "set_cell", "section_id": "s", "stage_id": "st_1", "value": {"value": 3}},
        ], tenant_id=TENANT)
        assert result["changed"] is True
        assert result["version"]["version_number"] == 1
        assert svc.load_document(jm["id"]).cell("s", "st_1") == {"value": 3}

    def test_noop_operations_do_not_version(self):
        jm = _create()
        result = svc.apply_operations(jm["id"], [{"op": "rename_stage", "stage_id": "zzz", "name": "X"}])
        assert result["changed"] is False
        assert result["version"] is None
        assert svc.list_versions(jm["id"]) == []

    def test_malformed_operation_saves_nothing(self):
        jm = _create()
        with pytest.raises(ValidationError):
            svc.apply_operations(jm["id"], [
                {"op": "set_title", "title": "Half"},
                {"op": "warp"},
            ])
        assert svc.load_document(jm["id"]).title == "Checkout Journey"

    def test_ops_must_be_list(self):
        jm = _create()
        with pytest.raises(ValidationError):
            svc.apply_operations(jm["id"], {"op": "set_title"})

    def test_ops_limit(self, app, monkeypatch):
        jm = _create()
        monkeypatch.setitem(app.config, "JOURNEY_MAX_OPERATIONS", 2)
        with pytest.raises(ValidationError):
            svc.apply_operations(jm["id"], [{"op": "set_title", "title": "x"}] * 3)


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


class TestComments:
    def test_crud_and_filters(self):
        jm = _create()
        first = svc.create_comment(jm["id"], {"section_id": "s1", "stage_id": "st_1", "content": " Slow "},
                                   user_name="bob")
        svc.create_comment(jm["id"], {"section_id": "s2", "stage_id": "st_1", "content": "Other"})
        assert first["content"] == "Slow"
        assert first["user_name"] == "bob"

        assert len(svc.list_comments(jm["id"], section_id="s1")) == 1
        assert len(svc.list_comments(jm["id"], stage_id="st_1")) == 2

        svc.update_comment(jm["id"], first["id"], {"resolved": True})
        assert len(svc.list_comments(jm["id"], include_resolved=False)) == 1

        svc.delete_comment(jm["id"], first["id"])
        assert len(svc.list_comments(jm["id"])) == 1

    def test_required_fields(self):
        jm = _create()
        with pytest.raises(ValidationError) as exc:
            svc.create_comment(jm["id"], {"section_id": "s1"})
        assert set(exc.value.details) == {"stage_id", "content"}

    def test_empty_content_update_rejected(self):
        jm = _create()
        c = svc.create_comment(jm["id"], {"section_id": "s", "stage_id": "st_1", "content": "x"})
        with pytest.raises(ValidationError):
            svc.update_comment(jm["id"], c["id"], {"content": "  "})

    def test_comment_of_other_map(self):
        first, second = _create("One"), _create("Two")
        c = svc.create_comment(first["id"], {"section_id": "s", "stage_id": "st_1", "content": "x"})
        with pytest.raises(NotFoundError):
            svc.delete_comment(second["id"], c["id"])


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


class TestTemplates:
    def test_seed_is_idempotent(self):
        assert svc.seed_system_templates() == len(SYSTEM_TEMPLATES)
        assert svc.seed_system_templates() == 0
        titles = [t["title"] for t in svc.list_templates()]
        assert titles == sorted(t["title"] for t in SYSTEM_TEMPLATES)

    def test_map_from_system_template(self):
        svc.seed_system_templates()
        template = next(t for t in svc.list_templates() if t["title"] == "Support Journey")
        jm = svc.create_map_from_template(template["id"], tenant_id=TENANT, title="My Support")
        assert jm["title"] == "My Support"
        assert len(jm["data"]["stages"]) == 4
        assert svc.map_analytics(jm["id"])["sentiment_by_stage"][0]["sentiment"] == -4

    def test_tenant_template_from_map(self):
        jm = _create()
        template = svc.create_template({"source_map_id": jm["id"], "title": "Mine"}, tenant_id=TENANT)
        assert template["data"]["stages"][0]["name"] == "Awareness"
        assert [t["title"] for t in svc.list_templates(tenant_id=TENANT)] == ["Mine"]
        assert svc.list_templates(tenant_id=OTHER_TENANT) == []

    def test_duplicate_title_conflict(self, sample_document):
        svc.create_template({"title": "T", "data": sample_document.to_dict()}, tenant_id=TENANT)
        with pytest.raises(ConflictError):
            svc.create_template({"title": "T", "data": sample_document.to_dict()}, tenant_id=TENANT)
        svc.create_template({"title": "T", "data": sample_document.to_dict()}, tenant_id=OTHER_TENANT)

    def test_template_requires_source(self):
        with pytest.raises(ValidationError):
            svc.create_template({"title": "Empty"})

    def test_other_tenant_template_not_found(self, sample_document):
        template = svc.create_template({"title": "T", "data": sample_document.to_dict()}, tenant_id=TENANT)
        with pytest.raises(NotFoundError):
            svc.create_map_from_template(template["id"], tenant_id=OTHER_TENANT)


# ═════════════════════════════════════════════════════════════════════════════
# Analytics & sessions
# ═════════════════════════════════════════════════════════════════════════════


class TestAnalyticsAndSessions:
    def test_map_analytics(self, sample_document):
        jm = _create(data=sample_document.to_dict())
        data = svc.map_analytics(jm["id"], tenant_id=TENANT)
        assert [row["sentiment"] for row in data["sentiment_by_stage"]] == [2, -1, 0]
        assert data["completeness_pct"] == 56

    def test_portfolio_scoped_to_tenant(self, sample_document):
        _create("Mine", data=sample_document.to_dict())
        _create("Theirs", tenant_id=OTHER_TENANT)
        result = svc.portfolio_analytics(tenant_id=TENANT)
        assert result["total_maps"] == 1
        assert result["pain_by_map"][0]["name"] == "Mine"

    def test_open_session_autosaves(self):
        jm = _create()
        now = [0.0]
        editing = svc.open_session(jm["id"], tenant_id=TENANT, created_by="alice", clock=lambda: now[0])
        editing.edit(m.add_stage, "Purchase")
        assert editing.autosave.state == SaveState.PENDING

        now[0] = 29.0
        editing.tick()
        assert svc.list_versions(jm["id"]) == []

        now[0] = 30.0
        editing.tick()
        versions = svc.list_versions(jm["id"])
        assert len(versions) == 1
        assert versions[0]["created_by"] == "alice"
        assert [s.name for s in svc.load_document(jm["id"]).stages] == ["Awareness", "Purchase"]
        assert editing.autosave.last_result["version"]["version_number"] == 1

    def test_session_save_failure_enters_failed(self, monkeypatch):
        jm = _create()
        editing = svc.open_session(jm["id"])

        def _boom():
            raise SQLAlchemyError("locked")

        monkeypatch.setattr(_db.session, "commit", _boom)
        editing.edit(m.set_title, "Unsaved")
        editing.save()
        assert editing.autosave.state == SaveState.FAILED
        assert isinstance(editing.autosave.last_error, PersistenceError)
        assert editing.document.title == "Unsaved"
