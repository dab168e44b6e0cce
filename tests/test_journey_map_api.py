"""
Journey Map Platform
Tests: journey map REST API and health endpoints.

Covers:
    - map CRUD, list envelope, duplicate
    - document load/save, operations, section curve
    - versions list/get/restore
    - comments, templates, analytics, cell-type registry
    - error bodies: 400 / 404 / 409 / 415 / 422 / 503
    - health probes
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query

from app.models import db as _db
TEST_TENANT_ID = 1

BASE = "/api/v1/journey-maps"


def _url(path="", **params):
    query = "&".join(f"{k}={v}" for k, v in {"tenant_id": TEST_TENANT_ID, **params}.items())
    return f"{BASE}{path}?{query}"


def _save(client, mid, document):
    res = client.put(_url(f"/{mid}/document"), json={"document": document})
    assert res.status_code == 200, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Maps
# ═════════════════════════════════════════════════════════════════════════════


class TestMapEndpoints:
    def test_create_and_get(self, client, journey_map):
        assert journey_map["title"] == "Checkout Journey"
        assert journey_map["tenant_id"] == TEST_TENANT_ID
        res = client.get(_url(f"/{journey_map['id']}"))
        assert res.status_code == 200
        assert res.get_json()["data"]["stages"][0]["name"] == "Awareness"

    def test_created_by_from_header(self, client):
        res = client.post(BASE, json={"title": "X"}, headers={"X-User": "carol"})
        assert res.get_json()["created_by"] == "carol"

    def test_list_envelope(self, client, journey_map):
        res = client.get(_url("", limit=10))
        body = res.get_json()
        assert body["total"] == 1
        assert body["limit"] == 10
        assert body["offset"] == 0
        assert body["items"][0]["id"] == journey_map["id"]
        assert "data" not in body["items"][0]

    def test_list_bad_status_is_422(self, client):
        res = client.get(_url("", status="exploded"))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_DOCUMENT"

    def test_update(self, client, journey_map):
        res = client.put(_url(f"/{journey_map['id']}"), json={"title": "Renamed", "status": "published"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "published"
        assert res.get_json()["data"]["title"] == "Renamed"

    def test_duplicate(self, client, journey_map):
        res = client.post(_url(f"/{journey_map['id']}/duplicate"))
        assert res.status_code == 201
        assert res.get_json()["title"] == "Checkout Journey (Copy)"

    def test_delete(self, client, journey_map):
        res = client.delete(_url(f"/{journey_map['id']}"))
        assert res.get_json() == {"deleted": True, "id": journey_map["id"]}
        assert client.get(_url(f"/{journey_map['id']}")).status_code == 404

    def test_not_found_body(self, client):
        res = client.get(_url("/9999"))
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert body["error"] == "JourneyMap not found"

    def test_other_tenant_gets_404(self, client, journey_map):
        res = client.get(f"{BASE}/{journey_map['id']}?tenant_id=99")
        assert res.status_code == 404

    def test_non_object_body_is_422(self, client):
        res = client.post(_url(), json=["not", "an", "object"])
        assert res.status_code == 422

    def test_create_with_non_string_section_type_is_422(self, client):
        res = client.post(_url(), json={"title": "X", "data": {"sections": [{"id": "s", "type": {"a": 1}}]}})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_DOCUMENT"

    def test_create_with_non_string_status_is_422(self, client):
        res = client.post(_url(), json={"title": "X", "status": ["draft"]})
        assert res.status_code == 422

    def test_non_json_content_type_is_415(self, client):
        res = client.post(_url(), data="title=x", content_type="text/plain")
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# Document editing
# ═════════════════════════════════════════════════════════════════════════════


class TestDocumentEndpoints:
    def test_get_document(self, client, journey_map):
        res = client.get(_url(f"/{journey_map['id']}/document"))
        body = res.get_json()
        assert body["map_id"] == journey_map["id"]
        assert body["document"]["sections"] == []

    def test_save_document_versions(self, client, journey_map, sample_document):
        first = _save(client, journey_map["id"], sample_document.to_dict())
        second = _save(client, journey_map["id"], sample_document.to_dict())
        assert first["version"]["version_number"] == 1
        assert second["version"]["version_number"] == 2
        assert first["map"]["title"] == "Sample"

    def test_save_requires_document(self, client, journey_map):
        res = client.put(_url(f"/{journey_map['id']}/document"), json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_save_malformed_document_is_422(self, client, journey_map):
        res = client.put(
            _url(f"/{journey_map['id']}/document"),
            json={"document": {"sections": [{"id": "x", "type": "hologram"}]}},
        )
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_DOCUMENT"
        assert body["details"]["type"] == "hologram"

    def test_operations(self, client, journey_map):
        res = client.post(_url(f"/{journey_map['id']}/operations"), json={"ops": [
            {"op": "add_stage", "name": "Purchase", "stage_id": "st_2"},
            {"op": "add_section", "type": "sentiment_graph", "section_id": "mood"},
            {"op": "set_cell", "section_id": "mood", "stage_id": "st_1", "value": {"value": 4}},
        ]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["changed"] is True
        assert [s["id"] for s in body["document"]["stages"]] == ["st_1", "st_2"]

        curve = client.get(_url(f"/{journey_map['id']}/sections/mood/curve")).get_json()
        assert curve["section_id"] == "mood"
        assert [p["y"] for p in curve["curve"]["points"]] == [18.0, 50.0]
        assert curve["curve"]["path"].startswith("M 25 18 C")

    def test_operations_required(self, client, journey_map):
        res = client.post(_url(f"/{journey_map['id']}/operations"), json={})
        assert res.status_code == 400

    def test_unknown_operation_is_422(self, client, journey_map):
        res = client.post(_url(f"/{journey_map['id']}/operations"), json={"ops": [{"op": "nuke"}]})
        assert res.status_code == 422

    def test_curve_unknown_section(self, client, journey_map):
        res = client.get(_url(f"/{journey_map['id']}/sections/nope/curve"))
        assert res.status_code == 404

    def test_persistence_error_is_503(self, client, journey_map, sample_document, monkeypatch):
        def _boom():
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(_db.session, "commit", _boom)
        res = client.put(_url(f"/{journey_map['id']}/document"), json={"document": sample_document.to_dict()})
        assert res.status_code == 503
        body = res.get_json()
        assert body["code"] == "ERR_PERSISTENCE"
        assert body["error"] == "save failed, please retry"

    def test_read_failure_is_503(self, client, journey_map, monkeypatch):
        def _boom(self, *args, **kwargs):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(Query, "all", _boom)
        res = client.get(_url(f"/{journey_map['id']}/versions"))
        assert res.status_code == 503
        assert res.get_json()["error"] == "version_list failed, please retry"


# ═════════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════════


class TestVersionEndpoints:
    @pytest.fixture
    def versions(self, client, journey_map, sample_document):
        doc = sample_document.to_dict()
        v1 = _save(client, journey_map["id"], {**doc, "title": "One"})["version"]
        v2 = _save(client, journey_map["id"], {**doc, "title": "Two"})["version"]
        return v1, v2

    def test_list_newest_first(self, client, journey_map, versions):
        body = client.get(_url(f"/{journey_map['id']}/versions")).get_json()
        assert body["total"] == 2
        assert [v["version_number"] for v in body["items"]] == [2, 1]
        assert "snapshot" not in body["items"][0]

    def test_get_snapshot(self, client, journey_map, versions):
        v1, _ = versions
        body = client.get(_url(f"/{journey_map['id']}/versions/{v1['id']}")).get_json()
        assert body["snapshot"]["title"] == "One"

    def test_restore_preview(self, client, journey_map, versions):
        v1, _ = versions
        res = client.post(_url(f"/{journey_map['id']}/versions/{v1['id']}/restore"), json={})
        body = res.get_json()
        assert body["document"]["title"] == "One"
        assert body["persisted"] is False
        assert body["version"] is None

    def test_restore_persist(self, client, journey_map, versions):
        v1, _ = versions
        res = client.post(_url(f"/{journey_map['id']}/versions/{v1['id']}/restore"), json={"persist": True})
        body = res.get_json()
        assert body["persisted"] is True
        assert body["version"]["version_number"] == 3
        doc = client.get(_url(f"/{journey_map['id']}/document")).get_json()["document"]
        assert doc["title"] == "One"

    def test_missing_version(self, client, journey_map):
        res = client.get(_url(f"/{journey_map['id']}/versions/999"))
        assert res.status_code == 404
        assert res.get_json()["error"] == "JourneyMapVersion not found"


# ═════════════════════════════════════════════════════════════════════════════
# Comments, templates, analytics, registry
# ═════════════════════════════════════════════════════════════════════════════


class TestCommentEndpoints:
    def test_lifecycle(self, client, journey_map):
        mid = journey_map["id"]
        res = client.post(
            _url(f"/{mid}/comments"),
            json={"section_id": "s", "stage_id": "st_1", "content": "Check this"},
            headers={"X-User": "dana"},
        )
        assert res.status_code == 201
        comment = res.get_json()
        assert comment["user_name"] == "dana"

        res = client.put(_url(f"/{mid}/comments/{comment['id']}"), json={"resolved": True})
        assert res.get_json()["resolved"] is True
        open_only = client.get(_url(f"/{mid}/comments", include_resolved="false")).get_json()
        assert open_only["total"] == 0

        res = client.delete(_url(f"/{mid}/comments/{comment['id']}"))
        assert res.get_json()["deleted"] is True

    def test_missing_fields(self, client, journey_map):
        res = client.post(_url(f"/{journey_map['id']}/comments"), json={"content": "x"})
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"section_id", "stage_id"}


class TestTemplateEndpoints:
    def test_create_list_and_use(self, client, sample_document):
        res = client.post(_url("/templates"), json={"title": "Mine", "data": sample_document.to_dict()})
        assert res.status_code == 201
        tid = res.get_json()["id"]

        listing = client.get(_url("/templates")).get_json()
        assert [t["title"] for t in listing["items"]] == ["Mine"]

        res = client.post(_url(f"/from-template/{tid}"), json={"title": "From template"})
        assert res.status_code == 201
        assert res.get_json()["title"] == "From template"
        assert len(res.get_json()["data"]["sections"]) == 3

    def test_duplicate_is_409(self, client, sample_document):
        payload = {"title": "Mine", "data": sample_document.to_dict()}
        client.post(_url("/templates"), json=payload)
        res = client.post(_url("/templates"), json=payload)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_unknown_template(self, client):
        assert client.post(_url("/from-template/999"), json={}).status_code == 404


class TestAnalyticsEndpoints:
    def test_map_analytics(self, client, journey_map, sample_document):
        _save(client, journey_map["id"], sample_document.to_dict())
        body = client.get(_url(f"/{journey_map['id']}/analytics")).get_json()
        assert body["stage_count"] == 3
        assert body["pain_by_stage"][1]["severity"] == 4
        assert body["completeness_pct"] == 56

    def test_portfolio(self, client, journey_map):
        body = client.get(_url("/analytics/portfolio")).get_json()
        assert body["total_maps"] == 1
        assert body["common_stages"] == [{"name": "Awareness", "count": 1}]

    def test_cell_types(self, client):
        items = client.get(f"{BASE}/cell-types").get_json()["items"]
        by_type = {i["type"]: i for i in items}
        assert by_type["pain_point"]["default"] == {"value": "", "severity": 1}
        assert by_type["kpi"]["label"] == "KPI"
        assert len(items) == 19


# ═════════════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client, journey_map):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["journey_maps"]["maps"] == 1
        assert body["checks"]["requests"]["requests"] >= 1

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nowhere"

    def test_request_headers(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_body_too_large(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64)
        res = client.post(_url(), json={"title": "x" * 200})
        assert res.status_code == 413
        assert res.get_json()["code"] == "ERR_TOO_LARGE"
