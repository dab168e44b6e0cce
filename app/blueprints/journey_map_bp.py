"""
Customer Journey Maps

Blueprint: journey_map_bp
Prefix: /api/v1/journey-maps

Endpoints:
  Maps:
    GET/POST        /                                   -- List (search/status/sort/created_by) / create
    GET/PUT/DELETE  /<mid>                              -- Single map; PUT with "data" saves + versions
    POST            /<mid>/duplicate                    -- Copy as draft "(Copy)"

  Document editing:
    GET/PUT         /<mid>/document                     -- Load (repaired) / save full snapshot
    POST            /<mid>/operations                   -- Apply {"ops": [...]} and save
    GET             /<mid>/sections/<sid>/curve         -- Sentiment overlay curve for one row

  Versions:
    GET             /<mid>/versions                     -- Summaries, newest first
    GET             /<mid>/versions/<vid>               -- Snapshot
    POST            /<mid>/versions/<vid>/restore       -- {"persist": bool}

  Comments:
    GET/POST        /<mid>/comments                     -- Filter by section_id/stage_id/include_resolved
    PUT/DELETE      /<mid>/comments/<cid>               -- Edit / resolve / delete

  Templates:
    GET/POST        /templates                          -- System + tenant templates / save template
    POST            /from-template/<tid>                -- New map from template

  Analytics:
    GET             /<mid>/analytics                    -- Per-map derived metrics
    GET             /analytics/portfolio                -- Cross-map dashboard

  Registry:
    GET             /cell-types                         -- Section types with default payloads
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import pagination_args
from app.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.services import journey_map_service as svc
from app.services.journey.cell_variants import get_variant, variant_tags
from app.services.journey.sentiment_curve import section_curve
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

journey_map_bp = Blueprint("journey_maps", __name__, url_prefix="/api/v1/journey-maps")


def _tenant_id() -> int | None:
    """Extract tenant_id from query string or JSON body."""
    tid = request.args.get("tenant_id", type=int)
    if tid:
        return tid
    data: dict = request.get_json(silent=True) or {}
    tid = data.get("tenant_id") if isinstance(data, dict) else None
    return int(tid) if tid else None


def _actor() -> str:
    """Extract actor identifier from request headers."""
    return request.headers.get("X-User", "system")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _flag(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes")


# ── Error handlers ────────────────────────────────────────────────────────────


@journey_map_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@journey_map_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_DOCUMENT, str(error), details=error.details)


@journey_map_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@journey_map_bp.errorhandler(PersistenceError)
def _handle_persistence(error: PersistenceError):
    logger.error("Journey map persistence error endpoint=%s: %s", request.endpoint, error)
    return api_error(E.PERSISTENCE, f"{error.operation} failed, please retry")


# ═════════════════════════════════════════════════════════════════════════
# Maps
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("", methods=["GET"])
def list_maps():
    limit, offset = pagination_args()
    items, total = svc.list_maps(
        _tenant_id(),
        search=request.args.get("search"),
        status=request.args.get("status"),
        sort=request.args.get("sort", "updated"),
        created_by=request.args.get("created_by"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": items, "total": total, "limit": limit, "offset": offset}), 200


@journey_map_bp.route("", methods=["POST"])
def create_map():
    data = _json_body()
    jm = svc.create_map(data, tenant_id=_tenant_id(), created_by=_actor())
    return jsonify(jm), 201


@journey_map_bp.route("/<int:mid>", methods=["GET"])
def get_map(mid):
    return jsonify(svc.get_map(mid, tenant_id=_tenant_id())), 200


@journey_map_bp.route("/<int:mid>", methods=["PUT"])
def update_map(mid):
    data = _json_body()
    return jsonify(svc.update_map(mid, data, tenant_id=_tenant_id(), updated_by=_actor())), 200


@journey_map_bp.route("/<int:mid>", methods=["DELETE"])
def delete_map(mid):
    svc.delete_map(mid, tenant_id=_tenant_id())
    return jsonify({"deleted": True, "id": mid}), 200


@journey_map_bp.route("/<int:mid>/duplicate", methods=["POST"])
def duplicate_map(mid):
    return jsonify(svc.duplicate_map(mid, tenant_id=_tenant_id(), created_by=_actor())), 201


# ═════════════════════════════════════════════════════════════════════════
# Document editing
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/<int:mid>/document", methods=["GET"])
def get_document(mid):
    doc = svc.load_document(mid, tenant_id=_tenant_id())
    return jsonify({"map_id": mid, "document": doc.to_dict()}), 200


@journey_map_bp.route("/<int:mid>/document", methods=["PUT"])
def save_document(mid):
    data = _json_body()
    if "document" not in data:
        return api_error(E.VALIDATION_REQUIRED, "document is required")
    kwargs = {"persona_id": data["persona_id"]} if "persona_id" in data else {}
    result = svc.save_document(
        mid, data["document"], tenant_id=_tenant_id(), created_by=_actor(), **kwargs,
    )
    return jsonify(result), 200


@journey_map_bp.route("/<int:mid>/operations", methods=["POST"])
def apply_operations(mid):
    data = _json_body()
    if "ops" not in data:
        return api_error(E.VALIDATION_REQUIRED, "ops is required")
    result = svc.apply_operations(mid, data["ops"], tenant_id=_tenant_id(), created_by=_actor())
    return jsonify(result), 200


@journey_map_bp.route("/<int:mid>/sections/<section_id>/curve", methods=["GET"])
def get_section_curve(mid, section_id):
    doc = svc.load_document(mid, tenant_id=_tenant_id())
    section = doc.find_section(section_id)
    if section is None:
        return api_error(E.NOT_FOUND, "Section not found")
    return jsonify({"section_id": section_id, "curve": section_curve(doc, section).to_dict()}), 200


# ═════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/<int:mid>/versions", methods=["GET"])
def list_versions(mid):
    items = svc.list_versions(mid, tenant_id=_tenant_id())
    return jsonify({"items": items, "total": len(items)}), 200


@journey_map_bp.route("/<int:mid>/versions/<int:vid>", methods=["GET"])
def get_version(mid, vid):
    return jsonify(svc.get_version(mid, vid, tenant_id=_tenant_id())), 200


@journey_map_bp.route("/<int:mid>/versions/<int:vid>/restore", methods=["POST"])
def restore_version(mid, vid):
    data = _json_body()
    document, saved = svc.restore_version(
        mid, vid,
        tenant_id=_tenant_id(),
        persist=bool(data.get("persist", False)),
        created_by=_actor(),
    )
    return jsonify({
        "document": document.to_dict(),
        "persisted": saved is not None,
        "version": saved["version"] if saved else None,
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/<int:mid>/comments", methods=["GET"])
def list_comments(mid):
    items = svc.list_comments(
        mid,
        tenant_id=_tenant_id(),
        section_id=request.args.get("section_id"),
        stage_id=request.args.get("stage_id"),
        include_resolved=_flag("include_resolved", default=True),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@journey_map_bp.route("/<int:mid>/comments", methods=["POST"])
def create_comment(mid):
    data = _json_body()
    return jsonify(svc.create_comment(mid, data, tenant_id=_tenant_id(), user_name=_actor())), 201


@journey_map_bp.route("/<int:mid>/comments/<int:cid>", methods=["PUT"])
def update_comment(mid, cid):
    data = _json_body()
    return jsonify(svc.update_comment(mid, cid, data, tenant_id=_tenant_id())), 200


@journey_map_bp.route("/<int:mid>/comments/<int:cid>", methods=["DELETE"])
def delete_comment(mid, cid):
    svc.delete_comment(mid, cid, tenant_id=_tenant_id())
    return jsonify({"deleted": True, "id": cid}), 200


# ═════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/templates", methods=["GET"])
def list_templates():
    items = svc.list_templates(tenant_id=_tenant_id())
    return jsonify({"items": items, "total": len(items)}), 200


@journey_map_bp.route("/templates", methods=["POST"])
def create_template():
    data = _json_body()
    return jsonify(svc.create_template(data, tenant_id=_tenant_id(), created_by=_actor())), 201


@journey_map_bp.route("/from-template/<int:tid>", methods=["POST"])
def create_from_template(tid):
    data = _json_body()
    jm = svc.create_map_from_template(
        tid, tenant_id=_tenant_id(), created_by=_actor(), title=data.get("title"),
    )
    return jsonify(jm), 201


# ═════════════════════════════════════════════════════════════════════════
# Analytics
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/<int:mid>/analytics", methods=["GET"])
def get_analytics(mid):
    return jsonify(svc.map_analytics(mid, tenant_id=_tenant_id())), 200


@journey_map_bp.route("/analytics/portfolio", methods=["GET"])
def get_portfolio_analytics():
    return jsonify(svc.portfolio_analytics(tenant_id=_tenant_id())), 200


# ═════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════


@journey_map_bp.route("/cell-types", methods=["GET"])
def list_cell_types():
    items = []
    for tag in variant_tags():
        variant = get_variant(tag)
        items.append({"type": tag, "label": variant.label, "default": variant.default_payload()})
    return jsonify({"items": items}), 200
