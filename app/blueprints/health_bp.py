"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  : simple 200 for load balancers
    GET /api/v1/health/live   : database check, journey table counts, request stats
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.middleware.timing import summarize_recent
from app.models import db
from app.models.journey_map import JourneyMap, JourneyMapTemplate, JourneyMapVersion

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe: always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Journey tables ───────────────────────────────────────────────
    if overall:
        try:
            checks["journey_maps"] = {
                "status": "ok",
                "maps": JourneyMap.query.count(),
                "versions": JourneyMapVersion.query.count(),
                "templates": JourneyMapTemplate.query.count(),
            }
        except SQLAlchemyError as exc:
            checks["journey_maps"] = {"status": "error", "detail": str(exc)}
            overall = False
            logger.error("Health check: journey tables failed: %s", exc)

    # ── Requests (last hour) ─────────────────────────────────────────
    checks["requests"] = summarize_recent(3600)

    checks["app"] = {
        "name": "Journey Map Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "autosave_debounce_seconds": current_app.config.get("JOURNEY_AUTOSAVE_DEBOUNCE_SECONDS"),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
