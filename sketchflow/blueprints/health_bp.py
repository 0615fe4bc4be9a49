"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round-trip and schema presence
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect

from sketchflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

# Tables the workflow cannot run without
_REQUIRED_TABLES = (
    "regions", "sub_regions", "sub_districts", "settlements",
    "drafting_centers", "sketch_requests", "assignments",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Schema ───────────────────────────────────────────────────────
    if overall:
        existing = set(inspect(db.engine).get_table_names())
        missing = [t for t in _REQUIRED_TABLES if t not in existing]
        checks["schema"] = {"status": "ok"} if not missing else {"status": "error", "missing": missing}
        overall = not missing

    checks["app"] = {
        "name": "SketchFlow",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
