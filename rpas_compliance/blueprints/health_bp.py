"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready   simple 200 for load balancers
    GET /api/v1/health/live    database round-trip plus change-feed status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from rpas_compliance.models import db
from rpas_compliance.services.subscriptions import change_feed

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe; always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["change_feed"] = {"status": "ok", "subscribers": change_feed.subscriber_count()}
    checks["app"] = {
        "name": "RPAS Compliance Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
