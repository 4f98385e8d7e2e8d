# Overview: Thin JSON transport over the universal facade; parses input and returns JSON responses.

"""
POST /api/v1/<kind>/<verb>

Body: {"organization_id": "...", "actor": "...", ...payload}

The route forwards the body to universal_service.execute unchanged (minus
actor) and renders StoreError as {"error", "message", "details"} with the
error's status code.
"""

import time

from flask import Blueprint, current_app, jsonify, request

from ..errors import StoreError
from ..extensions import db
from ..models import Organization
from ..services import universal_service


universal_bp = Blueprint("universal", __name__, url_prefix="/api/v1")


@universal_bp.post("/<kind>/<verb>")
def execute_route(kind: str, verb: str):
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "InvalidPayload", "message": "JSON body must be an object", "details": None}), 400

    payload = dict(data)
    actor = payload.pop("actor", None)
    organization_id = payload.get("organization_id")

    try:
        result = universal_service.execute(kind, verb, organization_id, payload, actor=actor)
        return jsonify(result), 200

    except StoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to execute %s/%s", kind, verb)
        return jsonify({"error": "InternalError", "message": "Internal server error", "details": None}), 500


@universal_bp.get("/health")
def health_route():
    """Liveness plus a round trip to the backing store."""
    start_time = time.time()
    try:
        organizations = db.session.query(Organization).count()
    except Exception:
        current_app.logger.exception("Database health check failed")
        return jsonify({"status": "unhealthy", "error": "Database error"}), 503

    return jsonify({
        "status": "ok",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {"organizations": organizations},
    }), 200
