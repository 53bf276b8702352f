from flask import Blueprint, Response, jsonify
from prometheus_client import REGISTRY, generate_latest, CONTENT_TYPE_LATEST

from donation_pages.routes.builder_routes import current_owner

admin_bp = Blueprint("admin", __name__)


@admin_bp.get("/admin/metrics")
def metrics():
    """Prometheus metrics: checkout sessions, refreshes, status polls, unknown blocks."""
    return Response(
        generate_latest(REGISTRY),
        mimetype=CONTENT_TYPE_LATEST,
    )


# The caller's own credential session, from its session cookie. Never returns tokens.
@admin_bp.get("/admin/session")
def session_status():
    api = current_owner(required=False)
    if api is None:
        return jsonify({"authenticated": False, "user": None, "refreshing": False}), 200
    return jsonify(
        {
            "authenticated": True,
            "user": api.store.get_user(),
            "refreshing": api.coordinator.refreshing,
        }
    ), 200
