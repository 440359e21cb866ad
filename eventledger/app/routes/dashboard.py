"""
routes/dashboard.py — Event budget summary.

Endpoints (url_prefix=/api/v1/dashboard):
  GET /dashboard/:event_id → 200  totals, remaining, percent spent, recent activity

Any role on the event may read it; strangers get 403.

The id is taken as a raw path segment (no <int:> converter) so that a
malformed id is answered with INVALID_IDENTIFIER (400) instead of a 404.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from eventledger.app.extensions import db
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/<string:event_id>", methods=["GET"])
@require_auth
def get_dashboard(event_id: str):
    result = dashboard_service.get_dashboard(
        raw_event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
