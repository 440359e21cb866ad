"""
routes/collected_cash.py — Cash collection route handlers.

Registered at url_prefix=/api/v1, like expenses, because it owns both the
event-scoped paths and the entry-ID paths.

Endpoints:
  POST   /events/:id/collected-cash   → 201  record a contribution (owner/editor)
  GET    /events/:id/collected-cash   → 200  list contributions (any role)
  PATCH  /collected-cash/:id          → 200  partial update (owner/editor)
  DELETE /collected-cash/:id          → 200  hard delete (owner/editor)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from eventledger.app.extensions import db
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.schemas.collected_cash_schema import (
    CreateCollectedCashSchema,
    UpdateCollectedCashSchema,
)
from eventledger.app.services import collected_cash_service

collected_cash_bp = Blueprint("collected_cash", __name__)


@collected_cash_bp.route("/events/<int:event_id>/collected-cash", methods=["POST"])
@require_auth
def create_entry(event_id: int):
    data = CreateCollectedCashSchema().load(request.get_json(force=True) or {})
    result = collected_cash_service.create_entry(
        event_id=event_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@collected_cash_bp.route("/events/<int:event_id>/collected-cash", methods=["GET"])
@require_auth
def list_entries(event_id: int):
    result = collected_cash_service.list_entries(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@collected_cash_bp.route("/collected-cash/<int:entry_id>", methods=["PATCH"])
@require_auth
def update_entry(entry_id: int):
    data = UpdateCollectedCashSchema().load(
        request.get_json(force=True) or {},
        partial=True,
    )
    result = collected_cash_service.update_entry(
        entry_id=entry_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@collected_cash_bp.route("/collected-cash/<int:entry_id>", methods=["DELETE"])
@require_auth
def delete_entry(entry_id: int):
    collected_cash_service.delete_entry(
        entry_id=entry_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Collected cash entry deleted."}, "warnings": []}), 200
