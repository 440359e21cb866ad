"""
routes/events.py — Event and sharing route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/events):
  POST   /events                        → 201  create event (caller owns it)
  GET    /events                        → 200  events the caller owns or is shared on
  GET    /events/deleted                → 200  soft-deleted events (super_admin)
  GET    /events/:id                    → 200  event + caller's role
  PATCH  /events/:id                    → 200  partial update (owner)
  DELETE /events/:id                    → 200  soft-delete (owner or admin)
  POST   /events/:id/share              → 200  replace share list (owner)
  POST   /events/:id/restore            → 200  undo soft-delete (owner)
  GET    /events/:id/shareable-users    → 200  users not yet on the event (owner)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from eventledger.app.extensions import db
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.schemas.event_schema import (
    CreateEventSchema,
    ShareEventSchema,
    UpdateEventSchema,
)
from eventledger.app.services import event_service

events_bp = Blueprint("events", __name__)


@events_bp.route("", methods=["POST"])
@require_auth
def create_event():
    """POST /events — Create an event. Caller becomes owner."""
    data = CreateEventSchema().load(request.get_json(force=True) or {})
    result = event_service.create_event(
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@events_bp.route("", methods=["GET"])
@require_auth
def list_events():
    result = event_service.list_events(
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/deleted", methods=["GET"])
@require_auth
def list_deleted_events():
    result = event_service.list_deleted_events(
        caller_role=g.user_role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["GET"])
@require_auth
def get_event(event_id: int):
    result = event_service.get_event(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["PATCH"])
@require_auth
def update_event(event_id: int):
    """PATCH /events/:id — Owner only. shared_with replaces the share list."""
    data = UpdateEventSchema().load(request.get_json(force=True) or {})
    result = event_service.update_event(
        event_id=event_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>", methods=["DELETE"])
@require_auth
def delete_event(event_id: int):
    """DELETE /events/:id — Soft-delete. Expenses and cash entries are kept."""
    event_service.delete_event(
        event_id=event_id,
        caller_id=g.user_id,
        caller_role=g.user_role,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Event deleted."}, "warnings": []}), 200


@events_bp.route("/<int:event_id>/share", methods=["POST"])
@require_auth
def share_event(event_id: int):
    data = ShareEventSchema().load(request.get_json(force=True) or {})
    result = event_service.share_event(
        event_id=event_id,
        caller_id=g.user_id,
        shared_with=data["shared_with"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>/restore", methods=["POST"])
@require_auth
def restore_event(event_id: int):
    result = event_service.restore_event(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@events_bp.route("/<int:event_id>/shareable-users", methods=["GET"])
@require_auth
def shareable_users(event_id: int):
    result = event_service.list_shareable_users(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
