"""
routes/users.py — Admin user management.

Endpoints (url_prefix=/api/v1/users):
  GET    /users                 → 200  everyone except the caller (admin)
  POST   /users                 → 201  provision an account (admin)
  GET    /users/created-by-me   → 200  accounts the caller provisioned (admin)
  PATCH  /users/:id/role        → 200  change global role (super_admin)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from eventledger.app.extensions import db, get_email_sender
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.schemas.user_schema import ChangeRoleSchema, CreateUserSchema
from eventledger.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("", methods=["GET"])
@require_auth
def list_users():
    result = user_service.list_users(
        caller_id=g.user_id,
        caller_role=g.user_role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("", methods=["POST"])
@require_auth
def create_user():
    """
    POST /users — Create an account with an emailed temporary password.
    A failed email does not fail the request; `email_sent` reports it.
    """
    data = CreateUserSchema().load(request.get_json(force=True) or {})
    result = user_service.create_user(
        caller_id=g.user_id,
        caller_role=g.user_role,
        name=data["name"],
        email=data["email"],
        role=data["role"],
        mailer=get_email_sender(),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@users_bp.route("/created-by-me", methods=["GET"])
@require_auth
def created_by_me():
    result = user_service.list_created_by(
        caller_id=g.user_id,
        caller_role=g.user_role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>/role", methods=["PATCH"])
@require_auth
def change_role(user_id: int):
    data = ChangeRoleSchema().load(request.get_json(force=True) or {})
    result = user_service.change_role(
        caller_role=g.user_role,
        target_user_id=user_id,
        new_role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
