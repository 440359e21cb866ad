"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries. No bare SQL.
AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register               → 201
  POST   /auth/login                  → 200
  POST   /auth/refresh                → 200
  POST   /auth/logout                 → 200
  GET    /auth/me                     → 200
  POST   /auth/change-password        → 200  (public)
  POST   /auth/request-temp-password  → 200  (public)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from eventledger.app.extensions import db, get_email_sender
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.schemas.auth_schema import (
    ChangePasswordSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
    RequestTempPasswordSchema,
)
from eventledger.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account; return tokens. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True) or {})
    result = auth_service.register_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Rotate the refresh token and issue a new access token."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    result = auth_service.refresh_access_token(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /auth/logout — Remove the refresh token. (Auth required.)"""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    auth_service.logout_user(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/change-password", methods=["POST"])
def change_password():
    """POST /auth/change-password — Swap the current (or temporary) password."""
    data = ChangePasswordSchema().load(request.get_json(force=True) or {})
    result = auth_service.change_password(
        email=data["email"],
        old_password=data["old_password"],
        new_password=data["new_password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/request-temp-password", methods=["POST"])
def request_temp_password():
    """
    POST /auth/request-temp-password — Email a temporary password.
    Same response whether or not the address is registered.
    """
    data = RequestTempPasswordSchema().load(request.get_json(force=True) or {})
    result = auth_service.request_temp_password(
        email=data["email"],
        mailer=get_email_sender(),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
