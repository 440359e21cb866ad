"""
middleware/auth_middleware.py — JWT authentication decorator.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature using HS256
  3. Checks token expiry
  4. Attaches user_id (int) and user_role (GlobalRole) to flask.g for the
     duration of the request
  5. Returns the appropriate 401 error if any step fails

Strict responsibility boundary:
  - This middleware extracts the JWT and attaches identity to flask.g ONLY.
  - It does NOT perform business authorization (event roles, admin checks).
    That belongs in the service layer. Middleware = authentication (401).
    Service = authorization (403).
  - Services receive user_id / role as plain arguments, with no knowledge
    of JWT or HTTP headers.

The global role is read from the token's `role` claim, so a role change
takes effect at the user's next login or refresh.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
  → 403 FORBIDDEN is never raised here; it is raised by service functions.
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from eventledger.app.errors import AppError, ErrorCode
from eventledger.app.models.user import GlobalRole


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Sets g.user_id and g.user_role before the view runs. Failures surface as
    AppError and are rendered by the global handler.

    Usage:
        @events_bp.get("")
        @require_auth
        def list_events():
            events = event_service.list_events(g.user_id, session=db.session)
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _token_error(code: str, message: str) -> AppError:
    return AppError(code, message, 401)


def _bearer_token() -> str:
    """Returns the raw token from "Authorization: Bearer <token>"."""
    header = request.headers.get("Authorization", "")
    if not header:
        raise _token_error(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Send an Authorization: Bearer <token> header.",
        )

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )
    return token


def _decode(token: str) -> dict:
    config = current_app.config
    try:
        return jwt.decode(
            token,
            config["JWT_SECRET_KEY"],
            algorithms=[config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise _token_error(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
        )
    except jwt.InvalidTokenError:
        raise _token_error(ErrorCode.TOKEN_INVALID, "The access token is invalid.")


def _authenticate_request() -> None:
    """
    Verifies the bearer token and sets flask.g.user_id and flask.g.user_role.

    Callable on its own inside a test request context.
    """
    payload = _decode(_bearer_token())

    # sub is a string per RFC 7519; it must still parse as a user id.
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' claim.",
        )

    try:
        role = GlobalRole(payload.get("role"))
    except ValueError:
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "The access token carries no valid 'role' claim.",
        )

    g.user_id = user_id
    g.user_role = role
