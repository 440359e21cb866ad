"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - Self-registration and credential validation
  - JWT access token creation (HS256)
  - Refresh token lifecycle (creation, rotation, removal)
  - Password hashing (bcrypt), password change, temporary-password reset

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is read for JWT secrets, TTLs and bcrypt cost only.

Token design:
  - Access token: JWT, HS256, 15 min TTL, claims sub (user id as str), role,
    iat, exp, jti.
  - Refresh token: cryptographically random hex string, stored in DB as
    SHA-256 hash (never the raw value). Rotated on every refresh: the old
    row is deleted and a new one inserted while the user row is locked.
  - The raw refresh token is returned to the client once and never stored.

Temporary passwords:
  - Accounts provisioned by an admin, or reset through request-temp-password,
    carry password_changed = False and an expiry two days out. Login and
    change-password both refuse an expired temporary password with
    TEMP_PASSWORD_EXPIRED (403).
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from html import escape
from urllib.parse import quote

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from eventledger.app.errors import AppError, ErrorCode
from eventledger.app.mailer import EmailDeliveryError
from eventledger.app.models.columns import as_utc, isoformat
from eventledger.app.models.refresh_token import RefreshToken
from eventledger.app.models.user import GlobalRole, User

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If your email is registered, you'll receive instructions shortly."


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string. Used for refresh token storage."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def _check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def generate_temp_password() -> str:
    """12 hex characters; also satisfies the 6-character password minimum."""
    return secrets.token_hex(6)


def issue_temp_password(user: User, now: datetime | None = None) -> str:
    """
    Sets a fresh temporary password on `user` and returns the raw value.
    The caller is responsible for delivering it; it is never stored.
    """
    now = now or datetime.now(timezone.utc)
    temp_password = generate_temp_password()
    user.password_hash = hash_password(temp_password)
    user.password_changed = False
    user.temp_password_expires_at = now + current_app.config["TEMP_PASSWORD_TTL"]
    return temp_password


def temp_password_expired(user: User, now: datetime | None = None) -> bool:
    """True if the account is still on a temporary password that is no longer valid."""
    if user.password_changed:
        return False
    expires_at = as_utc(user.temp_password_expires_at)
    now = now or datetime.now(timezone.utc)
    return expires_at is None or expires_at < now


def _create_access_token(user_id: int, role: GlobalRole) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (user_id as str), role, iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "role": GlobalRole(role).value,
        "iat": now,
        "exp": expiry,
        # Guarantees each issued token is unique even if generated in the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    """
    Creates a new refresh token, stores its SHA-256 hash in the DB,
    and returns the raw token to be sent to the client once.
    """
    raw_token = secrets.token_hex(32)
    expires_at = datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]

    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=expires_at,
    ))
    # flush so the row exists before we return; commit is the route's job
    session.flush()

    return raw_token


def _build_token_pair(user: User, session: Session) -> dict:
    """Returns a dict with both access_token and refresh_token for a user."""
    return {
        "access_token": _create_access_token(user.id, user.role),
        "refresh_token": _create_refresh_token(user.id, session),
    }


def _purge_expired_tokens(user_id: int, session: Session) -> None:
    session.execute(
        delete(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.expires_at <= datetime.now(timezone.utc),
        )
    )


def _find_refresh_record(raw_refresh_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()


def _find_user_by_email(email: str, session: Session) -> User | None:
    return session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No secrets."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "password_changed": user.password_changed,
        "temp_password_expires_at": isoformat(user.temp_password_expires_at),
        "created_by_id": user.created_by_id,
        "created_at": isoformat(user.created_at),
    }


def _invalid_credentials() -> AppError:
    # Same error for unknown email and wrong password to avoid account enumeration.
    return AppError(
        ErrorCode.INVALID_CREDENTIALS,
        "The email or password is incorrect.",
        401,
    )


def _temp_password_expired_error() -> AppError:
    return AppError(
        ErrorCode.TEMP_PASSWORD_EXPIRED,
        "Temporary password expired. Please request a new password reset.",
        403,
    )


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a self-registered account (role 'user') and issues a token pair.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    email = email.strip().lower()
    if _find_user_by_email(email, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        name=name,
        email=email,
        role=GlobalRole.USER,
        password_hash=hash_password(password),
        password_changed=True,
    )
    session.add(user)
    session.flush()  # populate user.id before creating refresh token

    logger.info("Registered user %s", user.id)
    return {
        "user": build_user_dict(user),
        **_build_token_pair(user, session),
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.
    Expired refresh rows for the user are purged on the way.

    Raises:
      AppError(INVALID_CREDENTIALS, 401)   — email not found or password wrong
      AppError(TEMP_PASSWORD_EXPIRED, 403) — still on an expired temporary password

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    user = _find_user_by_email(email, session)

    if user is None or not _check_password(password, user.password_hash):
        raise _invalid_credentials()

    if temp_password_expired(user):
        raise _temp_password_expired_error()

    _purge_expired_tokens(user.id, session)

    return {
        "user": build_user_dict(user),
        **_build_token_pair(user, session),
    }


def refresh_access_token(
        raw_refresh_token: str,
        session: Session,
) -> dict:
    """
    Rotates a refresh token: the presented token is deleted, a new one is
    issued, and a fresh access token is returned.

    The user row is locked (SELECT ... FOR UPDATE) for the duration of the
    rotation so two concurrent refreshes with the same token cannot both
    succeed.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — not found or expired.

    Returns: {"access_token": "...", "refresh_token": "..."}
    """
    record = _find_refresh_record(raw_refresh_token, session)
    if record is None:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has expired.",
            401,
        )

    user = session.execute(
        select(User).where(User.id == record.user_id).with_for_update()
    ).scalar_one()

    # Re-read under the lock; a concurrent rotation may have removed it.
    record = _find_refresh_record(raw_refresh_token, session)
    now = datetime.now(timezone.utc)
    if record is None or as_utc(record.expires_at) <= now:
        if record is not None:
            session.delete(record)
            session.flush()
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has expired.",
            401,
        )

    session.delete(record)
    session.flush()

    return _build_token_pair(user, session)


def logout_user(
        raw_refresh_token: str,
        session: Session,
) -> None:
    """
    Removes a refresh token. Future calls to /auth/refresh with this token
    will return 401 REFRESH_TOKEN_INVALID.

    Access tokens are short-lived and are not revocable without a
    server-side denylist.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — token not found.
    """
    record = _find_refresh_record(raw_refresh_token, session)

    if record is None:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    session.delete(record)
    session.flush()


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user_id from JWT no longer exists in DB.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return build_user_dict(user)


def change_password(
        email: str,
        old_password: str,
        new_password: str,
        session: Session,
) -> dict:
    """
    Replaces a password given the current one. Public: used both by regular
    users and by provisioned users swapping out their temporary password.

    Raises:
      AppError(INVALID_CREDENTIALS, 401)   — unknown email or wrong old password
      AppError(TEMP_PASSWORD_EXPIRED, 403) — temporary password has expired
    """
    user = _find_user_by_email(email, session)
    if user is None or not _check_password(old_password, user.password_hash):
        raise _invalid_credentials()

    if temp_password_expired(user):
        raise _temp_password_expired_error()

    user.password_hash = hash_password(new_password)
    user.password_changed = True
    user.temp_password_expires_at = None
    session.flush()

    return {"message": "Password changed successfully."}


def request_temp_password(email: str, mailer, session: Session) -> dict:
    """
    Issues a new temporary password and emails it. Always returns the same
    generic message so the endpoint cannot be used to probe for accounts.

    Raises:
      AppError(UPSTREAM_FAILURE, 502) — the mail could not be sent. The route
        never commits, so the previous password stays valid.
    """
    user = _find_user_by_email(email, session)
    if user is None:
        logger.info("Temporary password requested for unknown email")
        return {"message": GENERIC_RESET_MESSAGE}

    temp_password = issue_temp_password(user)
    session.flush()

    try:
        send_temp_password_email(
            user,
            temp_password,
            subject="Reset your password - EventLedger",
            mailer=mailer,
        )
    except EmailDeliveryError as exc:
        logger.error("Password reset mail to user %s failed: %s", user.id, exc)
        raise AppError(
            ErrorCode.UPSTREAM_FAILURE,
            "The reset email could not be sent. Please try again later.",
            502,
        ) from exc

    return {"message": GENERIC_RESET_MESSAGE}


def send_temp_password_email(user: User, temp_password: str, subject: str, mailer) -> None:
    """Builds the temporary-password mail and hands it to `mailer`. Raises EmailDeliveryError."""
    link = (
        f"{current_app.config['FRONTEND_URL'].rstrip('/')}/change-password"
        f"?email={quote(user.email)}&temp=true"
    )
    html = (
        f"<p>Hello {escape(user.name)},</p>"
        f"<p>Your temporary password is <strong>{escape(temp_password)}</strong>. "
        f"It expires in two days.</p>"
        f'<p>Set your own password here: <a href="{escape(link)}">{escape(link)}</a></p>'
    )
    mailer.send(user.email, subject, html)
