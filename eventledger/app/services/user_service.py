"""
services/user_service.py — Admin-facing account management.

Authorization rules (global roles, read from the access token):
  - Create user, created-by-me, list users: admin or super_admin
  - Granting super_admin on create:          super_admin only
  - Change role:                             super_admin only

Provisioned accounts get a temporary password (see auth_service) that is
emailed to them. A failed email does not undo the account: the failure is
logged and the response says email_sent = false so an admin can follow up.

Layer rules:
  - No Flask request/g access. The caller's id and global role arrive as
    plain arguments; the mailer is passed in by the route.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventledger.app.errors import AppError, ErrorCode, forbidden
from eventledger.app.mailer import EmailDeliveryError
from eventledger.app.models.user import ADMIN_ROLES, GlobalRole, User
from eventledger.app.services import auth_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _require_admin(caller_role: GlobalRole) -> None:
    if GlobalRole(caller_role) not in ADMIN_ROLES:
        raise forbidden("Only administrators may manage users.")


def _require_super_admin(caller_role: GlobalRole, message: str) -> None:
    if GlobalRole(caller_role) != GlobalRole.SUPER_ADMIN:
        raise forbidden(message)


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
            404,
        )
    return user


def _build_user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_user(
        caller_id: int,
        caller_role: GlobalRole,
        name: str,
        email: str,
        role: GlobalRole,
        mailer,
        session: Session,
) -> dict:
    """
    Provisions an account with a temporary password and emails it.

    Raises:
      AppError(FORBIDDEN, 403)       — caller is not an admin, or a non-super
                                       admin tried to grant super_admin
      AppError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: {"user": {...}, "email_sent": bool}
    """
    _require_admin(caller_role)
    if GlobalRole(role) == GlobalRole.SUPER_ADMIN:
        _require_super_admin(caller_role, "Only a super admin may create another super admin.")

    email = email.strip().lower()
    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        name=name,
        email=email,
        role=GlobalRole(role),
        password_hash="",
        created_by_id=caller_id,
    )
    temp_password = auth_service.issue_temp_password(user)
    session.add(user)
    session.flush()

    email_sent = True
    try:
        auth_service.send_temp_password_email(
            user,
            temp_password,
            subject="Your EventLedger account has been created",
            mailer=mailer,
        )
    except EmailDeliveryError as exc:
        email_sent = False
        logger.warning("Account mail for user %s was not delivered: %s", user.id, exc)

    logger.info("User %s provisioned user %s as %s", caller_id, user.id, user.role.value)
    return {
        "user": auth_service.build_user_dict(user),
        "email_sent": email_sent,
    }


def list_created_by(caller_id: int, caller_role: GlobalRole, session: Session) -> list[dict]:
    """Accounts provisioned by the caller, newest first."""
    _require_admin(caller_role)

    users = session.execute(
        select(User)
        .where(User.created_by_id == caller_id)
        .order_by(User.created_at.desc(), User.id.desc())
    ).scalars().all()

    return [auth_service.build_user_dict(u) for u in users]


def list_users(caller_id: int, caller_role: GlobalRole, session: Session) -> list[dict]:
    """Every account except the caller, ordered by name."""
    _require_admin(caller_role)

    users = session.execute(
        select(User)
        .where(User.id != caller_id)
        .order_by(User.name.asc(), User.id.asc())
    ).scalars().all()

    return [_build_user_summary(u) for u in users]


def change_role(
        caller_role: GlobalRole,
        target_user_id: int,
        new_role: GlobalRole,
        session: Session,
) -> dict:
    """
    Sets a user's global role. Role validity is checked by the schema
    (INVALID_ROLE, 400) before this is called.

    Raises:
      AppError(FORBIDDEN, 403)      — caller is not a super admin
      AppError(USER_NOT_FOUND, 404) — target does not exist
    """
    _require_super_admin(caller_role, "Only a super admin may change user roles.")

    user = _get_user_or_404(target_user_id, session)
    user.role = GlobalRole(new_role)
    session.flush()

    return _build_user_summary(user)
