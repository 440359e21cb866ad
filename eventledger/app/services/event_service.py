"""
services/event_service.py — Event and sharing business logic.

Authorization rules (per-event role from access_service):
  - Get:                any resolved role (owner / editor / viewer)
  - Update, share:      owner only
  - Shareable users:    owner only
  - Restore:            owner only
  - Soft delete:        owner, or global role admin / super_admin
  - List deleted:       global role super_admin only

Sharing invariants enforced here:
  - the owner never appears in the share list (SHARE_WITH_OWNER, 400)
  - a user appears at most once (DUPLICATE_SHARE_USER, 400)
  - every target must exist (USER_NOT_FOUND, 404); their name/email are
    snapshotted onto the share row
Share roles are restricted to editor/viewer by the schema (INVALID_ROLE).

Events are never hard-deleted.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from eventledger.app.errors import AppError, ErrorCode, forbidden, invalid_input
from eventledger.app.models.columns import isoformat
from eventledger.app.models.event import Event, EventShare, ShareRole
from eventledger.app.models.user import ADMIN_ROLES, GlobalRole, User
from eventledger.app.services.access_service import (
    ANY_ROLE,
    OWNER_ONLY,
    AccessRole,
    get_event_or_404,
    get_live_event_or_404,
    require_role,
    resolve_role,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _build_share_dict(share: EventShare, live: bool = False) -> dict:
    """
    live=True renders name/email from the current user row instead of the
    snapshot taken when the share was granted.
    """
    source = share.user if live and share.user is not None else share
    return {
        "user_id": share.user_id,
        "name": source.name,
        "email": source.email,
        "role": share.role.value,
    }


def _build_event_dict(
        event: Event,
        role: AccessRole | None = None,
        live_shares: bool = False,
) -> dict:
    """Serialises an Event with owner and share list to a plain dict."""
    data = {
        "id": event.id,
        "name": event.name,
        "year": event.year,
        "description": event.description,
        "owner": {
            "id": event.owner.id,
            "name": event.owner.name,
            "email": event.owner.email,
        },
        "shared_with": [_build_share_dict(s, live=live_shares) for s in event.shares],
        "is_deleted": event.is_deleted,
        "deleted_at": isoformat(event.deleted_at),
        "created_at": isoformat(event.created_at),
        "updated_at": isoformat(event.updated_at),
        "updated_by_id": event.updated_by_id,
    }
    if role is not None:
        data["role"] = role.value
    return data


def _resolve_share_entries(
        event: Event,
        entries: list[dict],
        session: Session,
) -> list[EventShare]:
    """
    Turns validated [{user_id, role}] entries into EventShare rows carrying the
    target user's name/email. Order is preserved.
    """
    seen: set[int] = set()
    shares: list[EventShare] = []

    for entry in entries:
        user_id = entry["user_id"]

        if user_id == event.owner_id:
            raise invalid_input(
                ErrorCode.SHARE_WITH_OWNER,
                "The event owner cannot be added to the share list.",
                field="shared_with",
            )
        if user_id in seen:
            raise invalid_input(
                ErrorCode.DUPLICATE_SHARE_USER,
                f"User {user_id} appears more than once in the share list.",
                field="shared_with",
            )
        seen.add(user_id)

        user = session.get(User, user_id)
        if user is None:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
                404,
                field="shared_with",
            )

        shares.append(EventShare(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=ShareRole(entry["role"]),
        ))

    return shares


def _replace_shares(event: Event, shares: list[EventShare], session: Session) -> None:
    """Swaps the whole share list. Old rows are deleted before the new ones are inserted."""
    event.shares.clear()
    session.flush()  # (event_id, user_id) is unique; re-granting a user needs the old row gone
    for share in shares:
        event.shares.append(share)


# ── Public service functions ───────────────────────────────────────────────

def create_event(caller_id: int, data: dict, session: Session) -> dict:
    """
    Creates an event owned by the caller, with an empty share list.

    Args:
        caller_id: The authenticated user (becomes owner).
        data:      Validated dict from CreateEventSchema (name, year, description?).
    """
    event = Event(
        name=data["name"],
        year=data["year"],
        description=data.get("description") or "",
        owner_id=caller_id,
        updated_by_id=caller_id,
    )
    session.add(event)
    session.flush()

    logger.info("User %s created event %s", caller_id, event.id)
    return _build_event_dict(event, role=AccessRole.OWNER)


def list_events(caller_id: int, session: Session) -> list[dict]:
    """
    Returns every live event the caller owns or is shared on, newest year
    first. Share entries show each user's current name/email.
    """
    shared_event_ids = select(EventShare.event_id).where(EventShare.user_id == caller_id)

    stmt = (
        select(Event)
        .where(
            Event.is_deleted.is_(False),
            or_(Event.owner_id == caller_id, Event.id.in_(shared_event_ids)),
        )
        .order_by(Event.year.desc(), Event.created_at.desc(), Event.id.desc())
    )
    events = session.execute(stmt).scalars().all()

    return [
        _build_event_dict(e, role=resolve_role(e, caller_id), live_shares=True)
        for e in events
    ]


def list_deleted_events(caller_role: GlobalRole, session: Session) -> list[dict]:
    """All soft-deleted events, most recently deleted first. super_admin only."""
    if GlobalRole(caller_role) != GlobalRole.SUPER_ADMIN:
        raise forbidden("Only a super admin may view deleted events.")

    stmt = (
        select(Event)
        .where(Event.is_deleted.is_(True))
        .order_by(Event.deleted_at.desc(), Event.id.desc())
    )
    return [_build_event_dict(e) for e in session.execute(stmt).scalars().all()]


def get_event(event_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns the event and the caller's role on it.

    Raises:
      AppError(EVENT_NOT_FOUND, 404) — missing or soft-deleted
      AppError(FORBIDDEN, 403)       — caller has no role on the event
    """
    event = get_live_event_or_404(event_id, session)
    role = require_role(event, caller_id, ANY_ROLE, "You do not have access to this event.")
    return _build_event_dict(event, role=role)


def update_event(event_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """
    Partially updates an event. Owner only.

    `shared_with`, when present, replaces the share list wholesale using the
    same validation and enrichment as share_event().
    """
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can update this event.")

    if "shared_with" in data:
        shares = _resolve_share_entries(event, data["shared_with"], session)
    else:
        shares = None

    if "name" in data:
        event.name = data["name"]
    if "year" in data:
        event.year = data["year"]
    if "description" in data:
        event.description = data["description"] or ""
    if shares is not None:
        _replace_shares(event, shares, session)

    event.updated_by_id = caller_id
    event.updated_at = datetime.now(timezone.utc)
    session.flush()

    return _build_event_dict(event, role=AccessRole.OWNER)


def share_event(
        event_id: int,
        caller_id: int,
        shared_with: list[dict],
        session: Session,
) -> dict:
    """
    Replaces the event's share list. Owner only.

    Raises:
      AppError(EVENT_NOT_FOUND, 404)      — missing or soft-deleted
      AppError(FORBIDDEN, 403)            — caller is not the owner
      AppError(SHARE_WITH_OWNER, 400)     — owner listed as a share target
      AppError(DUPLICATE_SHARE_USER, 400) — same user listed twice
      AppError(USER_NOT_FOUND, 404)       — a target user does not exist
    """
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can change who this event is shared with.")

    shares = _resolve_share_entries(event, shared_with, session)
    _replace_shares(event, shares, session)
    event.updated_by_id = caller_id
    event.updated_at = datetime.now(timezone.utc)
    session.flush()

    return {
        "event_id": event.id,
        "shared_with": [_build_share_dict(s) for s in event.shares],
    }


def delete_event(
        event_id: int,
        caller_id: int,
        caller_role: GlobalRole,
        session: Session,
) -> None:
    """
    Soft-deletes an event. Owner, admin or super_admin.

    Raises:
      AppError(EVENT_NOT_FOUND, 404) — missing or already deleted
      AppError(FORBIDDEN, 403)       — caller may not delete it
    """
    event = get_live_event_or_404(event_id, session)

    is_owner = event.owner_id == caller_id
    if not is_owner and GlobalRole(caller_role) not in ADMIN_ROLES:
        raise forbidden("Only the owner or an administrator can delete this event.")

    now = datetime.now(timezone.utc)
    event.is_deleted = True
    event.deleted_at = now
    event.updated_by_id = caller_id
    session.flush()

    logger.info("User %s soft-deleted event %s", caller_id, event.id)


def restore_event(event_id: int, caller_id: int, session: Session) -> dict:
    """
    Restores a soft-deleted event. Owner only.

    Raises:
      AppError(EVENT_NOT_FOUND, 404) — event does not exist
      AppError(FORBIDDEN, 403)       — caller is not the owner
      AppError(NOT_DELETED, 400)     — event is not deleted
    """
    event = get_event_or_404(event_id, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can restore this event.")

    if not event.is_deleted:
        raise invalid_input(
            ErrorCode.NOT_DELETED,
            f"Event {event_id} is not deleted.",
        )

    event.is_deleted = False
    event.deleted_at = None
    event.updated_by_id = caller_id
    session.flush()

    return _build_event_dict(event, role=AccessRole.OWNER)


def list_shareable_users(event_id: int, caller_id: int, session: Session) -> list[dict]:
    """Users who could still be added to the share list, ordered by name. Owner only."""
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can share this event.")

    excluded = {event.owner_id, *(s.user_id for s in event.shares)}
    users = session.execute(
        select(User)
        .where(User.id.not_in(excluded))
        .order_by(User.name.asc(), User.id.asc())
    ).scalars().all()

    return [
        {"id": u.id, "name": u.name, "email": u.email, "role": u.role.value}
        for u in users
    ]
