"""
services/access_service.py — Per-event access resolution.

Every event-scoped operation (events, expenses, collected cash) asks the same
question: what is this caller's role on this event? The answer is computed
here and nowhere else.

    owner   — event.owner_id == user_id
    editor  — a share grants "editor"
    viewer  — a share grants "viewer"
    none    — anything else

Absence of access is a result, not an error. Callers that need a particular
role use require_role(), which raises FORBIDDEN (403).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - resolve_role() does not touch the session at all; it reads the loaded
    event and its shares only.
"""

from __future__ import annotations

import enum
from typing import Iterable

from sqlalchemy.orm import Session

from eventledger.app.errors import AppError, ErrorCode, forbidden
from eventledger.app.models.event import Event


class AccessRole(str, enum.Enum):
    OWNER  = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"
    NONE   = "none"


ANY_ROLE    = frozenset({AccessRole.OWNER, AccessRole.EDITOR, AccessRole.VIEWER})
WRITE_ROLES = frozenset({AccessRole.OWNER, AccessRole.EDITOR})
OWNER_ONLY  = frozenset({AccessRole.OWNER})


def resolve_role(event, user_id: int) -> AccessRole:
    """
    Returns the caller's role on `event`. Total: every (event, user) pair maps
    to exactly one AccessRole, and the owner always resolves to OWNER even if
    a stray share row names them.
    """
    if event.owner_id == user_id:
        return AccessRole.OWNER

    for share in event.shares:
        if share.user_id == user_id:
            return AccessRole(getattr(share.role, "value", share.role))

    return AccessRole.NONE


def require_role(
        event,
        user_id: int,
        allowed: Iterable[AccessRole],
        message: str = "You do not have permission to perform this action.",
) -> AccessRole:
    """Resolves the caller's role and raises FORBIDDEN (403) unless it is in `allowed`."""
    role = resolve_role(event, user_id)
    if role not in frozenset(allowed):
        raise forbidden(message)
    return role


def get_event_or_404(event_id: int, session: Session) -> Event:
    """Returns the Event (live or soft-deleted) or raises EVENT_NOT_FOUND (404)."""
    event = session.get(Event, event_id)
    if event is None:
        raise AppError(
            ErrorCode.EVENT_NOT_FOUND,
            f"Event {event_id} does not exist.",
            404,
        )
    return event


def get_live_event_or_404(event_id: int, session: Session) -> Event:
    """Returns the Event or raises EVENT_NOT_FOUND (404). Soft-deleted counts as missing."""
    event = get_event_or_404(event_id, session)
    if event.is_deleted:
        raise AppError(
            ErrorCode.EVENT_NOT_FOUND,
            f"Event {event_id} does not exist.",
            404,
        )
    return event
