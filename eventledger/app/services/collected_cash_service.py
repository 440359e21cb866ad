"""
services/collected_cash_service.py — Cash collection ledger.

Every entry belongs to an event and is gated by the caller's role on it,
the same way expenses are:
  - List:                    any resolved role
  - Create, update, delete:  owner or editor

Entries are hard-deleted. On update the recorder becomes the caller.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventledger.app.errors import AppError, ErrorCode
from eventledger.app.models.collected_cash import CollectedCash
from eventledger.app.models.columns import isoformat, money
from eventledger.app.services.access_service import (
    ANY_ROLE,
    WRITE_ROLES,
    get_live_event_or_404,
    require_role,
)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_entry_or_404(entry_id: int, session: Session) -> CollectedCash:
    entry = session.get(CollectedCash, entry_id)
    if entry is None:
        raise AppError(
            ErrorCode.COLLECTED_CASH_NOT_FOUND,
            f"Collected cash entry {entry_id} does not exist.",
            404,
        )
    return entry


def _require_writer(event_id: int, caller_id: int, session: Session) -> None:
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, WRITE_ROLES, "You do not have permission to record cash for this event.")


def build_entry_dict(entry: CollectedCash) -> dict:
    return {
        "id": entry.id,
        "event_id": entry.event_id,
        "contributor_name": entry.contributor_name,
        "amount": money(entry.amount),
        "recorded_by_id": entry.recorded_by_id,
        "collected_at": isoformat(entry.collected_at),
        "updated_at": isoformat(entry.updated_at),
    }


# ── Public service functions ───────────────────────────────────────────────

def create_entry(event_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """Records a contribution on a live event. Owner or editor."""
    _require_writer(event_id, caller_id, session)

    entry = CollectedCash(
        event_id=event_id,
        contributor_name=data["contributor_name"],
        amount=data["amount"],
        recorded_by_id=caller_id,
    )
    session.add(entry)
    session.flush()
    return build_entry_dict(entry)


def list_entries(event_id: int, caller_id: int, session: Session) -> list[dict]:
    """All contributions for an event, most recent first. Any role."""
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, ANY_ROLE, "You do not have access to this event.")

    stmt = (
        select(CollectedCash)
        .where(CollectedCash.event_id == event_id)
        .order_by(CollectedCash.collected_at.desc(), CollectedCash.id.desc())
    )
    return [build_entry_dict(e) for e in session.execute(stmt).scalars().all()]


def update_entry(entry_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """
    Partially updates contributor_name and/or amount. The caller becomes
    the recorder.

    Raises:
      AppError(COLLECTED_CASH_NOT_FOUND, 404)
      AppError(EVENT_NOT_FOUND, 404)  — parent event deleted
      AppError(FORBIDDEN, 403)        — caller is not owner/editor
    """
    entry = _get_entry_or_404(entry_id, session)
    _require_writer(entry.event_id, caller_id, session)

    if "contributor_name" in data:
        entry.contributor_name = data["contributor_name"]
    if "amount" in data:
        entry.amount = data["amount"]
    entry.recorded_by_id = caller_id
    entry.updated_at = datetime.now(timezone.utc)
    session.flush()

    return build_entry_dict(entry)


def delete_entry(entry_id: int, caller_id: int, session: Session) -> None:
    """Hard-deletes an entry. Owner or editor."""
    entry = _get_entry_or_404(entry_id, session)
    _require_writer(entry.event_id, caller_id, session)

    session.delete(entry)
    session.flush()
