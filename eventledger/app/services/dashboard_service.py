"""
services/dashboard_service.py — Event budget summary.

Read-only. The event must be live (EVENT_NOT_FOUND) and the caller needs a
role on it (FORBIDDEN), the same gate as the expense and collected-cash
listings. A live event with no rows yields zeros and empty lists.

Formula:
  total_collected = sum(collected_cash.amount)
  total_expenses  = sum(expense.amount) over NON-deleted expenses
  remaining       = total_collected - total_expenses   (may be negative)
  percent_spent   = round_half_up(total_expenses / total_collected * 100)
                    or 0 when total_collected is 0

Soft-deleted expenses are excluded here exactly as in every listing.

Layer rules:
  - No Flask imports. Receives the raw path segment, the caller and a session.
  - Returns plain Python dicts; amounts as two-place strings.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eventledger.app.errors import ErrorCode, invalid_input
from eventledger.app.models.collected_cash import CollectedCash
from eventledger.app.models.columns import isoformat, money
from eventledger.app.models.expense import Expense
from eventledger.app.services.access_service import (
    ANY_ROLE,
    get_live_event_or_404,
    require_role,
)

RECENT_LIMIT = 5
ZERO = Decimal("0")


def parse_event_id(raw: str) -> int:
    """
    Accepts only a plain positive integer ("12"). Anything else, including
    "0", "-3", "1.5" and "abc", is INVALID_IDENTIFIER (400).
    """
    text = str(raw).strip()
    if not text.isdigit() or not text.isascii():
        raise invalid_input(
            ErrorCode.INVALID_IDENTIFIER,
            f"{raw!r} is not a valid event id.",
            field="event_id",
        )
    value = int(text)
    if value < 1:
        raise invalid_input(
            ErrorCode.INVALID_IDENTIFIER,
            f"{raw!r} is not a valid event id.",
            field="event_id",
        )
    return value


def compute_percent_spent(total_expenses: Decimal, total_collected: Decimal) -> int:
    """Whole-number percentage, half-up. 0 when nothing has been collected."""
    if total_collected == ZERO:
        return 0
    ratio = Decimal(total_expenses) / Decimal(total_collected) * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _total_collected(event_id: int, session: Session) -> Decimal:
    total = session.execute(
        select(func.coalesce(func.sum(CollectedCash.amount), 0))
        .where(CollectedCash.event_id == event_id)
    ).scalar_one()
    return Decimal(total)


def _total_expenses(event_id: int, session: Session) -> Decimal:
    total = session.execute(
        select(func.coalesce(func.sum(Expense.amount), 0))
        .where(
            Expense.event_id == event_id,
            Expense.is_deleted.is_(False),
        )
    ).scalar_one()
    return Decimal(total)


def get_dashboard(raw_event_id: str, caller_id: int, session: Session) -> dict:
    """
    Budget summary for one event. Any role on the event.

    Raises:
      AppError(INVALID_IDENTIFIER, 400) — malformed id
      AppError(EVENT_NOT_FOUND, 404)    — missing or deleted event
      AppError(FORBIDDEN, 403)          — caller has no role on the event
    """
    event_id = parse_event_id(raw_event_id)
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, ANY_ROLE, "You do not have access to this event.")

    total_collected = _total_collected(event_id, session)
    total_expenses = _total_expenses(event_id, session)

    recent_expenses = session.execute(
        select(Expense)
        .where(
            Expense.event_id == event_id,
            Expense.is_deleted.is_(False),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .limit(RECENT_LIMIT)
    ).scalars().all()

    recent_cash = session.execute(
        select(CollectedCash)
        .where(CollectedCash.event_id == event_id)
        .order_by(CollectedCash.collected_at.desc(), CollectedCash.id.desc())
        .limit(RECENT_LIMIT)
    ).scalars().all()

    return {
        "event_id": event_id,
        "total_collected": money(total_collected),
        "total_expenses": money(total_expenses),
        "remaining": money(total_collected - total_expenses),
        "percent_spent": compute_percent_spent(total_expenses, total_collected),
        "recent_expenses": [
            {
                "id": e.id,
                "label": e.name,
                "amount": money(e.amount),
                "date": isoformat(e.created_at),
            }
            for e in recent_expenses
        ],
        "recent_collected_cash": [
            {
                "id": c.id,
                "label": c.contributor_name,
                "amount": money(c.amount),
                "date": isoformat(c.collected_at),
            }
            for c in recent_cash
        ],
    }
