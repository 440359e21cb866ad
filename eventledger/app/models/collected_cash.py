"""
models/collected_cash.py — CollectedCash table definition.

One row per contribution received for an event. Unlike expenses these rows
are hard-deleted.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - contributor_name is free text; contributors are not necessarily users.
  - recorded_by_id is replaced with the editing user on every update.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventledger.app.extensions import db
from eventledger.app.models.columns import utcnow


class CollectedCash(db.Model):
    __tablename__ = "collected_cash"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_collected_cash_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    contributor_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    recorded_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    event: Mapped["Event"] = relationship("Event")  # noqa: F821

    recorded_by: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[recorded_by_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<CollectedCash id={self.id} "
            f"event_id={self.event_id} "
            f"amount={self.amount}>"
        )
