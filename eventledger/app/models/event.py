"""
models/event.py — Event and EventShare table definitions.

No business logic. No imports from services or routes.

An event is the container every expense and collected-cash entry hangs off.
Access to it is decided by owner_id plus the ordered shares list; see
services/access_service.py.

Share rows keep a denormalised name/email snapshot of the target user. The
listing endpoints re-resolve both from the users table, so the snapshot only
matters for single-event reads.

FK policy:
  owner_id      ON DELETE RESTRICT — events are never hard-deleted, so the
                owner must outlive them.
  shares.*      ON DELETE CASCADE  — shares belong to the event.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventledger.app.extensions import db
from eventledger.app.models.columns import enum_values, utcnow


class ShareRole(str, enum.Enum):
    """Roles that can be granted to non-owners. 'owner' is never stored here."""
    EDITOR = "editor"
    VIEWER = "viewer"


class Event(db.Model):
    __tablename__ = "events"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_events_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    # Immutable after creation.
    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
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

    updated_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[owner_id],
    )

    # Replaced wholesale by the share/update operations; ordering_list keeps
    # `position` in step with list order.
    shares: Mapped[list["EventShare"]] = relationship(
        "EventShare",
        back_populates="event",
        order_by="EventShare.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Event id={self.id} name={self.name!r} "
            f"year={self.year} deleted={self.is_deleted}>"
        )


class EventShare(db.Model):
    __tablename__ = "event_shares"

    __table_args__ = (
        # A user appears at most once in an event's share list.
        UniqueConstraint("event_id", "user_id", name="uq_event_shares_event_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Snapshot of the target user at grant time.
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[ShareRole] = mapped_column(
        Enum(
            ShareRole,
            name="share_role_enum",
            native_enum=False,
            length=20,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Relationships ──────────────────────────────────────────────────────

    event: Mapped["Event"] = relationship(
        "Event",
        back_populates="shares",
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<EventShare event_id={self.event_id} "
            f"user_id={self.user_id} role={self.role.value}>"
        )
