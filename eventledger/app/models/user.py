"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

Email is stored lower-cased; the schema normalises it on load and every
lookup lower-cases its input, so comparisons are case-insensitive.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventledger.app.extensions import db
from eventledger.app.models.columns import enum_values, utcnow


class GlobalRole(str, enum.Enum):
    """Account-wide role. Independent of per-event share roles."""
    USER        = "user"
    ADMIN       = "admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ROLES = frozenset({GlobalRole.ADMIN, GlobalRole.SUPER_ADMIN})


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    role: Mapped[GlobalRole] = mapped_column(
        Enum(
            GlobalRole,
            name="global_role_enum",
            native_enum=False,
            length=20,
            values_callable=enum_values,
        ),
        nullable=False,
        default=GlobalRole.USER,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # False while the account still uses an admin-issued temporary password.
    password_changed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # NULL once the user has set their own password.
    temp_password_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Admin who provisioned this account; NULL for self-registered users.
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
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

    # ── Relationships ──────────────────────────────────────────────────────

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(  # noqa: F821
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    created_by: Mapped["User"] = relationship(
        "User",
        remote_side=[id],
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r} role={self.role.value}>"
