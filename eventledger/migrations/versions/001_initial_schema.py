"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-17

Creates the complete EventLedger v1 database schema.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  Tables in FK dependency order (users → refresh_tokens → events →
  event_shares → expenses → payments → collected_cash), then indexes.

Enums are stored as VARCHAR + the models' non-native Enum types, so no
PostgreSQL CREATE TYPE is needed and the same schema runs on SQLite.

ON DELETE policies:
  refresh_tokens.user_id    → CASCADE   (token owned by user)
  users.created_by_id       → SET NULL  (the provisioning admin may go away)
  events.owner_id           → RESTRICT  (events are never hard-deleted)
  event_shares.*            → CASCADE   (shares belong to the event)
  expenses.*                → RESTRICT
  payments.expense_id       → CASCADE   (payments owned by expense)
  collected_cash.*          → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("password_changed", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("temp_password_expires_at", nullable=True),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_users_created_by"),
            nullable=True,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
        sa.CheckConstraint(
            "role IN ('user', 'admin', 'super_admin')",
            name="ck_users_role_valid",
        ),
    )

    # ── Step 2: refresh_tokens ─────────────────────────────────────────────

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )

    # ── Step 3: events ─────────────────────────────────────────────────────

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_events_owner"),
            nullable=False,
        ),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("deleted_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column(
            "updated_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_events_updated_by"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_events_name_nonempty"),
    )

    # ── Step 4: event_shares ───────────────────────────────────────────────
    # UNIQUE(event_id, user_id): a user appears at most once per event.

    op.create_table(
        "event_shares",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE", name="fk_event_shares_event"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_event_shares_user"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_event_shares"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_shares_event_user"),
        sa.CheckConstraint("role IN ('editor', 'viewer')", name="ck_event_shares_role_valid"),
    )

    # ── Step 5: expenses ───────────────────────────────────────────────────
    # advance_paid / pending_amount / payment_status are derived from the
    # payments rows and written by the application in the same transaction.

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="RESTRICT", name="fk_expenses_event"),
            nullable=False,
        ),
        sa.Column(
            "paid_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("advance_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pending_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("deleted_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_expenses_name_nonempty"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'partially_paid', 'fully_paid')",
            name="ck_expenses_payment_status_valid",
        ),
    )

    # ── Step 6: payments ───────────────────────────────────────────────────
    # attachment_urls[i] and attachment_handles[i] describe the same file.

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_payments_expense"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(10), nullable=False),
        _timestamp("paid_at"),
        sa.Column("attachment_urls", sa.JSON(), nullable=False),
        sa.Column("attachment_handles", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_payments_paid_amount_nonnegative"),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'upi')",
            name="ck_payments_method_valid",
        ),
    )

    # ── Step 7: collected_cash ─────────────────────────────────────────────

    op.create_table(
        "collected_cash",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="RESTRICT", name="fk_collected_cash_event"),
            nullable=False,
        ),
        sa.Column("contributor_name", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "recorded_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_collected_cash_recorder"),
            nullable=False,
        ),
        _timestamp("collected_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_collected_cash"),
        sa.CheckConstraint("amount > 0", name="ck_collected_cash_amount_positive"),
    )

    # ── Step 8: Indexes ────────────────────────────────────────────────────

    op.create_index("idx_refresh_tokens_user", "refresh_tokens", ["user_id"])
    op.create_index("idx_users_created_by", "users", ["created_by_id"])

    op.create_index("idx_events_owner", "events", ["owner_id"])
    op.create_index("idx_events_year", "events", ["year"])
    op.create_index("idx_event_shares_event", "event_shares", ["event_id"])
    # Listing "events shared with me" filters on user_id.
    op.create_index("idx_event_shares_user", "event_shares", ["user_id"])

    op.create_index("idx_expenses_event", "expenses", ["event_id"])
    # Listings and the dashboard always filter on (event_id, is_deleted).
    op.create_index("idx_expenses_event_active", "expenses", ["event_id", "is_deleted"])
    op.create_index("idx_payments_expense", "payments", ["expense_id"])

    op.create_index("idx_collected_cash_event", "collected_cash", ["event_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. Production databases are moved
    forward with corrective migrations instead.
    """

    op.drop_index("idx_collected_cash_event",  table_name="collected_cash")
    op.drop_index("idx_payments_expense",      table_name="payments")
    op.drop_index("idx_expenses_event_active", table_name="expenses")
    op.drop_index("idx_expenses_event",        table_name="expenses")
    op.drop_index("idx_event_shares_user",     table_name="event_shares")
    op.drop_index("idx_event_shares_event",    table_name="event_shares")
    op.drop_index("idx_events_year",           table_name="events")
    op.drop_index("idx_events_owner",          table_name="events")
    op.drop_index("idx_users_created_by",      table_name="users")
    op.drop_index("idx_refresh_tokens_user",   table_name="refresh_tokens")

    op.drop_table("collected_cash")
    op.drop_table("payments")
    op.drop_table("expenses")
    op.drop_table("event_shares")
    op.drop_table("events")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
