"""
models/expense.py — Expense and Payment table definitions.

Key design points:
  - `amount`, `advance_paid`, `pending_amount` use Numeric(12, 2) — never Float.
  - The payment list and the three derived columns are private. They can only
    change through add_payment(), replace_payments() and change_amount(),
    each of which recomputes the derived state before returning. Nothing can
    set advance_paid / pending_amount / payment_status directly:

        advance_paid   = sum(p.paid_amount for p in payments)
        pending_amount = max(amount - advance_paid, 0)
        payment_status = fully_paid     if pending_amount == 0
                         partially_paid if advance_paid > 0
                         pending        otherwise

  - The public names are hybrid properties: read-only on instances, plain
    column expressions on the class so queries can still filter and sum.
  - Payment rows are ordered by `position` and owned by their expense.
    attachment_urls[i] and attachment_handles[i] always describe the same file.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventledger.app.extensions import db
from eventledger.app.models.columns import enum_values, utcnow


ZERO = Decimal("0")


# ── Enum Definitions ───────────────────────────────────────────────────────

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    UPI  = "upi"


class PaymentStatus(str, enum.Enum):
    PENDING        = "pending"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID     = "fully_paid"


# ── Derived state ──────────────────────────────────────────────────────────

def compute_payment_state(
        amount: Decimal,
        paid_amounts: Iterable[Decimal],
) -> tuple[Decimal, Decimal, PaymentStatus]:
    """
    Returns (advance_paid, pending_amount, payment_status) for an expense.

    Pure function; the Expense model calls it after every mutation and the
    unit tests exercise it directly.
    """
    advance_paid = sum((Decimal(p) for p in paid_amounts), ZERO)
    pending_amount = max(Decimal(amount) - advance_paid, ZERO)

    if pending_amount == ZERO:
        status = PaymentStatus.FULLY_PAID
    elif advance_paid > ZERO:
        status = PaymentStatus.PARTIALLY_PAID
    else:
        status = PaymentStatus.PENDING

    return advance_paid, pending_amount, status


# ── Models ─────────────────────────────────────────────────────────────────

class Payment(db.Model):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_payments_paid_amount_nonnegative"),
    )

    # Row key only; never exposed through the API.
    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(
            PaymentMethod,
            name="payment_method_enum",
            native_enum=False,
            length=10,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    paid_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # Assign new lists; in-place mutation of a JSON column is not tracked.
    attachment_urls: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    attachment_handles: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    expense: Mapped["Expense"] = relationship(
        "Expense",
        back_populates="_payments",
    )

    def attach(self, url: str, handle: str) -> None:
        """Appends one stored file, keeping urls and handles positionally paired."""
        self.attachment_urls = [*(self.attachment_urls or []), url]
        self.attachment_handles = [*(self.attachment_handles or []), handle]

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Payment expense_id={self.expense_id} "
            f"paid_amount={self.paid_amount} "
            f"method={self.payment_method.value}>"
        )


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_expenses_name_nonempty",
        ),
        Index("idx_expenses_event_active", "event_id", "is_deleted"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Immutable after creation.
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # The creating user.
    paid_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Payee / description label shown in listings.
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # Free text.
    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    _amount: Mapped[Decimal] = mapped_column(
        "amount",
        Numeric(12, 2),
        nullable=False,
    )

    _advance_paid: Mapped[Decimal] = mapped_column(
        "advance_paid",
        Numeric(12, 2),
        nullable=False,
        default=ZERO,
    )

    _pending_amount: Mapped[Decimal] = mapped_column(
        "pending_amount",
        Numeric(12, 2),
        nullable=False,
        default=ZERO,
    )

    _payment_status: Mapped[PaymentStatus] = mapped_column(
        "payment_status",
        Enum(
            PaymentStatus,
            name="payment_status_enum",
            native_enum=False,
            length=20,
            values_callable=enum_values,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
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

    # ── Relationships ──────────────────────────────────────────────────────

    event: Mapped["Event"] = relationship("Event")  # noqa: F821

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_by_id],
    )

    _payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="expense",
        order_by="Payment.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __init__(
            self,
            *,
            amount: Decimal,
            payments: Sequence[Payment] = (),
            **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._amount = Decimal(amount)
        for payment in payments:
            self._payments.append(payment)
        self._recompute_payment_state()

    # ── Read-only views ────────────────────────────────────────────────────

    @hybrid_property
    def amount(self) -> Decimal:
        return self._amount

    @hybrid_property
    def advance_paid(self) -> Decimal:
        return self._advance_paid

    @hybrid_property
    def pending_amount(self) -> Decimal:
        return self._pending_amount

    @hybrid_property
    def payment_status(self) -> PaymentStatus:
        return self._payment_status

    @property
    def payments(self) -> tuple[Payment, ...]:
        return tuple(self._payments)

    def attachment_handles(self) -> list[str]:
        """Every stored handle across every payment, in payment order."""
        return [h for p in self._payments for h in (p.attachment_handles or [])]

    def attachment_handle_by_url(self) -> dict[str, str]:
        return {
            url: handle
            for p in self._payments
            for url, handle in zip(p.attachment_urls or [], p.attachment_handles or [])
        }

    # ── Mutations ──────────────────────────────────────────────────────────
    # Each one leaves the derived columns consistent with the payment list.

    def add_payment(self, payment: Payment) -> None:
        self._payments.append(payment)
        self._recompute_payment_state()

    def replace_payments(self, payments: Sequence[Payment]) -> None:
        self._payments.clear()
        for payment in payments:
            self._payments.append(payment)
        self._recompute_payment_state()

    def change_amount(self, amount: Decimal) -> None:
        self._amount = Decimal(amount)
        self._recompute_payment_state()

    def _recompute_payment_state(self) -> None:
        advance_paid, pending_amount, status = compute_payment_state(
            self._amount,
            (p.paid_amount for p in self._payments),
        )
        self._advance_paid = advance_paid
        self._pending_amount = pending_amount
        self._payment_status = status

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"event_id={self.event_id} "
            f"amount={self._amount} "
            f"status={self._payment_status} "
            f"deleted={self.is_deleted}>"
        )
