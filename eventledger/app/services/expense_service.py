"""
services/expense_service.py — Expense ledger business logic.

Rules enforced here:
  - Payment state (advance_paid / pending_amount / payment_status) is only
    ever changed through the Expense model's mutation methods, which
    recompute it. This module never assigns those fields.
  - paid_amount on create may not exceed amount (PAID_AMOUNT_EXCEEDS_TOTAL)
  - a new payment may not exceed the pending amount before it is applied
    (PAID_AMOUNT_EXCEEDS_PENDING)
  - amount may not drop below the resulting advance paid (AMOUNT_BELOW_PAID)
  - a upi payment needs at least one uploaded attachment when it is created
    (ATTACHMENT_REQUIRED); at most MAX_ATTACHMENTS files per request
    (TOO_MANY_ATTACHMENTS)
  - a soft-deleted expense, or any expense of a soft-deleted event, is
    treated as missing (EXPENSE_NOT_FOUND / EVENT_NOT_FOUND)

Authorization rules (per-event role from access_service):
  - Create, add payment, update: owner or editor
  - List, get:                   any resolved role
  - Delete:                      owner, editor, or the user who created it
  - Restore, list deleted:       owner only

Attachments:
  Files go through the storage collaborator (app/storage.py). If a store
  call fails part-way, the files already stored for that request are
  released and UPSTREAM_FAILURE (502) is raised. Handles dropped by an update
  or delete are returned to the route, which releases them after commit;
  releases are best-effort and a failure is only logged.

Concurrency:
  Mutations load the expense with SELECT ... FOR UPDATE and refresh it, so
  two requests on the same expense are applied one after the other.

Layer rules:
  - No Flask imports. Storage and uploaded files arrive as arguments.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from eventledger.app.errors import AppError, ErrorCode, invalid_input
from eventledger.app.models.event import Event
from eventledger.app.models.expense import Expense, Payment, PaymentMethod
from eventledger.app.services.access_service import (
    ANY_ROLE,
    OWNER_ONLY,
    WRITE_ROLES,
    get_live_event_or_404,
    require_role,
    resolve_role,
)
from eventledger.app.storage import AttachmentStorageError, StoredAttachment

logger = logging.getLogger(__name__)

MAX_ATTACHMENTS = 5


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session, lock: bool = False) -> Expense:
    """
    Returns the Expense (active or deleted) or raises EXPENSE_NOT_FOUND (404).

    lock=True is for mutations: the row is read with SELECT ... FOR UPDATE
    and the instance and its payments are refreshed from the database, so
    checks run against every payment committed before the lock was granted.
    """
    if lock:
        expense = session.execute(
            select(Expense)
            .where(Expense.id == expense_id)
            .options(selectinload(Expense._payments))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
    else:
        expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _get_active_expense_or_404(expense_id: int, session: Session, lock: bool = False) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404). Soft-deleted counts as missing."""
    expense = _get_expense_or_404(expense_id, session, lock=lock)
    if expense.is_deleted:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _check_attachment_count(files: Sequence, max_attachments: int) -> None:
    if len(files) > max_attachments:
        raise invalid_input(
            ErrorCode.TOO_MANY_ATTACHMENTS,
            f"At most {max_attachments} attachments may be uploaded per request.",
            field="attachments",
        )


def _require_attachment_for_upi(method: PaymentMethod, files: Sequence) -> None:
    if method == PaymentMethod.UPI and not files:
        raise invalid_input(
            ErrorCode.ATTACHMENT_REQUIRED,
            "At least one attachment is required for UPI payments.",
            field="attachments",
        )


def _store_files(files: Sequence, storage) -> list[StoredAttachment]:
    """
    Stores files one at a time, preserving order. On the first failure every
    file stored so far is released again and UPSTREAM_FAILURE (502) is raised.
    """
    stored: list[StoredAttachment] = []
    for file in files:
        try:
            stored.append(storage.store(file))
        except AttachmentStorageError as exc:
            logger.error("Attachment upload failed after %d file(s): %s", len(stored), exc)
            _release_handles([s.handle for s in stored], storage)
            raise AppError(
                ErrorCode.UPSTREAM_FAILURE,
                "An attachment could not be stored. Please try again.",
                502,
                field="attachments",
            ) from exc
    return stored


def _release_handles(handles: Sequence[str], storage) -> int:
    """
    Best-effort release of every handle. Returns how many releases failed.
    One failure does not stop the rest.
    """
    failures = 0
    for handle in handles:
        try:
            storage.release(handle)
        except AttachmentStorageError as exc:
            failures += 1
            logger.warning("Could not release attachment %s: %s", handle, exc)
    return failures


def _flush_or_release(session: Session, stored: Sequence[StoredAttachment], storage) -> None:
    """Flushes; if the flush fails, the files stored for this request are released."""
    try:
        session.flush()
    except SQLAlchemyError:
        _release_handles([s.handle for s in stored], storage)
        raise


def release_attachments(handles: Sequence[str], storage) -> int:
    """
    Releases handles the committed expense no longer references.

    Called by the route after commit, so a rolled-back transaction never
    leaves rows pointing at released files. Best-effort; returns the number
    of failed releases.
    """
    if not handles:
        return 0
    failures = _release_handles(handles, storage)
    if failures:
        logger.warning("%d of %d attachment(s) could not be released", failures, len(handles))
    return failures


def _build_payment(
        paid_amount: Decimal,
        method: PaymentMethod,
        stored: Sequence[StoredAttachment] = (),
        paid_at: datetime | None = None,
) -> Payment:
    return Payment(
        paid_amount=paid_amount,
        payment_method=method,
        paid_at=paid_at or datetime.now(timezone.utc),
        attachment_urls=[s.url for s in stored],
        attachment_handles=[s.handle for s in stored],
    )


def _payments_from_input(
        expense: Expense,
        entries: list[dict],
) -> list[Payment]:
    """
    Builds the replacement payment list for an update.

    upi entries keep the existing attachments named in their
    attachment_urls; each kept URL is paired with the handle it already has
    on this expense. A URL may be kept by one payment only. cash entries
    carry no attachments.
    """
    known = expense.attachment_handle_by_url()
    claimed: set[str] = set()
    payments: list[Payment] = []

    for entry in entries:
        method = PaymentMethod(entry["payment_method"])
        kept: list[StoredAttachment] = []

        if method == PaymentMethod.UPI:
            for url in entry.get("attachment_urls") or []:
                if url not in known:
                    raise invalid_input(
                        ErrorCode.UNKNOWN_ATTACHMENT,
                        f"Attachment {url!r} does not belong to this expense.",
                        field="payments",
                    )
                if url in claimed:
                    raise invalid_input(
                        ErrorCode.INVALID_FIELD,
                        f"Attachment {url!r} is listed more than once.",
                        field="payments",
                    )
                claimed.add(url)
                kept.append(StoredAttachment(url=url, handle=known[url]))

        payments.append(_build_payment(
            entry["paid_amount"],
            method,
            kept,
            paid_at=entry.get("paid_at"),
        ))

    return payments


def _event_for_expense(expense: Expense, session: Session) -> Event:
    """The expense's parent event, which must still be live (EVENT_NOT_FOUND otherwise)."""
    return get_live_event_or_404(expense.event_id, session)


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        event_id: int,
        caller_id: int,
        data: dict,
        files: Sequence,
        storage,
        session: Session,
        max_attachments: int = MAX_ATTACHMENTS,
) -> Expense:
    """
    Records a new expense with exactly one initial payment.

    Args:
        event_id:  Target event.
        caller_id: Authenticated user; becomes the expense's payer.
        data:      Validated dict from CreateExpenseSchema.
        files:     Uploaded files (werkzeug FileStorage). Ignored for cash.
        storage:   Attachment storage collaborator.

    Raises:
      AppError(PAID_AMOUNT_EXCEEDS_TOTAL, 400) — paid_amount > amount
      AppError(EVENT_NOT_FOUND, 404)           — event missing or deleted
      AppError(FORBIDDEN, 403)                 — caller is not owner/editor
      AppError(TOO_MANY_ATTACHMENTS, 400)
      AppError(ATTACHMENT_REQUIRED, 400)       — upi without files
      AppError(UPSTREAM_FAILURE, 502)          — storage failed
    """
    amount: Decimal = data["amount"]
    paid_amount: Decimal = data["paid_amount"]
    method = PaymentMethod(data["payment_method"])

    if paid_amount > amount:
        raise invalid_input(
            ErrorCode.PAID_AMOUNT_EXCEEDS_TOTAL,
            "Paid amount cannot be greater than the total amount.",
            field="paid_amount",
        )

    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, WRITE_ROLES, "You do not have permission to add expenses to this event.")

    files = list(files) if method == PaymentMethod.UPI else []
    _check_attachment_count(files, max_attachments)
    _require_attachment_for_upi(method, files)

    stored = _store_files(files, storage)

    expense = Expense(
        event_id=event.id,
        paid_by_id=caller_id,
        name=data["name"],
        category=data["category"],
        amount=amount,
        payments=[_build_payment(paid_amount, method, stored)],
    )
    session.add(expense)
    _flush_or_release(session, stored, storage)

    logger.info(
        "User %s created expense %s on event %s (%s)",
        caller_id, expense.id, event.id, expense.payment_status.value,
    )
    return expense


def add_payment(
        expense_id: int,
        caller_id: int,
        data: dict,
        files: Sequence,
        storage,
        session: Session,
        max_attachments: int = MAX_ATTACHMENTS,
) -> Expense:
    """
    Appends a payment to an active expense and recomputes its state.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)           — missing or deleted
      AppError(EVENT_NOT_FOUND, 404)             — parent event deleted
      AppError(FORBIDDEN, 403)                   — caller is not owner/editor
      AppError(PAID_AMOUNT_EXCEEDS_PENDING, 400) — more than is still owed
      AppError(ATTACHMENT_REQUIRED, 400)         — upi without files
    """
    expense = _get_active_expense_or_404(expense_id, session, lock=True)
    event = _event_for_expense(expense, session)
    require_role(event, caller_id, WRITE_ROLES, "You do not have permission to add payments to this expense.")

    paid_amount: Decimal = data["paid_amount"]
    method = PaymentMethod(data["payment_method"])

    # Compared against the pending amount before this payment is applied.
    if paid_amount > expense.pending_amount:
        raise invalid_input(
            ErrorCode.PAID_AMOUNT_EXCEEDS_PENDING,
            f"Paid amount exceeds the pending amount of {expense.pending_amount}.",
            field="paid_amount",
        )

    files = list(files) if method == PaymentMethod.UPI else []
    _check_attachment_count(files, max_attachments)
    _require_attachment_for_upi(method, files)

    stored = _store_files(files, storage)
    expense.add_payment(_build_payment(paid_amount, method, stored))
    _flush_or_release(session, stored, storage)

    return expense


def list_expenses(event_id: int, caller_id: int, session: Session) -> list[Expense]:
    """Active expenses of a live event, newest first. Any role."""
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, ANY_ROLE, "You do not have access to this event.")

    stmt = (
        select(Expense)
        .where(
            Expense.event_id == event_id,
            Expense.is_deleted.is_(False),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(expense_id: int, caller_id: int, session: Session) -> Expense:
    """A single active expense. Any role on the parent event."""
    expense = _get_active_expense_or_404(expense_id, session)
    event = _event_for_expense(expense, session)
    require_role(event, caller_id, ANY_ROLE, "You do not have access to this expense.")
    return expense


def update_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        files: Sequence,
        storage,
        session: Session,
        max_attachments: int = MAX_ATTACHMENTS,
) -> tuple[Expense, list[str]]:
    """
    Partially updates an expense. Owner or editor.

    data may contain name, category, amount, payments (wholesale replace) and
    attachment_target (index of the payment that receives `files`, default 0).

    Every check runs before anything is stored or changed. Returns the
    expense and the handles it no longer references; the caller releases
    them with release_attachments() once the change is committed.

    Raises:
      AppError(UNKNOWN_ATTACHMENT, 400) — a kept URL is not on this expense
      AppError(AMOUNT_BELOW_PAID, 400)  — amount < resulting advance paid
      AppError(INVALID_FIELD, 400)      — attachment_target out of range or
                                          not a upi payment
    """
    expense = _get_active_expense_or_404(expense_id, session, lock=True)
    event = _event_for_expense(expense, session)
    require_role(event, caller_id, WRITE_ROLES, "You do not have permission to update this expense.")

    files = list(files)
    _check_attachment_count(files, max_attachments)

    new_payments = (
        _payments_from_input(expense, data["payments"])
        if "payments" in data else None
    )

    resulting_paid = (
        sum((p.paid_amount for p in new_payments), Decimal("0"))
        if new_payments is not None else expense.advance_paid
    )
    resulting_amount = data.get("amount", expense.amount)
    if resulting_amount < resulting_paid:
        raise invalid_input(
            ErrorCode.AMOUNT_BELOW_PAID,
            f"Amount cannot be less than the total paid ({resulting_paid}).",
            field="amount",
        )

    target = None
    if files:
        candidates = new_payments if new_payments is not None else list(expense.payments)
        index = data.get("attachment_target", 0)
        if not 0 <= index < len(candidates):
            raise invalid_input(
                ErrorCode.INVALID_FIELD,
                f"attachment_target {index} does not refer to a payment.",
                field="attachment_target",
            )
        target = candidates[index]
        if target.payment_method != PaymentMethod.UPI:
            raise invalid_input(
                ErrorCode.INVALID_FIELD,
                "Attachments can only be added to a UPI payment.",
                field="attachment_target",
            )

    # ── Validation done; apply ─────────────────────────────────────────────
    previous_handles = expense.attachment_handles()

    stored = _store_files(files, storage)
    for attachment in stored:
        target.attach(attachment.url, attachment.handle)

    if "name" in data:
        expense.name = data["name"]
    if "category" in data:
        expense.category = data["category"]
    if new_payments is not None:
        expense.replace_payments(new_payments)
    if "amount" in data:
        expense.change_amount(data["amount"])

    expense.updated_at = datetime.now(timezone.utc)
    _flush_or_release(session, stored, storage)

    still_used = set(expense.attachment_handles())
    dropped = [h for h in previous_handles if h not in still_used]
    return expense, dropped


def delete_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> list[str]:
    """
    Soft-deletes an expense.

    Authorization: owner, editor, or the user who created the expense.
    Returns the stored attachment handles; the caller releases them with
    release_attachments() after commit. The references stay on the deleted
    row. Deleting an already-deleted expense does nothing and returns [].

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404) — expense does not exist
      AppError(EVENT_NOT_FOUND, 404)   — parent event deleted
      AppError(FORBIDDEN, 403)
    """
    expense = _get_expense_or_404(expense_id, session, lock=True)
    event = _event_for_expense(expense, session)

    role = resolve_role(event, caller_id)
    if role not in WRITE_ROLES and expense.paid_by_id != caller_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You do not have permission to delete this expense.",
            403,
        )

    if expense.is_deleted:
        return []

    expense.is_deleted = True
    expense.deleted_at = datetime.now(timezone.utc)
    session.flush()

    logger.info("User %s deleted expense %s", caller_id, expense.id)
    return expense.attachment_handles()


def restore_expense(expense_id: int, caller_id: int, session: Session) -> Expense:
    """
    Restores a soft-deleted expense. Owner only.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)   — caller is not the event owner
      AppError(NOT_DELETED, 400) — expense is active
    """
    expense = _get_expense_or_404(expense_id, session, lock=True)
    event = _event_for_expense(expense, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can restore this expense.")

    if not expense.is_deleted:
        raise invalid_input(
            ErrorCode.NOT_DELETED,
            f"Expense {expense_id} is not deleted.",
        )

    expense.is_deleted = False
    expense.deleted_at = None
    session.flush()
    return expense


def list_deleted_expenses(event_id: int, caller_id: int, session: Session) -> list[Expense]:
    """Soft-deleted expenses of a live event, newest first. Owner only."""
    event = get_live_event_or_404(event_id, session)
    require_role(event, caller_id, OWNER_ONLY, "Only the owner can view deleted expenses.")

    stmt = (
        select(Expense)
        .where(
            Expense.event_id == event_id,
            Expense.is_deleted.is_(True),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
