"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the event-scoped paths (/events/:id/expenses) and the
expense-ID paths (/expenses/:id).

Create, add-payment and update accept JSON or multipart form data. Files
are read from the multipart field `attachments`.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /events/:id/expenses           → 201  create expense + first payment
  GET    /events/:id/expenses           → 200  list active expenses
  GET    /events/:id/expenses/deleted   → 200  list soft-deleted (owner)
  GET    /expenses/:id                  → 200  get expense + payments
  PATCH  /expenses/:id                  → 200  partial update
  DELETE /expenses/:id                  → 200  soft-delete, releases attachments
  POST   /expenses/:id/payments         → 201  append a payment
  POST   /expenses/:id/restore          → 200  undo soft-delete (owner)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from eventledger.app.extensions import db, get_attachment_storage
from eventledger.app.middleware.auth_middleware import require_auth
from eventledger.app.models.columns import isoformat, money
from eventledger.app.models.expense import Expense
from eventledger.app.schemas.expense_schema import (
    AddPaymentSchema,
    CreateExpenseSchema,
    UpdateExpenseSchema,
)
from eventledger.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)

ATTACHMENT_FIELD = "attachments"


# ── Request helpers ────────────────────────────────────────────────────────

def _read_payload() -> tuple[dict, list]:
    """
    Returns (fields, files). Multipart bodies give form fields plus the
    uploaded files; anything else is read as JSON with no files.
    """
    if request.mimetype == "multipart/form-data":
        files = [f for f in request.files.getlist(ATTACHMENT_FIELD) if f and f.filename]
        return request.form.to_dict(), files
    return request.get_json(force=True) or {}, []


def _max_attachments() -> int:
    return current_app.config["MAX_ATTACHMENTS_PER_REQUEST"]


# ── Serialization helper ───────────────────────────────────────────────────
# Pure data-shaping. No DB access. Amounts as strings.
# Storage handles are internal and never leave the server.

def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "event_id": expense.event_id,
        "name": expense.name,
        "category": expense.category,
        "amount": money(expense.amount),
        "advance_paid": money(expense.advance_paid),
        "pending_amount": money(expense.pending_amount),
        "payment_status": expense.payment_status.value,
        "paid_by": {
            "id": expense.payer.id,
            "name": expense.payer.name,
            "email": expense.payer.email,
        },
        "payments": [
            {
                "paid_amount": money(p.paid_amount),
                "payment_method": p.payment_method.value,
                "paid_at": isoformat(p.paid_at),
                "attachment_urls": list(p.attachment_urls or []),
            }
            for p in expense.payments
        ],
        "is_deleted": expense.is_deleted,
        "deleted_at": isoformat(expense.deleted_at),
        "created_at": isoformat(expense.created_at),
        "updated_at": isoformat(expense.updated_at),
    }


# ── Event-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/events/<int:event_id>/expenses", methods=["POST"])
@require_auth
def create_expense(event_id: int):
    """
    POST /events/:id/expenses — Record a new expense with its first payment.
    A upi payment must carry at least one file under `attachments`.
    """
    payload, files = _read_payload()
    data = CreateExpenseSchema().load(payload)
    expense = expense_service.create_expense(
        event_id=event_id,
        caller_id=g.user_id,
        data=data,
        files=files,
        storage=get_attachment_storage(),
        session=db.session,
        max_attachments=_max_attachments(),
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/events/<int:event_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(event_id: int):
    """GET /events/:id/expenses — Active expenses, newest first."""
    expenses = expense_service.list_expenses(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/events/<int:event_id>/expenses/deleted", methods=["GET"])
@require_auth
def list_deleted_expenses(event_id: int):
    expenses = expense_service.list_deleted_expenses(
        event_id=event_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    expense = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def update_expense(expense_id: int):
    """
    PATCH /expenses/:id — Partial update.
    `payments` replaces the payment list; uploaded files go to the payment
    at `attachment_target` (default 0).
    """
    payload, files = _read_payload()
    data = UpdateExpenseSchema().load(payload)
    storage = get_attachment_storage()
    expense, dropped = expense_service.update_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        files=files,
        storage=storage,
        session=db.session,
        max_attachments=_max_attachments(),
    )
    db.session.commit()
    expense_service.release_attachments(dropped, storage)
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    """
    DELETE /expenses/:id — Soft-delete. Stored attachments are released
    once the delete is committed; a failed release is only logged.
    """
    handles = expense_service.delete_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    expense_service.release_attachments(handles, get_attachment_storage())
    return jsonify({"data": {"message": "Expense deleted."}, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>/payments", methods=["POST"])
@require_auth
def add_payment(expense_id: int):
    payload, files = _read_payload()
    data = AddPaymentSchema().load(payload)
    expense = expense_service.add_payment(
        expense_id=expense_id,
        caller_id=g.user_id,
        data=data,
        files=files,
        storage=get_attachment_storage(),
        session=db.session,
        max_attachments=_max_attachments(),
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/expenses/<int:expense_id>/restore", methods=["POST"])
@require_auth
def restore_expense(expense_id: int):
    expense = expense_service.restore_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200
