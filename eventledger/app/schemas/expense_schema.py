"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Create, add-payment and update accept either JSON or multipart form data
(files under `attachments`). In a multipart body every value is a string,
so `payments` may arrive as a JSON-encoded string; PaymentListField accepts
both shapes.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - paid_amount <= amount on create (PAID_AMOUNT_EXCEEDS_TOTAL) — both
        values are in the request
      - Non-empty-after-trim enforcement for name and category
  - services/expense_service.py:
      - PAID_AMOUNT_EXCEEDS_PENDING, AMOUNT_BELOW_PAID (need the stored expense)
      - ATTACHMENT_REQUIRED, TOO_MANY_ATTACHMENTS (files are not schema input)
      - UNKNOWN_ATTACHMENT (needs the stored attachment list)
      - role checks (FORBIDDEN, 403)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

import json
from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from eventledger.app.errors import ErrorCode
from eventledger.app.models.columns import MAX_AMOUNT
from eventledger.app.models.expense import PaymentMethod


# ── Shared monetary amount validators ──────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated.
# ──────────────────────────────────────────────────────────────────────────

def _check_limit_and_precision(value: Decimal) -> None:
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {MAX_AMOUNT}.")
    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most MAX_AMOUNT, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _check_limit_and_precision(value)


def _validate_paid_amount(value: Decimal) -> None:
    """Zero or more, at most 2 decimal places. A zero payment leaves the expense pending."""
    if value < Decimal("0"):
        raise ValidationError("Paid amount cannot be negative.")
    _check_limit_and_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_name_validators = [
    validate.Length(min=1, max=200, error="Name must be between 1 and 200 characters."),
    _validate_non_empty_after_trim,
]

_category_validators = [
    validate.Length(min=1, max=100, error="Category must be between 1 and 100 characters."),
    _validate_non_empty_after_trim,
]


def _payment_method_field(**kwargs) -> fields.Enum:
    return fields.Enum(
        PaymentMethod,
        by_value=True,
        error_messages={"unknown": "payment_method must be 'cash' or 'upi'."},
        **kwargs,
    )


def _strip_text_fields(data: dict) -> dict:
    for key in ("name", "category"):
        if key in data:
            data[key] = data[key].strip()
    return data


# ── Sub-schema: one entry in the `payments` array ──────────────────────────

class PaymentInputSchema(Schema):
    """
    One payment in a PATCH payments list.

    attachment_urls names the existing attachments this payment keeps; it
    is ignored for cash payments.
    """

    paid_amount = fields.Decimal(required=True, validate=_validate_paid_amount)
    payment_method = _payment_method_field(required=True)
    paid_at = fields.DateTime(load_default=None, allow_none=True)
    attachment_urls = fields.List(fields.Str(), load_default=list)


class PaymentListField(fields.List):
    """A list of payments, given either as a JSON array or as a JSON-encoded string."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, (str, bytes)):
            try:
                value = json.loads(value)
            except ValueError as exc:
                raise self.make_error("invalid") from exc
        return super()._deserialize(value, attr, data, **kwargs)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /events/:id/expenses

    The expense is created with exactly one payment built from
    paid_amount + payment_method. A upi payment also needs attachments,
    which the service checks because files are not part of this payload.
    """

    name = fields.Str(required=True, validate=_name_validators)
    category = fields.Str(required=True, validate=_category_validators)
    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)
    payment_method = _payment_method_field(required=True)
    paid_amount = fields.Decimal(required=True, validate=_validate_paid_amount)

    @validates_schema
    def validate_paid_not_above_amount(self, data: dict, **kwargs) -> None:
        amount = data.get("amount")
        paid_amount = data.get("paid_amount")
        if amount is not None and paid_amount is not None and paid_amount > amount:
            raise ValidationError(
                {"paid_amount": [ErrorCode.PAID_AMOUNT_EXCEEDS_TOTAL]}
            )

    @post_load
    def strip_text(self, data: dict, **kwargs) -> dict:
        return _strip_text_fields(data)


# ── Add payment ────────────────────────────────────────────────────────────

class AddPaymentSchema(Schema):
    """POST /expenses/:id/payments"""

    paid_amount = fields.Decimal(required=True, validate=_validate_monetary_amount)
    payment_method = _payment_method_field(required=True)


# ── Update expense ─────────────────────────────────────────────────────────

class UpdateExpenseSchema(Schema):
    """
    PATCH /expenses/:id

    All fields are optional. Only provided fields are updated.

      - payments replaces the whole payment list (at least one entry).
      - attachment_target is the index, in the resulting payment list, of
        the upi payment that receives any files uploaded with this request.
    """

    name = fields.Str(required=False, validate=_name_validators)
    category = fields.Str(required=False, validate=_category_validators)
    amount = fields.Decimal(required=False, validate=_validate_monetary_amount)

    payments = PaymentListField(
        fields.Nested(PaymentInputSchema),
        required=False,
        validate=validate.Length(min=1, error="At least one payment is required."),
    )

    attachment_target = fields.Int(
        load_default=0,
        validate=validate.Range(min=0, error="attachment_target must be zero or greater."),
    )

    @post_load
    def strip_text(self, data: dict, **kwargs) -> dict:
        return _strip_text_fields(data)
