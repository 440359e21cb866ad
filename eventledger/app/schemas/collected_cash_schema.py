"""
schemas/collected_cash_schema.py — Marshmallow schemas for cash collection.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, post_load, validate

from eventledger.app.errors import ErrorCode
from eventledger.app.models.columns import MAX_AMOUNT


def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {MAX_AMOUNT}.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateCollectedCashSchema(Schema):
    """POST /events/:id/collected-cash"""

    contributor_name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=200, error="contributor_name must be between 1 and 200 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)

    @post_load
    def strip_name(self, data: dict, **kwargs) -> dict:
        if "contributor_name" in data:
            data["contributor_name"] = data["contributor_name"].strip()
        return data


class UpdateCollectedCashSchema(CreateCollectedCashSchema):
    """
    PATCH /collected-cash/:id

    Loaded with partial=True so either field may be omitted.
    """
