"""
schemas/event_schema.py — Marshmallow schemas for event endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, year range
      - Share role must be editor or viewer (INVALID_ROLE, 400); 'owner'
        can never be granted
      - Non-empty-after-trim enforcement for name
  - services/event_service.py:
      - SHARE_WITH_OWNER and DUPLICATE_SHARE_USER (need the event row)
      - USER_NOT_FOUND (needs a DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, validate

from eventledger.app.errors import ErrorCode
from eventledger.app.models.event import ShareRole


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_name_field_validators = [
    validate.Length(min=1, max=200, error="Name must be between 1 and 200 characters."),
    _validate_non_empty_after_trim,
]

_year_validator = validate.Range(min=1, max=9999, error="Year must be between 1 and 9999.")


# ── Sub-schema: one entry in the `shared_with` array ───────────────────────

class ShareEntrySchema(Schema):
    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    role = fields.Enum(
        ShareRole,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )


# ── Create / update ────────────────────────────────────────────────────────

class CreateEventSchema(Schema):
    """
    POST /events

    Events start with an empty share list; use the share endpoint (or PATCH
    with shared_with) to grant access.
    """

    class Meta:
        # shared_with and other extra keys are dropped, not rejected
        unknown = EXCLUDE

    name = fields.Str(required=True, validate=_name_field_validators)
    year = fields.Int(required=True, strict=True, validate=_year_validator)
    description = fields.Str(load_default="", validate=validate.Length(max=2000))

    @post_load
    def strip_name(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        return data


class UpdateEventSchema(Schema):
    """
    PATCH /events/:id

    All fields optional. shared_with, when present, replaces the share list.
    """

    name = fields.Str(required=False, validate=_name_field_validators)
    year = fields.Int(required=False, strict=True, validate=_year_validator)
    description = fields.Str(required=False, allow_none=True, validate=validate.Length(max=2000))
    shared_with = fields.List(fields.Nested(ShareEntrySchema), required=False)

    @post_load
    def strip_name(self, data: dict, **kwargs) -> dict:
        if "name" in data:
            data["name"] = data["name"].strip()
        return data


class ShareEventSchema(Schema):
    """POST /events/:id/share — the full list of non-owner users and their roles."""

    shared_with = fields.List(fields.Nested(ShareEntrySchema), required=True)
