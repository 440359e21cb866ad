"""
schemas/user_schema.py — Marshmallow schemas for admin user management.

An unknown role value is reported as INVALID_ROLE (400). Whether the caller
may grant that role is decided in services/user_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate

from eventledger.app.errors import ErrorCode
from eventledger.app.models.user import GlobalRole


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateUserSchema(Schema):
    """
    POST /users

    No password field: the account gets a temporary password that is
    emailed to the user.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    role = fields.Enum(
        GlobalRole,
        load_default=GlobalRole.USER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        data["email"] = data["email"].strip().lower()
        return data


class ChangeRoleSchema(Schema):
    """PATCH /users/:id/role"""

    role = fields.Enum(
        GlobalRole,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )
