"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, email normalisation.
  - services/auth_service.py: DUPLICATE_EMAIL, credential checks and
    temporary-password expiry (require a DB lookup — not a schema concern).

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate

PASSWORD_MIN_LENGTH = 6


def _validate_non_empty_after_trim(value: str) -> None:
    """validate.Length(min=1) alone lets "   " through."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _normalise_email(data: dict) -> dict:
    if "email" in data:
        data["email"] = data["email"].strip().lower()
    return data


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      name     : 1–100 chars, not blank
      email    : valid email format, stored lower-cased
      password : min 6 chars

    Uniqueness of email is enforced in auth_service.py, not here, because it
    requires a DB query.
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

    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(
            min=PASSWORD_MIN_LENGTH,
            error=f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.",
        ),
    )

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        data["name"] = data["name"].strip()
        return _normalise_email(data)


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py
    (INVALID_CREDENTIALS, 401).
    """

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        return _normalise_email(data)


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh and POST /auth/logout

    Token validity (unknown, expired) is checked in auth_service.py
    (REFRESH_TOKEN_INVALID, 401).
    """

    refresh_token = fields.Str(required=True)


class ChangePasswordSchema(Schema):
    """POST /auth/change-password — public; the old password proves identity."""

    email = fields.Email(required=True)
    old_password = fields.Str(required=True, load_only=True)
    new_password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(
            min=PASSWORD_MIN_LENGTH,
            error=f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.",
        ),
    )

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        return _normalise_email(data)


class RequestTempPasswordSchema(Schema):
    """POST /auth/request-temp-password"""

    email = fields.Email(required=True)

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        return _normalise_email(data)
