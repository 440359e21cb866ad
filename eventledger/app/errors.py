"""
errors.py — AppError base class and error code registry.

Every error returned by the EventLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add a test that hits it.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the section header.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD               = "MISSING_FIELD"
    INVALID_FIELD               = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION    = "INVALID_AMOUNT_PRECISION"
    INVALID_ROLE                = "INVALID_ROLE"
    INVALID_IDENTIFIER          = "INVALID_IDENTIFIER"

    # ── Ledger Rule Violations (400) ───────────────────────────────────────
    PAID_AMOUNT_EXCEEDS_TOTAL   = "PAID_AMOUNT_EXCEEDS_TOTAL"
    PAID_AMOUNT_EXCEEDS_PENDING = "PAID_AMOUNT_EXCEEDS_PENDING"
    AMOUNT_BELOW_PAID           = "AMOUNT_BELOW_PAID"
    ATTACHMENT_REQUIRED         = "ATTACHMENT_REQUIRED"
    TOO_MANY_ATTACHMENTS        = "TOO_MANY_ATTACHMENTS"
    UNKNOWN_ATTACHMENT          = "UNKNOWN_ATTACHMENT"
    SHARE_WITH_OWNER            = "SHARE_WITH_OWNER"
    DUPLICATE_SHARE_USER        = "DUPLICATE_SHARE_USER"
    NOT_DELETED                 = "NOT_DELETED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL             = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND              = "USER_NOT_FOUND"
    EVENT_NOT_FOUND             = "EVENT_NOT_FOUND"
    EXPENSE_NOT_FOUND           = "EXPENSE_NOT_FOUND"
    COLLECTED_CASH_NOT_FOUND    = "COLLECTED_CASH_NOT_FOUND"
    RESOURCE_NOT_FOUND          = "RESOURCE_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    # These must NEVER be swapped.
    INVALID_CREDENTIALS         = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING               = "TOKEN_MISSING"          # 401
    TOKEN_INVALID               = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED               = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID       = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                   = "FORBIDDEN"              # 403
    TEMP_PASSWORD_EXPIRED       = "TEMP_PASSWORD_EXPIRED"  # 403

    # ── Upstream Errors (502) ──────────────────────────────────────────────
    # Attachment storage or another collaborator failed mid-request.
    UPSTREAM_FAILURE            = "UPSTREAM_FAILURE"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR              = "INTERNAL_ERROR"


# Default prose for codes that schemas raise as bare ValidationError messages.
CODE_MESSAGES: dict[str, str] = {
    ErrorCode.INVALID_AMOUNT_PRECISION: "Amount must have at most 2 decimal places.",
    ErrorCode.INVALID_ROLE: "Role must be one of the allowed values.",
    ErrorCode.INVALID_IDENTIFIER: "The identifier must be a positive integer.",
    ErrorCode.PAID_AMOUNT_EXCEEDS_TOTAL: "paid_amount cannot exceed the expense amount.",
}


# ── Convenience constructors ───────────────────────────────────────────────
# Categories that several services raise with the same status.

def forbidden(message: str) -> AppError:
    return AppError(ErrorCode.FORBIDDEN, message, 403)


def invalid_input(code: str, message: str, field: str | None = None) -> AppError:
    return AppError(code, message, 400, field=field)
