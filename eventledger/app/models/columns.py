"""
models/columns.py — Column helpers shared by every model.

Timestamps are generated in Python (not server_default=func.now()) so that
two rows written in the same transaction still get distinct, ordered values
on every backend, including SQLite in the test suite.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal


CENT = Decimal("0.01")

# Largest value a Numeric(12, 2) money column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes for timezone-aware columns; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def money(value: Decimal | int | None) -> str:
    """Decimal -> "12.50". Amounts always leave the API as two-place strings."""
    return str(Decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP))


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'editor'), not names ('EDITOR')."""
    return [member.value for member in enum_cls]
