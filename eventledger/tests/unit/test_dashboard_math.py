"""
tests/unit/test_dashboard_math.py — Pure parts of the dashboard summary.

Path identifier parsing and the percent-spent rounding rule. The database
aggregates are covered by tests/integration/test_dashboard.py.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from eventledger.app.errors import AppError, ErrorCode
from eventledger.app.services.dashboard_service import (
    compute_percent_spent,
    parse_event_id,
)


class TestParseEventId:

    @pytest.mark.parametrize("raw, expected", [("1", 1), ("42", 42), (" 7 ", 7)])
    def test_plain_positive_integers(self, raw, expected):
        assert parse_event_id(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "-3", "1.5", "abc", "", "1e3", "١٢"])
    def test_anything_else_is_invalid_identifier(self, raw):
        with pytest.raises(AppError) as exc_info:
            parse_event_id(raw)

        err = exc_info.value
        assert err.code == ErrorCode.INVALID_IDENTIFIER
        assert err.http_status == 400
        assert err.field == "event_id"


class TestPercentSpent:

    def test_quarter_spent(self):
        """1000 collected, 250 spent."""
        assert compute_percent_spent(Decimal("250"), Decimal("1000")) == 25

    def test_nothing_collected_is_zero(self):
        assert compute_percent_spent(Decimal("500"), Decimal("0")) == 0

    def test_half_rounds_up(self):
        # 1 / 8 = 12.5 %
        assert compute_percent_spent(Decimal("1"), Decimal("8")) == 13

    def test_below_half_rounds_down(self):
        # 1 / 3 = 33.33 %
        assert compute_percent_spent(Decimal("1"), Decimal("3")) == 33

    def test_overspend_exceeds_hundred(self):
        assert compute_percent_spent(Decimal("150.00"), Decimal("100.00")) == 150
