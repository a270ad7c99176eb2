"""Unit tests for fee resolution (FeeSchedule)."""

import logging
from decimal import Decimal

import pytest

from condofin.models import ExtraCharge, FeeHistory
from condofin.services.fee_schedule import FeeSchedule


def fee(amount, effective_from, effective_to=None, id=None):
    return FeeHistory(id=id, amount=Decimal(amount), effective_from=effective_from, effective_to=effective_to)


def extra(amount, effective_from, effective_to=None, unit_id=None, id=None, description="Obras"):
    return ExtraCharge(
        id=id,
        unit_id=unit_id,
        description=description,
        amount=Decimal(amount),
        effective_from=effective_from,
        effective_to=effective_to,
    )


class TestFeeForMonth:
    """Test base fee lookup."""

    @pytest.fixture
    def schedule(self):
        return FeeSchedule(default_fee=Decimal("0"))

    def test_fallback_before_first_record(self, schedule):
        history = [fee("45", "2024-01")]
        assert schedule.fee_for_month(history, "2023-12", Decimal("37.50")) == Decimal("37.50")

    def test_record_applies_from_effective_month(self, schedule):
        history = [fee("45", "2024-01")]
        assert schedule.fee_for_month(history, "2024-06", Decimal("37.50")) == Decimal("45")
        assert schedule.fee_for_month(history, "2024-01", Decimal("37.50")) == Decimal("45")

    def test_empty_history_uses_fallback(self, schedule):
        assert schedule.fee_for_month([], "2024-06", Decimal("20")) == Decimal("20")

    def test_no_fallback_uses_configured_default(self):
        schedule = FeeSchedule(default_fee=Decimal("30"))
        assert schedule.fee_for_month([], "2024-06") == Decimal("30")

    def test_latest_record_wins(self, schedule):
        history = [
            fee("45", "2024-06"),
            fee("37.50", "2023-01", "2024-05"),
            fee("50", "2025-01"),
        ]
        assert schedule.fee_for_month(history, "2024-05", None) == Decimal("37.50")
        assert schedule.fee_for_month(history, "2024-12", None) == Decimal("45")
        assert schedule.fee_for_month(history, "2025-03", None) == Decimal("50")

    def test_closed_record_does_not_leak_past_its_end(self, schedule):
        history = [fee("37.50", "2023-01", "2023-12")]
        assert schedule.fee_for_month(history, "2024-02", Decimal("40")) == Decimal("40")

    def test_duplicate_start_logs_warning_and_later_wins(self, schedule, caplog):
        history = [fee("40", "2024-01", id=1), fee("42", "2024-01", id=2)]
        with caplog.at_level(logging.WARNING):
            result = schedule.fee_for_month(history, "2024-03", None)
        assert result == Decimal("42")
        assert "two records starting 2024-01" in caplog.text

    def test_invalid_month_rejected(self, schedule):
        with pytest.raises(ValueError):
            schedule.fee_for_month([], "2024-1", None)

    @pytest.mark.parametrize("month", ["2023-12", "2024-01", "2024-05", "2024-06", "2024-12"])
    def test_later_records_do_not_change_earlier_months(self, schedule, month):
        base = [fee("37.50", "2023-01", "2024-05"), fee("45", "2024-06")]
        extended = base + [fee("99", "2025-01"), fee("120", "2026-07")]
        assert schedule.fee_for_month(base, month, Decimal("10")) == schedule.fee_for_month(
            extended, month, Decimal("10")
        )


class TestTotalFeeForMonth:
    """Test base fee plus extra charges."""

    @pytest.fixture
    def schedule(self):
        return FeeSchedule()

    def test_global_and_scoped_extras_add_up(self, schedule):
        extras = [
            extra("10", "2024-01", "2024-12", id=1, description="Elevador"),
            extra("5", "2024-03", unit_id=7, id=2, description="Garagem"),
            extra("8", "2024-01", unit_id=8, id=3),
        ]
        breakdown = schedule.total_fee_for_month([fee("45", "2024-01")], extras, "2024-04", None, unit_id=7)

        assert breakdown.base_fee == Decimal("45")
        assert [e.id for e in breakdown.extras] == [1, 2]
        assert breakdown.total == Decimal("60")

    def test_inactive_extras_ignored(self, schedule):
        extras = [extra("10", "2024-01", "2024-02"), extra("5", "2025-01")]
        breakdown = schedule.total_fee_for_month([], extras, "2024-06", Decimal("37.50"), unit_id=1)

        assert breakdown.extras == []
        assert breakdown.total == Decimal("37.50")

    def test_without_unit_only_global_extras(self, schedule):
        extras = [extra("10", "2024-01"), extra("5", "2024-01", unit_id=3)]
        breakdown = schedule.total_fee_for_month([], extras, "2024-06", Decimal("0"))
        assert breakdown.total == Decimal("10")
