"""
Tests for the subscription price escalation engine.

All functions under test are pure, so no storage or settings are needed.
"""

import pytest
from datetime import date
from decimal import Decimal

from gestor.errors import (
    InvalidRateError,
    MissingAdjustmentPeriodError,
    ValidationFailedError,
)
from gestor.models import AdjustmentPeriod, ClientStatus
from gestor.pricing import (
    DEFAULT_MONTHLY_IPC_RATES,
    advance,
    apply_adjustment,
    clients_due,
    compute_adjustment,
    due_for_adjustment,
    suggested_rate,
)


class TestAdvance:
    """Tests for adding an adjustment period to a date."""

    def test_quarterly(self):
        assert advance("2024-01-15", "trimestral") == date(2024, 4, 15)

    def test_semiannual_rolls_over_year(self):
        assert advance("2024-11-15", "semestral") == date(2025, 5, 15)

    def test_four_monthly(self):
        assert advance(date(2024, 10, 1), AdjustmentPeriod.FOUR_MONTHLY) == date(2025, 2, 1)

    def test_month_end_is_clamped(self):
        """Test day-of-month overflow lands on the last day of the month."""
        assert advance("2024-01-31", "trimestral") == date(2024, 4, 30)
        assert advance("2023-11-30", "trimestral") == date(2024, 2, 29)
        assert advance("2022-11-30", "trimestral") == date(2023, 2, 28)

    def test_accepts_english_alias(self):
        assert advance("2024-01-15", "quarterly") == date(2024, 4, 15)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            advance("2024-01-15", "anual")

    def test_period_months(self):
        assert [p.months for p in AdjustmentPeriod] == [3, 4, 6]


class TestComputeAdjustment:
    """Tests for the new price calculation."""

    def test_twenty_five_percent(self):
        assert compute_adjustment(100, 25) == Decimal("125")

    def test_zero_rate_keeps_value(self):
        assert compute_adjustment(100, 0) == Decimal("100")

    def test_rounds_half_up_to_cents(self):
        assert compute_adjustment(Decimal("10.01"), Decimal("4.95")) == Decimal("10.51")
        assert compute_adjustment("33.33", "2.7") == Decimal("34.23")

    def test_float_inputs_go_through_str(self):
        assert compute_adjustment(1000.1, 8.8) == Decimal("1088.11")

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidRateError) as exc_info:
            compute_adjustment(100, -1)
        assert exc_info.value.issues[0].issue_type == "negative_rate"

    def test_non_numeric_rate_rejected(self):
        with pytest.raises(InvalidRateError):
            compute_adjustment(100, "abc")

    def test_nan_rate_rejected(self):
        with pytest.raises(InvalidRateError):
            compute_adjustment(100, float("nan"))

    def test_negative_value_rejected(self):
        with pytest.raises(ValidationFailedError):
            compute_adjustment(-100, 10)

    def test_errors_are_value_errors(self):
        """Test callers catching ValueError also catch rate errors."""
        with pytest.raises(ValueError):
            compute_adjustment(100, -5)


class TestDueForAdjustment:
    """Tests for deciding which clients are due."""

    def test_due_on_the_date(self, make_client):
        client = make_client(last_adjustment_date=date(2024, 1, 15))
        assert due_for_adjustment(client, date(2024, 4, 15)) is True

    def test_not_due_the_day_before(self, make_client):
        client = make_client(last_adjustment_date=date(2024, 1, 15))
        assert due_for_adjustment(client, date(2024, 4, 14)) is False

    def test_overdue(self, make_client):
        client = make_client(last_adjustment_date=date(2023, 1, 15))
        assert due_for_adjustment(client, "2024-04-15") is True

    def test_no_period_never_due(self, make_client):
        client = make_client(adjustment_period=None)
        assert due_for_adjustment(client, date(2030, 1, 1)) is False

    def test_no_last_date_never_due(self, make_client):
        client = make_client(last_adjustment_date=None)
        assert due_for_adjustment(client, date(2030, 1, 1)) is False

    def test_inactive_never_due(self, make_client):
        client = make_client(status=ClientStatus.INACTIVE)
        assert due_for_adjustment(client, date(2030, 1, 1)) is False

    def test_clients_due_keeps_order(self, make_client):
        first = make_client(name="A", last_adjustment_date=date(2024, 1, 1))
        not_due = make_client(name="B", last_adjustment_date=date(2024, 6, 1))
        second = make_client(name="C", last_adjustment_date=date(2023, 12, 1))
        due = clients_due([first, not_due, second], date(2024, 4, 1))
        assert [c.name for c in due] == ["A", "C"]


class TestApplyAdjustment:
    """Tests for applying an adjustment to a client."""

    def test_updates_copy_and_builds_record(self, make_client):
        """Test the new client carries the new value and dates."""
        client = make_client(subscription_value="1000", last_adjustment_date=date(2024, 1, 15))

        result = apply_adjustment(client, 13, date(2024, 4, 15))

        assert result.client.subscription_value == Decimal("1130.00")
        assert result.client.last_adjustment_date == date(2024, 4, 15)
        assert result.client.next_adjustment_date == date(2024, 7, 15)
        assert result.record.old_value == Decimal("1000")
        assert result.record.new_value == Decimal("1130.00")
        assert result.record.ipc_percentage == Decimal("13")
        assert result.record.client_id == client.id
        assert result.record.tenant_id == client.tenant_id
        assert result.record.adjustment_date == date(2024, 4, 15)

    def test_input_client_untouched(self, make_client):
        client = make_client(subscription_value="1000")
        apply_adjustment(client, 25, date(2024, 4, 15))
        assert client.subscription_value == Decimal("1000")
        assert client.last_adjustment_date == date(2024, 1, 15)

    def test_next_date_follows_period(self, make_client):
        """Test next date == advance(effective date, period) for every period."""
        for period in AdjustmentPeriod:
            client = make_client(adjustment_period=period)
            result = apply_adjustment(client, 5, date(2024, 8, 31))
            assert result.client.next_adjustment_date == advance(date(2024, 8, 31), period)

    def test_default_note(self, make_client):
        result = apply_adjustment(make_client(adjustment_period="semestral"), 5, "2024-05-01")
        assert result.record.notes == "Ajuste automático por IPC semestral"

    def test_custom_note(self, make_client):
        result = apply_adjustment(make_client(), 5, "2024-05-01", notes="Acordado con el cliente")
        assert result.record.notes == "Acordado con el cliente"

    def test_zero_rate_still_moves_dates(self, make_client):
        result = apply_adjustment(make_client(subscription_value="500"), 0, date(2024, 4, 15))
        assert result.client.subscription_value == Decimal("500.00")
        assert result.client.last_adjustment_date == date(2024, 4, 15)

    def test_missing_period(self, make_client):
        with pytest.raises(MissingAdjustmentPeriodError):
            apply_adjustment(make_client(adjustment_period=None), 5, date(2024, 4, 15))

    def test_negative_rate(self, make_client):
        with pytest.raises(InvalidRateError):
            apply_adjustment(make_client(), -3, date(2024, 4, 15))


class TestSuggestedRate:
    """Tests for the monthly suggested rate table."""

    def test_default_table(self):
        assert len(DEFAULT_MONTHLY_IPC_RATES) == 12
        assert suggested_rate(1) == Decimal("25")
        assert suggested_rate(4) == Decimal("8.8")
        assert suggested_rate(12) == Decimal("2.7")

    def test_accepts_date(self):
        assert suggested_rate(date(2024, 3, 20)) == Decimal("13")

    def test_custom_table(self):
        table = [Decimal(i) for i in range(1, 13)]
        assert suggested_rate(7, table) == Decimal("7")

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            suggested_rate(13)

    def test_table_must_have_twelve_entries(self):
        with pytest.raises(ValueError, match="12 entries"):
            suggested_rate(1, [Decimal("1")])
