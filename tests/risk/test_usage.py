"""
Unit Tests for Usage Tracking

Tests rolling counters and the day-boundary reset rule.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from risk_gate.domains.risk.domain.usage import UsageTracker
from risk_gate.domains.risk.domain.value_objects import CurrentUsage, UsageOperation
from risk_gate.shared.exceptions.base import InvalidAmountError, ValidationError


class TestUsageReset:
    """Daily reset behaviour."""

    @pytest.fixture
    def usage(self, now):
        return CurrentUsage(
            last_reset=now - timedelta(hours=30),
            daily_trading=Decimal("4000"),
            daily_withdrawals=Decimal("300"),
            daily_deposits=Decimal("2500"),
            daily_loss=Decimal("700"),
            weekly_loss=Decimal("1700"),
            monthly_loss=Decimal("5200"),
            open_positions=3,
        )

    def test_reset_after_a_full_day(self, usage, now):
        reset = UsageTracker.reset_if_due(usage, now)

        assert reset.daily_trading == 0
        assert reset.daily_withdrawals == 0
        assert reset.daily_deposits == 0
        assert reset.daily_loss == 0
        assert reset.last_reset == now
        assert reset.open_positions == 3

    def test_weekly_and_monthly_losses_are_not_reset(self, usage, now):
        """Current behaviour: only daily counters reset, even after many days."""
        reset = UsageTracker.reset_if_due(usage, now + timedelta(days=45))

        assert reset.weekly_loss == Decimal("1700")
        assert reset.monthly_loss == Decimal("5200")

    def test_no_reset_within_a_day(self, usage, now):
        fresh = CurrentUsage(last_reset=now - timedelta(hours=23, minutes=59), daily_trading=Decimal("10"))

        assert UsageTracker.reset_if_due(fresh, now) is fresh
        assert UsageTracker.is_reset_due(fresh, now) is False

    def test_reset_is_idempotent(self, usage, now):
        once = UsageTracker.reset_if_due(usage, now)
        twice = UsageTracker.reset_if_due(once, now)

        assert twice is once

    def test_several_elapsed_days_reset_once(self, usage, now):
        later = now + timedelta(days=3)

        reset = UsageTracker.reset_if_due(usage, later)

        assert reset.last_reset == later
        assert UsageTracker.days_elapsed(reset, later) == 0


class TestUsageRecord:
    """Counter updates after completed operations."""

    @pytest.fixture
    def usage(self, now):
        return CurrentUsage(last_reset=now - timedelta(hours=1))

    @pytest.mark.parametrize("operation,attribute", [
        (UsageOperation.TRADE, "daily_trading"),
        (UsageOperation.WITHDRAWAL, "daily_withdrawals"),
        (UsageOperation.DEPOSIT, "daily_deposits"),
    ])
    def test_operation_adds_to_its_counter(self, usage, now, operation, attribute):
        updated = UsageTracker.record(usage, operation, Decimal("125.50"), now)

        assert getattr(updated, attribute) == Decimal("125.50")

    def test_loss_accumulates_daily_weekly_and_monthly(self, usage, now):
        updated = UsageTracker.record(usage, UsageOperation.LOSS, Decimal("400"), now)
        updated = UsageTracker.record(updated, UsageOperation.LOSS, Decimal("100"), now)

        assert updated.daily_loss == Decimal("500")
        assert updated.weekly_loss == Decimal("500")
        assert updated.monthly_loss == Decimal("500")

    def test_record_resets_stale_counters_first(self, now):
        stale = CurrentUsage(
            last_reset=now - timedelta(days=2),
            daily_deposits=Decimal("9000"),
            weekly_loss=Decimal("50"),
        )

        updated = UsageTracker.record(stale, UsageOperation.DEPOSIT, Decimal("100"), now)

        assert updated.daily_deposits == Decimal("100")
        assert updated.weekly_loss == Decimal("50")
        assert updated.last_reset == now

    def test_positions_open_and_close(self, usage, now):
        opened = UsageTracker.record(usage, UsageOperation.POSITION_OPENED, Decimal("0"), now)
        opened = UsageTracker.record(opened, UsageOperation.POSITION_OPENED, Decimal("0"), now)
        closed = UsageTracker.record(opened, UsageOperation.POSITION_CLOSED, Decimal("0"), now)

        assert opened.open_positions == 2
        assert closed.open_positions == 1

    def test_closing_never_goes_negative(self, usage, now):
        closed = UsageTracker.record(usage, UsageOperation.POSITION_CLOSED, Decimal("0"), now)

        assert closed.open_positions == 0

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), Decimal("NaN"), Decimal("Infinity")])
    def test_invalid_amount_rejected(self, usage, now, amount):
        with pytest.raises(InvalidAmountError):
            UsageTracker.record(usage, UsageOperation.TRADE, amount, now)

    def test_counters_cannot_be_negative(self, now):
        with pytest.raises(ValidationError):
            CurrentUsage(last_reset=now, daily_trading=Decimal("-1"))
