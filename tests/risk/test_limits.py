"""
Unit Tests for Limit Enforcement
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from risk_gate.domains.risk.domain.limits import LimitEnforcer
from risk_gate.domains.risk.domain.value_objects import (
    CurrentUsage,
    LimitBreach,
    OperationType,
    RiskLimits,
)


class TestLimitEnforcer:
    """Test limit checks per operation type."""

    @pytest.fixture
    def limits(self):
        return RiskLimits()

    @pytest.fixture
    def usage(self, now):
        return CurrentUsage(last_reset=now - timedelta(hours=1))

    def test_within_limits(self, limits, usage):
        assert LimitEnforcer.check(OperationType.TRADE, Decimal("5000"), limits, usage) == []

    def test_daily_trading_limit(self, limits, now):
        usage = CurrentUsage(last_reset=now, daily_trading=Decimal("45000"))

        breaches = LimitEnforcer.check(OperationType.TRADE, Decimal("5001"), limits, usage)

        assert breaches == [LimitBreach.DAILY_TRADING_LIMIT]

    def test_exactly_at_daily_limit_is_allowed(self, limits, now):
        usage = CurrentUsage(last_reset=now, daily_trading=Decimal("45000"))

        assert LimitEnforcer.check(OperationType.TRADE, Decimal("5000"), limits, usage) == []

    def test_single_trade_size(self, limits, usage):
        breaches = LimitEnforcer.check(OperationType.TRADE, Decimal("10000.01"), limits, usage)

        assert breaches == [LimitBreach.SINGLE_TRADE_SIZE_LIMIT]

    def test_trade_breaches_accumulate(self, limits, now):
        usage = CurrentUsage(last_reset=now, daily_trading=Decimal("45000"))

        breaches = LimitEnforcer.check(OperationType.TRADE, Decimal("12000"), limits, usage)

        assert breaches == [LimitBreach.DAILY_TRADING_LIMIT, LimitBreach.SINGLE_TRADE_SIZE_LIMIT]

    def test_withdrawal_limit(self, limits, now):
        usage = CurrentUsage(last_reset=now, daily_withdrawals=Decimal("8000"))

        breaches = LimitEnforcer.check(OperationType.WITHDRAWAL, Decimal("2500"), limits, usage)

        assert breaches == [LimitBreach.DAILY_WITHDRAWAL_LIMIT]

    def test_deposit_limit(self, limits, usage):
        breaches = LimitEnforcer.check(OperationType.DEPOSIT, Decimal("25001"), limits, usage)

        assert breaches == [LimitBreach.DAILY_DEPOSIT_LIMIT]

    def test_single_trade_size_only_applies_to_trades(self, limits, usage):
        assert LimitEnforcer.check(OperationType.DEPOSIT, Decimal("20000"), limits, usage) == []

    def test_open_positions_at_maximum(self, limits, now):
        usage = CurrentUsage(last_reset=now, open_positions=20)

        breaches = LimitEnforcer.check(OperationType.DEPOSIT, Decimal("10"), limits, usage)

        assert breaches == [LimitBreach.MAX_OPEN_POSITIONS]

    def test_loss_limits_reached(self, limits, now):
        usage = CurrentUsage(
            last_reset=now,
            daily_loss=Decimal("5000"),
            weekly_loss=Decimal("15000"),
            monthly_loss=Decimal("50000"),
        )

        breaches = LimitEnforcer.check(OperationType.WITHDRAWAL, Decimal("10"), limits, usage)

        assert breaches == [
            LimitBreach.DAILY_LOSS_LIMIT,
            LimitBreach.WEEKLY_LOSS_LIMIT,
            LimitBreach.MONTHLY_LOSS_LIMIT,
        ]

    def test_loss_just_below_limit(self, limits, now):
        usage = CurrentUsage(last_reset=now, daily_loss=Decimal("4999.99"))

        assert LimitEnforcer.check(OperationType.DEPOSIT, Decimal("10"), limits, usage) == []
