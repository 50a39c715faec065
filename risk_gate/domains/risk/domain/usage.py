"""Rolling usage counters with day-boundary reset."""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

from ....shared.exceptions.base import InvalidAmountError
from .value_objects import CurrentUsage, UsageOperation

ONE_DAY = timedelta(days=1)


class UsageTracker:
    """
    Pure functions over CurrentUsage snapshots.
    
    Only the four daily counters are ever reset. Weekly and monthly loss
    accumulators keep growing until an operator clears them.
    """
    
    @staticmethod
    def days_elapsed(usage: CurrentUsage, now: datetime) -> int:
        return (now - usage.last_reset) // ONE_DAY
    
    @staticmethod
    def is_reset_due(usage: CurrentUsage, now: datetime) -> bool:
        return UsageTracker.days_elapsed(usage, now) >= 1
    
    @staticmethod
    def reset_if_due(usage: CurrentUsage, now: datetime) -> CurrentUsage:
        """Zero the daily counters once a whole day has passed since the last reset."""
        if not UsageTracker.is_reset_due(usage, now):
            return usage
        
        return replace(
            usage,
            daily_trading=Decimal("0"),
            daily_withdrawals=Decimal("0"),
            daily_deposits=Decimal("0"),
            daily_loss=Decimal("0"),
            last_reset=now,
        )
    
    @staticmethod
    def record(
        usage: CurrentUsage,
        operation: UsageOperation,
        amount: Decimal,
        now: datetime,
    ) -> CurrentUsage:
        """
        Apply a completed operation to the counters.
        
        Position operations ignore the amount; every other operation
        requires a strictly positive amount.
        """
        usage = UsageTracker.reset_if_due(usage, now)
        
        if operation == UsageOperation.POSITION_OPENED:
            return replace(usage, open_positions=usage.open_positions + 1)
        if operation == UsageOperation.POSITION_CLOSED:
            return replace(usage, open_positions=max(0, usage.open_positions - 1))
        
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(amount)
        
        if operation == UsageOperation.TRADE:
            return replace(usage, daily_trading=usage.daily_trading + amount)
        if operation == UsageOperation.WITHDRAWAL:
            return replace(usage, daily_withdrawals=usage.daily_withdrawals + amount)
        if operation == UsageOperation.DEPOSIT:
            return replace(usage, daily_deposits=usage.daily_deposits + amount)
        if operation == UsageOperation.LOSS:
            return replace(
                usage,
                daily_loss=usage.daily_loss + amount,
                weekly_loss=usage.weekly_loss + amount,
                monthly_loss=usage.monthly_loss + amount,
            )
        
        raise ValueError(f"Unsupported usage operation: {operation}")
