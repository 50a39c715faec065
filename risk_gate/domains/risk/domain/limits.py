"""Limit enforcement against current usage."""

from decimal import Decimal
from typing import List

from .value_objects import CurrentUsage, LimitBreach, OperationType, RiskLimits


class LimitEnforcer:
    """Compares a proposed operation and current usage against limits."""
    
    @staticmethod
    def check(
        operation: OperationType,
        amount: Decimal,
        limits: RiskLimits,
        usage: CurrentUsage,
    ) -> List[LimitBreach]:
        """
        Evaluate every applicable limit.
        
        Returns:
            Violated limits in evaluation order; empty when none are breached
        """
        breaches: List[LimitBreach] = []
        
        if operation == OperationType.TRADE:
            if usage.daily_trading + amount > limits.daily_trading_limit:
                breaches.append(LimitBreach.DAILY_TRADING_LIMIT)
            if amount > limits.max_single_trade_size:
                breaches.append(LimitBreach.SINGLE_TRADE_SIZE_LIMIT)
        elif operation == OperationType.WITHDRAWAL:
            if usage.daily_withdrawals + amount > limits.daily_withdrawal_limit:
                breaches.append(LimitBreach.DAILY_WITHDRAWAL_LIMIT)
        elif operation == OperationType.DEPOSIT:
            if usage.daily_deposits + amount > limits.daily_deposit_limit:
                breaches.append(LimitBreach.DAILY_DEPOSIT_LIMIT)
        else:
            raise ValueError(f"Unsupported operation: {operation}")
        
        if usage.open_positions >= limits.max_open_positions:
            breaches.append(LimitBreach.MAX_OPEN_POSITIONS)
        if usage.daily_loss >= limits.max_daily_loss:
            breaches.append(LimitBreach.DAILY_LOSS_LIMIT)
        if usage.weekly_loss >= limits.max_weekly_loss:
            breaches.append(LimitBreach.WEEKLY_LOSS_LIMIT)
        if usage.monthly_loss >= limits.max_monthly_loss:
            breaches.append(LimitBreach.MONTHLY_LOSS_LIMIT)
        
        return breaches
