"""Velocity and statistical anomaly detection over transaction history."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ....infrastructure.config.settings import RiskEngineSettings
from .repositories import HistoryProvider
from .value_objects import OperationType


@dataclass
class VelocityResult:
    """Outcome of a rate check over the trailing window."""
    flagged: bool
    count: int
    threshold: int
    
    def to_details(self, operation: OperationType) -> Dict[str, Any]:
        return {
            "type": "high_velocity",
            "operation": operation.value,
            "count": self.count,
            "threshold": self.threshold,
        }


@dataclass
class PatternResult:
    """Outcome of the amount anomaly check."""
    flagged: bool
    sample_size: int
    reasons: List[str] = field(default_factory=list)
    average: Optional[Decimal] = None
    maximum: Optional[Decimal] = None
    
    def to_details(self, operation: OperationType, amount: Decimal) -> Dict[str, Any]:
        return {
            "type": "unusual_pattern",
            "operation": operation.value,
            "amount": str(amount),
            "reasons": list(self.reasons),
            "average": str(self.average) if self.average is not None else None,
            "maximum": str(self.maximum) if self.maximum is not None else None,
        }


class PatternDetector:
    """
    History-based checks.
    
    - Velocity: transactions of one operation type in the trailing hour,
      excluding the one being evaluated, against a per-operation threshold.
    - Anomaly: with at least five completed transactions in 30 days, flag
      amounts far above the historical mean and maximum, and round amounts
      sitting just below the basic KYC threshold.
    """
    
    VELOCITY_WINDOW = timedelta(hours=1)
    ANOMALY_WINDOW_DAYS = 30
    MIN_SAMPLE_SIZE = 5
    MEAN_MULTIPLIER = Decimal("3")
    MAX_MULTIPLIER = Decimal("1.5")
    ROUND_UNIT = Decimal("1000")
    ROUND_MIN_AMOUNT = Decimal("5000")
    NEAR_THRESHOLD_RATIO = Decimal("0.9")
    
    def __init__(self, history: HistoryProvider, settings: RiskEngineSettings):
        self.history = history
        self.settings = settings
    
    async def check_velocity(
        self,
        account_id: str,
        operation: OperationType,
        now: datetime,
    ) -> VelocityResult:
        threshold = self.settings.velocity_thresholds[operation.value]
        count = await self.history.count_recent(
            account_id, operation, now - self.VELOCITY_WINDOW
        )
        return VelocityResult(flagged=count >= threshold, count=count, threshold=threshold)
    
    async def check_anomaly(
        self,
        account_id: str,
        operation: OperationType,
        amount: Decimal,
    ) -> PatternResult:
        amounts = await self.history.recent_amounts(
            account_id, operation, self.ANOMALY_WINDOW_DAYS
        )
        if len(amounts) < self.MIN_SAMPLE_SIZE:
            return PatternResult(flagged=False, sample_size=len(amounts))
        
        average = sum(amounts, Decimal("0")) / len(amounts)
        maximum = max(amounts)
        reasons = []
        
        if amount > average * self.MEAN_MULTIPLIER and amount > maximum * self.MAX_MULTIPLIER:
            reasons.append("unusually_large_amount")
        
        if self._is_round_near_threshold(amount):
            reasons.append("round_amount_near_threshold")
        
        return PatternResult(
            flagged=bool(reasons),
            sample_size=len(amounts),
            reasons=reasons,
            average=average,
            maximum=maximum,
        )
    
    def _is_round_near_threshold(self, amount: Decimal) -> bool:
        # Structuring heuristic; unreachable while the basic threshold is below 5000
        threshold = self.settings.kyc.basic_threshold
        return (
            amount % self.ROUND_UNIT == 0
            and amount >= self.ROUND_MIN_AMOUNT
            and threshold * self.NEAR_THRESHOLD_RATIO <= amount < threshold
        )
