"""
Explainable Risk Scoring

Two deterministic, additive models:

Profile score (static factors of the account):
    age + experience + verification
    + (100 - ip_reputation) x 0.2 + (100 - device_trust) x 0.2 + geographic_risk x 0.3
    + behavioral flags + KYC/AML/PEP compliance terms

Transaction score (one proposed operation):
    max(0, profile_score - 50) + amount, account age, timing,
    geography, device, IP and recent-violation bonuses

Both are clamped to 0-100 and rounded half-up to an integer.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from ....infrastructure.config.settings import RiskEngineSettings
from .entities import RiskProfile
from .value_objects import (
    KycStatus,
    OperationContext,
    OperationType,
    RiskFactors,
    RiskLevel,
    TradingExperience,
    VerificationLevel,
)

MAX_SCORE = Decimal("100")


def clamp_score(value: Decimal) -> int:
    """Clamp to 0-100 and round half-up to an integer score."""
    bounded = max(Decimal("0"), min(MAX_SCORE, Decimal(value)))
    return int(bounded.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class ProfileScore:
    """Profile risk assessment result."""
    score: int
    level: RiskLevel
    breakdown: Dict[str, Decimal]
    computed_at: datetime
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "breakdown": {k: str(v) for k, v in self.breakdown.items()},
            "computed_at": self.computed_at.isoformat(),
        }


class RiskScorer:
    """
    Static profile risk model.
    
    Component contributions:
    - account_age: newer accounts are riskier
    - experience: less experienced traders are riskier
    - verification: weaker identity verification is riskier
    - external: IP reputation, device trust and geography
    - behavioral: poor win rate, very large trades, very high frequency
    - compliance: unapproved KYC, AML risk and PEP status
    """
    
    ACCOUNT_AGE_POINTS = (
        (30, Decimal("20")),
        (90, Decimal("10")),
    )
    
    EXPERIENCE_POINTS = {
        TradingExperience.BEGINNER: Decimal("20"),
        TradingExperience.INTERMEDIATE: Decimal("10"),
        TradingExperience.ADVANCED: Decimal("5"),
        TradingExperience.EXPERT: Decimal("0"),
    }
    
    VERIFICATION_POINTS = {
        VerificationLevel.NONE: Decimal("30"),
        VerificationLevel.BASIC: Decimal("15"),
        VerificationLevel.ENHANCED: Decimal("5"),
        VerificationLevel.INSTITUTIONAL: Decimal("0"),
    }
    
    WEIGHTS = {
        "ip_reputation": Decimal("0.2"),
        "device_trust": Decimal("0.2"),
        "geographic_risk": Decimal("0.3"),
        "aml_risk": Decimal("0.5"),
    }
    
    LOW_WIN_RATE = Decimal("30")
    LARGE_AVERAGE_TRADE = Decimal("50000")
    HIGH_FREQUENCY = Decimal("50")
    
    BEHAVIOR_POINTS = {
        "low_win_rate": Decimal("15"),
        "large_average_trade": Decimal("10"),
        "high_frequency": Decimal("15"),
    }
    
    KYC_NOT_APPROVED_POINTS = Decimal("25")
    PEP_POINTS = Decimal("20")
    
    @staticmethod
    def compute_score(factors: RiskFactors, computed_at: datetime) -> ProfileScore:
        """
        Compute the profile score from its risk factors.
        
        Args:
            factors: Static risk factors of the account
            computed_at: Assessment timestamp
        
        Returns:
            ProfileScore with integer score, level and per-component breakdown
        """
        breakdown = {
            "account_age": RiskScorer._account_age_points(factors.account_age),
            "experience": RiskScorer.EXPERIENCE_POINTS[factors.trading_experience],
            "verification": RiskScorer.VERIFICATION_POINTS[factors.verification_level],
            "external": RiskScorer._external_points(factors),
            "behavioral": RiskScorer._behavioral_points(factors),
            "compliance": RiskScorer._compliance_points(factors),
        }
        
        score = clamp_score(sum(breakdown.values(), Decimal("0")))
        return ProfileScore(
            score=score,
            level=RiskLevel.for_score(score),
            breakdown=breakdown,
            computed_at=computed_at,
        )
    
    @staticmethod
    def assess(profile: RiskProfile, now: datetime) -> RiskProfile:
        """Return the profile with a fresh score, level and assessment time."""
        result = RiskScorer.compute_score(profile.risk_factors, now)
        return profile.with_assessment(result.score, now)
    
    @staticmethod
    def _account_age_points(age_days: int) -> Decimal:
        for bound, points in RiskScorer.ACCOUNT_AGE_POINTS:
            if age_days < bound:
                return points
        return Decimal("0")
    
    @staticmethod
    def _external_points(factors: RiskFactors) -> Decimal:
        weights = RiskScorer.WEIGHTS
        return (
            (100 - factors.ip_reputation) * weights["ip_reputation"]
            + (100 - factors.device_trust) * weights["device_trust"]
            + factors.geographic_risk * weights["geographic_risk"]
        )
    
    @staticmethod
    def _behavioral_points(factors: RiskFactors) -> Decimal:
        points = Decimal("0")
        if factors.win_rate < RiskScorer.LOW_WIN_RATE:
            points += RiskScorer.BEHAVIOR_POINTS["low_win_rate"]
        if factors.average_trade_size > RiskScorer.LARGE_AVERAGE_TRADE:
            points += RiskScorer.BEHAVIOR_POINTS["large_average_trade"]
        if factors.trading_frequency > RiskScorer.HIGH_FREQUENCY:
            points += RiskScorer.BEHAVIOR_POINTS["high_frequency"]
        return points
    
    @staticmethod
    def _compliance_points(factors: RiskFactors) -> Decimal:
        points = factors.aml_risk * RiskScorer.WEIGHTS["aml_risk"]
        if factors.kyc_status != KycStatus.APPROVED:
            points += RiskScorer.KYC_NOT_APPROVED_POINTS
        if factors.pep_check:
            points += RiskScorer.PEP_POINTS
        return points


@dataclass
class TransactionRisk:
    """Risk contribution of a single proposed operation."""
    score: int
    factors: List[str] = field(default_factory=list)
    
    def add(self, points: int, factor: str) -> "TransactionRisk":
        """Return a copy with extra points and a factor, clamped to 0-100."""
        return replace(
            self,
            score=clamp_score(Decimal(self.score + points)),
            factors=self.factors + [factor],
        )


class TransactionRiskScorer:
    """Scores a proposed operation in the context of its account profile."""
    
    PROFILE_BASELINE = 50
    LARGE_AMOUNT_POINTS = 30
    VERY_LARGE_AMOUNT_POINTS = 20
    NEW_ACCOUNT_DAYS = 30
    NEW_ACCOUNT_POINTS = 25
    OFF_HOURS_POINTS = 15
    HIGH_RISK_COUNTRY_POINTS = 20
    NEW_DEVICE_POINTS = 15
    LOW_IP_REPUTATION = 30
    LOW_IP_REPUTATION_POINTS = 20
    RECENT_VIOLATION_DAYS = 7
    RECENT_VIOLATION_POINTS = 10
    
    def __init__(self, settings: RiskEngineSettings):
        self.settings = settings
        self._timezone = ZoneInfo(settings.decision.local_timezone)
    
    def score(
        self,
        profile: RiskProfile,
        operation: OperationType,
        amount: Decimal,
        context: Optional[OperationContext],
        now: datetime,
    ) -> TransactionRisk:
        context = context or OperationContext()
        points = 0
        factors: List[str] = []
        
        large_threshold = self.settings.large_transaction_thresholds[operation.value]
        if amount > large_threshold:
            points += self.LARGE_AMOUNT_POINTS
            factors.append("large_amount")
            if amount > large_threshold * 2:
                points += self.VERY_LARGE_AMOUNT_POINTS
                factors.append("very_large_amount")
        
        excess = profile.risk_score - self.PROFILE_BASELINE
        if excess > 0:
            points += excess
            factors.append("elevated_profile_risk")
        
        if profile.risk_factors.account_age < self.NEW_ACCOUNT_DAYS:
            points += self.NEW_ACCOUNT_POINTS
            factors.append("new_account")
        
        if self.is_off_hours(now) and amount > self.settings.decision.off_hours_min_amount:
            points += self.OFF_HOURS_POINTS
            factors.append("off_hours")
        
        if context.country and context.country in self.settings.geography.high_risk_countries:
            points += self.HIGH_RISK_COUNTRY_POINTS
            factors.append("high_risk_country")
        
        if context.new_device:
            points += self.NEW_DEVICE_POINTS
            factors.append("new_device")
        
        if context.ip_reputation is not None and context.ip_reputation < self.LOW_IP_REPUTATION:
            points += self.LOW_IP_REPUTATION_POINTS
            factors.append("low_ip_reputation")
        
        recent = profile.recent_unresolved_violations(now, self.RECENT_VIOLATION_DAYS)
        if recent:
            points += self.RECENT_VIOLATION_POINTS * len(recent)
            factors.append("recent_violations")
        
        return TransactionRisk(score=clamp_score(Decimal(points)), factors=factors)
    
    def is_off_hours(self, now: datetime) -> bool:
        """Hour before the start or after the end of the business window, local time."""
        hour = now.astimezone(self._timezone).hour
        decision = self.settings.decision
        return hour < decision.off_hours_before or hour > decision.off_hours_after


def account_age_days(created_at: datetime, now: datetime) -> int:
    """Whole days since account creation, never negative."""
    return max(0, (now - created_at) // timedelta(days=1))
