"""Risk profile lifecycle, maintenance operations and read models."""

import asyncio
import weakref
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from ....infrastructure.config.settings import RiskEngineSettings
from ....shared.exceptions.base import (
    ConcurrencyError,
    ProfileNotFoundError,
    ValidationError,
)
from ....shared.kernel.clock import Clock
from ..domain.entities import Alert, RiskProfile
from ..domain.repositories import ProfileStore
from ..domain.scorer import RiskScorer, account_age_days
from ..domain.usage import UsageTracker
from ..domain.value_objects import (
    AlertType,
    CurrentUsage,
    KycStatus,
    RestrictionLevel,
    RiskFactors,
    RiskLevel,
    RiskLimits,
    TradingExperience,
    VerificationLevel,
    ViolationSeverity,
    ViolationType,
    to_amount,
    to_decimal,
)
from .alert_manager import AlertManager

logger = structlog.get_logger()

ProfileMutation = Callable[[RiskProfile, datetime], RiskProfile]

# Limits an account holder may ask to have raised
LIMIT_INCREASE_TYPES = (
    "daily_trading_limit",
    "daily_withdrawal_limit",
    "daily_deposit_limit",
    "max_single_trade_size",
    "max_open_positions",
)

EXPERT_INCOME_THRESHOLD = Decimal("100000")
EXPERT_DAILY_TRADING_CAP = Decimal("200000")
EXPERT_SINGLE_TRADE_CAP = Decimal("100000")
REVIEW_INTERVAL = timedelta(days=30)
RECENT_VIOLATION_WINDOW = timedelta(days=30)


class AccountLocks:
    """Per-account mutexes serializing profile read-modify-write in one process."""
    
    def __init__(self):
        # Entries vanish once no coroutine holds or awaits the lock.
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
    
    def __len__(self) -> int:
        return len(self._locks)
    
    def for_account(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock


class RiskProfileService:
    """Owns every write to a risk profile."""
    
    def __init__(
        self,
        store: ProfileStore,
        alerts: AlertManager,
        clock: Clock,
        settings: RiskEngineSettings,
        locks: Optional[AccountLocks] = None,
    ):
        self.store = store
        self.alerts = alerts
        self.clock = clock
        self.settings = settings
        self.locks = locks or AccountLocks()
    
    def limits_for_tier(self, verification_level: VerificationLevel) -> RiskLimits:
        """Base limits with the verification tier's ceilings applied."""
        values = self.settings.base_limits.model_dump()
        values.update(self.settings.verification_limits[verification_level.value].model_dump())
        return RiskLimits(**values)
    
    def geographic_risk(self, country: Optional[str]) -> int:
        geography = self.settings.geography
        code = (country or "").upper()
        if code in geography.high_risk_countries:
            return geography.high_risk_score
        if code in geography.medium_risk_countries:
            return geography.medium_risk_score
        return geography.default_risk_score
    
    def new_profile(
        self,
        account_id: str,
        now: datetime,
        trading_experience: TradingExperience = TradingExperience.BEGINNER,
        verification_level: VerificationLevel = VerificationLevel.NONE,
        kyc_status: KycStatus = KycStatus.PENDING,
        country: Optional[str] = None,
    ) -> RiskProfile:
        """Build an unsaved, assessed profile with conservative defaults."""
        factors = RiskFactors(
            trading_experience=trading_experience,
            verification_level=verification_level,
            kyc_status=kyc_status,
            geographic_risk=self.geographic_risk(country),
        )
        profile = RiskProfile(
            account_id=account_id,
            risk_level=RiskLevel.MEDIUM,
            risk_score=50,
            limits=self.limits_for_tier(verification_level),
            current_usage=CurrentUsage(last_reset=now),
            risk_factors=factors,
            created_at=now,
            updated_at=now,
            last_assessment=now,
            next_review=now + REVIEW_INTERVAL,
        )
        return RiskScorer.assess(profile, now)
    
    async def load(self, account_id: str) -> RiskProfile:
        """
        Load and validate a stored profile.
        
        Raises:
            ProfileNotFoundError: no profile stored
            CorruptProfileError: stored level disagrees with its score
        """
        profile = await self.store.get(account_id)
        profile.validate()
        return profile
    
    async def initialize_profile(
        self,
        account_id: str,
        trading_experience: TradingExperience = TradingExperience.BEGINNER,
        verification_level: VerificationLevel = VerificationLevel.NONE,
        kyc_status: KycStatus = KycStatus.PENDING,
        country: Optional[str] = None,
    ) -> RiskProfile:
        """Create the profile of an account; an existing profile is returned unchanged."""
        async with self.locks.for_account(account_id):
            for attempt in range(self.settings.profile_save_retries + 1):
                try:
                    return await self.load(account_id)
                except ProfileNotFoundError:
                    pass
                
                profile = self.new_profile(
                    account_id,
                    self.clock.now(),
                    trading_experience=trading_experience,
                    verification_level=verification_level,
                    kyc_status=kyc_status,
                    country=country,
                )
                try:
                    saved = await self.store.save(profile, expected_version=0)
                except ConcurrencyError:
                    logger.warning("Concurrent profile creation", account_id=account_id, attempt=attempt)
                    continue
                
                logger.info(
                    "Risk profile initialized",
                    account_id=account_id,
                    risk_score=saved.risk_score,
                    risk_level=saved.risk_level.value,
                )
                return saved
        
        return await self.load(account_id)
    
    async def update(self, account_id: str, mutate: ProfileMutation) -> RiskProfile:
        """
        Apply a mutation to the stored profile and persist it.
        
        The whole read-modify-write is retried on version conflicts.
        """
        async with self.locks.for_account(account_id):
            retries = self.settings.profile_save_retries
            for attempt in range(retries + 1):
                profile = await self.load(account_id)
                updated = mutate(profile, self.clock.now())
                try:
                    return await self.store.save(updated, expected_version=profile.version)
                except ConcurrencyError as e:
                    if attempt == retries:
                        logger.error(
                            "Profile update failed after retries",
                            account_id=account_id,
                            attempts=attempt + 1,
                        )
                        raise
                    logger.warning(
                        "Profile version conflict, retrying",
                        account_id=account_id,
                        attempt=attempt + 1,
                        expected_version=e.expected_version,
                        actual_version=e.actual_version,
                    )
    
    async def reassess(self, account_id: str) -> RiskProfile:
        return await self.update(account_id, RiskScorer.assess)
    
    async def add_violation(
        self,
        account_id: str,
        violation_type: ViolationType,
        description: str,
        severity: ViolationSeverity,
    ) -> RiskProfile:
        violation_type = ViolationType(violation_type)
        severity = ViolationSeverity(severity)
        
        profile = await self.update(
            account_id,
            lambda p, now: p.add_violation(violation_type, description, severity, now),
        )
        logger.warning(
            "Violation recorded",
            account_id=account_id,
            violation_type=violation_type.value,
            severity=severity.value,
            unresolved=len(profile.unresolved_violations),
            is_monitored=profile.monitoring.is_monitored,
        )
        return profile
    
    async def resolve_violation(
        self,
        account_id: str,
        violation_id: str,
        resolved_by: str,
        actions: Iterable[str] = (),
    ) -> RiskProfile:
        actions = tuple(actions)
        profile = await self.update(
            account_id,
            lambda p, now: p.resolve_violation(violation_id, resolved_by, actions, now),
        )
        logger.info("Violation resolved", account_id=account_id, violation_id=violation_id)
        return profile
    
    async def restrict_account(
        self,
        account_id: str,
        reason: str,
        level: RestrictionLevel,
    ) -> RiskProfile:
        level = RestrictionLevel(level)
        profile = await self.update(account_id, lambda p, now: p.restrict(reason, level, now))
        logger.warning(
            "Account restricted",
            account_id=account_id,
            restriction_level=level.value,
            reason=reason,
        )
        return profile
    
    async def lift_restriction(self, account_id: str) -> RiskProfile:
        profile = await self.update(account_id, lambda p, now: p.lift_restriction(now))
        logger.info("Account restriction lifted", account_id=account_id)
        return profile
    
    async def update_trading_experience(
        self,
        account_id: str,
        trading_experience: TradingExperience,
        annual_income: Optional[Decimal] = None,
    ) -> RiskProfile:
        """
        Change the declared experience and reassess.
        
        Experts earning over 100,000 a year get doubled trading limits,
        capped at 200,000 daily and 100,000 per trade.
        """
        trading_experience = TradingExperience(trading_experience)
        income = to_decimal(annual_income) if annual_income is not None else None
        
        def mutate(profile: RiskProfile, now: datetime) -> RiskProfile:
            factors = replace(profile.risk_factors, trading_experience=trading_experience)
            limits = profile.limits
            if trading_experience == TradingExperience.EXPERT and income is not None and income > EXPERT_INCOME_THRESHOLD:
                limits = replace(
                    limits,
                    daily_trading_limit=min(limits.daily_trading_limit * 2, EXPERT_DAILY_TRADING_CAP),
                    max_single_trade_size=min(limits.max_single_trade_size * 2, EXPERT_SINGLE_TRADE_CAP),
                )
            return RiskScorer.assess(replace(profile, risk_factors=factors, limits=limits), now)
        
        profile = await self.update(account_id, mutate)
        logger.info(
            "Trading experience updated",
            account_id=account_id,
            trading_experience=trading_experience.value,
            risk_score=profile.risk_score,
        )
        return profile
    
    async def submit_kyc(
        self,
        account_id: str,
        document_type: str,
        issuing_country: str,
    ) -> RiskProfile:
        """Record a KYC submission awaiting review and notify reviewers."""
        def mutate(profile: RiskProfile, now: datetime) -> RiskProfile:
            factors = replace(
                profile.risk_factors,
                kyc_status=KycStatus.PENDING,
                verification_level=VerificationLevel.BASIC,
            )
            return RiskScorer.assess(replace(profile, risk_factors=factors), now)
        
        profile = await self.update(account_id, mutate)
        await self.alerts.create_alert(
            account_id,
            AlertType.KYC_SUBMISSION,
            {"document_type": document_type, "issuing_country": issuing_country.upper()},
        )
        logger.info("KYC submitted", account_id=account_id, document_type=document_type)
        return profile
    
    async def request_limit_increase(
        self,
        account_id: str,
        limit_type: str,
        requested_amount: Decimal,
        justification: str,
    ) -> Alert:
        if limit_type not in LIMIT_INCREASE_TYPES:
            raise ValidationError(
                f"Unknown limit type {limit_type!r}; expected one of {', '.join(LIMIT_INCREASE_TYPES)}"
            )
        requested_amount = to_amount(requested_amount)
        
        profile = await self.load(account_id)
        current = getattr(profile.limits, limit_type)
        
        return await self.alerts.create_alert(
            account_id,
            AlertType.LIMIT_INCREASE_REQUEST,
            {
                "limit_type": limit_type,
                "current_limit": str(current),
                "requested_amount": str(requested_amount),
                "justification": justification,
            },
        )
    
    async def limits_summary(self, account_id: str) -> Dict[str, Any]:
        """Limits, current usage, remaining headroom and utilization percentages."""
        profile = await self.load(account_id)
        usage = UsageTracker.reset_if_due(profile.current_usage, self.clock.now())
        limits = profile.limits
        
        pairs = {
            "daily_trading": (limits.daily_trading_limit, usage.daily_trading),
            "daily_withdrawal": (limits.daily_withdrawal_limit, usage.daily_withdrawals),
            "daily_deposit": (limits.daily_deposit_limit, usage.daily_deposits),
            "daily_loss": (limits.max_daily_loss, usage.daily_loss),
            "weekly_loss": (limits.max_weekly_loss, usage.weekly_loss),
            "monthly_loss": (limits.max_monthly_loss, usage.monthly_loss),
            "open_positions": (Decimal(limits.max_open_positions), Decimal(usage.open_positions)),
        }
        
        return {
            "account_id": account_id,
            "limits": limits.to_dict(),
            "usage": usage.to_dict(),
            "remaining": {
                name: str(max(Decimal("0"), limit - used)) for name, (limit, used) in pairs.items()
            },
            "utilization": {
                name: str(_utilization(limit, used)) for name, (limit, used) in pairs.items()
            },
        }
    
    async def compliance_status(self, account_id: str) -> Dict[str, Any]:
        profile = await self.load(account_id)
        now = self.clock.now()
        factors = profile.risk_factors
        recent_cutoff = now - RECENT_VIOLATION_WINDOW
        
        return {
            "account_id": account_id,
            "kyc": {
                "status": factors.kyc_status.value,
                "verification_level": factors.verification_level.value,
                "required": factors.kyc_status != KycStatus.APPROVED,
                "next_step": _kyc_next_step(factors),
            },
            "aml": {
                "risk_score": factors.aml_risk,
                "risk_level": _aml_bucket(factors.aml_risk),
                "pep": factors.pep_check,
                "sanctions_checked": factors.sanctions_check,
            },
            "monitoring": profile.monitoring.to_dict(),
            "violations": {
                "total": len(profile.violations),
                "open": len(profile.unresolved_violations),
                "recent": len([v for v in profile.violations if v.occurred_at > recent_cutoff]),
            },
        }
    
    async def assessment_summary(self, account_id: str) -> Dict[str, Any]:
        profile = await self.load(account_id)
        result = RiskScorer.compute_score(profile.risk_factors, profile.last_assessment)
        
        return {
            "account_id": account_id,
            "risk_score": profile.risk_score,
            "risk_level": profile.risk_level.value,
            "breakdown": {k: str(v) for k, v in result.breakdown.items()},
            "recommendations": _recommendations(profile),
            "can_trade_freely": (
                profile.risk_level != RiskLevel.VERY_HIGH and not profile.monitoring.is_restricted
            ),
            "last_assessment": profile.last_assessment.isoformat(),
            "next_review": profile.next_review.isoformat() if profile.next_review else None,
        }
    
    def refresh_after_operation(self, profile: RiskProfile, now: datetime) -> RiskProfile:
        """Recompute account age from creation time and reassess."""
        factors = replace(
            profile.risk_factors,
            account_age=account_age_days(profile.created_at, now),
        )
        return RiskScorer.assess(replace(profile, risk_factors=factors), now)


def _utilization(limit: Decimal, used: Decimal) -> Decimal:
    if limit <= 0:
        return Decimal("0")
    return (used / limit * 100).quantize(Decimal("0.01"))


def _aml_bucket(score: int) -> str:
    if score < 30:
        return "low"
    if score < 70:
        return "medium"
    return "high"


def _kyc_next_step(factors: RiskFactors) -> Optional[str]:
    if factors.kyc_status == KycStatus.APPROVED:
        return None
    if factors.kyc_status == KycStatus.PENDING:
        if factors.verification_level == VerificationLevel.NONE:
            return "submit_documents"
        return "await_review"
    return "resubmit_documents"


def _recommendations(profile: RiskProfile) -> List[str]:
    factors = profile.risk_factors
    recommendations = []
    
    if factors.kyc_status != KycStatus.APPROVED:
        recommendations.append("Complete KYC verification to unlock higher limits")
    if factors.verification_level in (VerificationLevel.NONE, VerificationLevel.BASIC):
        recommendations.append("Upgrade to enhanced verification for larger transactions")
    if factors.device_trust < 50:
        recommendations.append("Use a recognized device for account access")
    if factors.win_rate < RiskScorer.LOW_WIN_RATE:
        recommendations.append("Review trading strategy, win rate is below 30%")
    if factors.trading_frequency > RiskScorer.HIGH_FREQUENCY:
        recommendations.append("Reduce trading frequency")
    if profile.unresolved_violations:
        recommendations.append("Resolve open violations")
    
    return recommendations
