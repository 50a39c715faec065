"""Risk decision orchestration."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import structlog

from ....infrastructure.common.exceptions import StoreUnavailableError
from ....infrastructure.config.settings import RiskEngineSettings, get_settings
from ....shared.exceptions.base import (
    CorruptProfileError,
    ProfileNotFoundError,
)
from ....shared.kernel.clock import Clock, SystemClock
from ..domain.compliance import ComplianceGate
from ..domain.entities import RiskProfile
from ..domain.limits import LimitEnforcer
from ..domain.patterns import PatternDetector
from ..domain.repositories import AlertStore, HistoryProvider, ProfileStore
from ..domain.scorer import TransactionRisk, TransactionRiskScorer
from ..domain.usage import UsageTracker
from ..domain.value_objects import (
    AlertType,
    AmlStatus,
    DecisionOutcome,
    OperationContext,
    OperationType,
    UsageOperation,
    VerificationLevel,
    to_amount,
)
from .alert_manager import AlertManager
from .profiles import AccountLocks, RiskProfileService

logger = structlog.get_logger()

VELOCITY_POINTS = 20
PATTERN_POINTS = 15

WARNING_VELOCITY = "High transaction velocity detected"
WARNING_PATTERN = "Unusual transaction pattern detected"
WARNING_AML_REVIEW = "AML screening requires manual review"
WARNING_APPROVAL = "Transaction requires manual approval"

VIOLATION_RESTRICTED = "account_restricted"
VIOLATION_NOT_FOUND = "risk_profile_not_found"
VIOLATION_STORE_UNAVAILABLE = "risk_store_unavailable"
VIOLATION_CORRUPT = "risk_profile_corrupt"
VIOLATION_HISTORY_UNAVAILABLE = "risk_history_unavailable"
VIOLATION_AML_FAILED = "aml_screening_failed"


@dataclass
class Decision:
    """Outcome of one operation check."""
    allowed: bool
    risk_score: int = 0
    warnings: List[str] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)
    requires_approval: bool = False
    limit_breaches: List[str] = field(default_factory=list)
    outcome: DecisionOutcome = DecisionOutcome.ALLOW
    kyc_required_level: Optional[VerificationLevel] = None
    aml_status: Optional[AmlStatus] = None
    risk_factors: List[str] = field(default_factory=list)
    alert_ids: List[str] = field(default_factory=list)
    
    @classmethod
    def blocked(cls, violation: str) -> "Decision":
        """Terminal rejection before any scoring took place."""
        return cls(allowed=False, violations=[violation], outcome=DecisionOutcome.BLOCK)
    
    def block(self, violation: str) -> None:
        self.allowed = False
        if violation not in self.violations:
            self.violations.append(violation)
    
    def finalize(self) -> "Decision":
        if not self.allowed:
            self.outcome = DecisionOutcome.BLOCK
        elif self.requires_approval:
            self.outcome = DecisionOutcome.ESCALATE
        elif self.warnings:
            self.outcome = DecisionOutcome.WARN
        else:
            self.outcome = DecisionOutcome.ALLOW
        return self
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "warnings": list(self.warnings),
            "violations": list(self.violations),
            "risk_score": self.risk_score,
            "requires_approval": self.requires_approval,
            "limit_breaches": list(self.limit_breaches),
            "outcome": self.outcome.value,
            "kyc_required_level": self.kyc_required_level.value if self.kyc_required_level else None,
            "aml_status": self.aml_status.value if self.aml_status else None,
            "risk_factors": list(self.risk_factors),
            "alert_ids": list(self.alert_ids),
        }


class RiskDecisionService:
    """
    Entry point of the risk engine.
    
    check_operation decides whether an operation may proceed and never
    writes the profile. After the caller completes the operation,
    record_completed_operation updates usage and reassesses the profile.
    """
    
    def __init__(
        self,
        profile_store: ProfileStore,
        alert_store: AlertStore,
        history: HistoryProvider,
        clock: Optional[Clock] = None,
        settings: Optional[RiskEngineSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.alerts = AlertManager(
            alert_store,
            self.clock,
            escalation_queue=self.settings.escalation_queue,
            dispatch_async=self.settings.dispatch_alerts_async,
        )
        self.profiles = RiskProfileService(
            profile_store, self.alerts, self.clock, self.settings, AccountLocks()
        )
        self.transaction_scorer = TransactionRiskScorer(self.settings)
        self.patterns = PatternDetector(history, self.settings)
        self.compliance = ComplianceGate(history, self.settings)
    
    async def check_operation(
        self,
        account_id: str,
        operation: Union[OperationType, str],
        amount: Union[Decimal, int, str],
        context: Union[OperationContext, Dict[str, Any], None] = None,
    ) -> Decision:
        """
        Decide whether an operation may proceed.
        
        Raises:
            InvalidAmountError: amount is not a finite positive number
        """
        operation = OperationType(operation)
        amount = to_amount(amount)
        if not isinstance(context, OperationContext):
            context = OperationContext.from_dict(context)
        
        profile = await self._load_for_decision(account_id, context)
        if isinstance(profile, Decision):
            return profile
        
        if profile.monitoring.is_restricted:
            logger.warning(
                "Operation rejected for restricted account",
                account_id=account_id,
                operation=operation.value,
                restriction_level=profile.monitoring.restriction_level.value,
            )
            return Decision.blocked(VIOLATION_RESTRICTED)
        
        now = self.clock.now()
        decision = Decision(allowed=True)
        
        usage = UsageTracker.reset_if_due(profile.current_usage, now)
        breaches = LimitEnforcer.check(operation, amount, profile.limits, usage)
        for breach in breaches:
            decision.limit_breaches.append(breach.value)
            decision.block(breach.value)
        
        risk = self.transaction_scorer.score(profile, operation, amount, context, now)
        risk = await self._check_history(decision, risk, account_id, operation, amount, now)
        await self._check_compliance(decision, profile, operation, amount, context, now)
        
        decision.risk_score = risk.score
        decision.risk_factors = list(risk.factors)
        
        large_threshold = self.settings.large_transaction_thresholds[operation.value]
        if risk.score > self.settings.decision.approval_score_above or amount > large_threshold:
            decision.requires_approval = True
            decision.warnings.append(WARNING_APPROVAL)
        
        if risk.score > self.settings.decision.alert_score_above:
            await self._alert(
                decision,
                account_id,
                AlertType.HIGH_RISK_TRANSACTION,
                {"operation": operation.value, "amount": str(amount), "factors": risk.factors},
                risk_score=risk.score,
                risk_factors=risk.factors,
            )
        
        decision.finalize()
        logger.info(
            "Risk decision",
            account_id=account_id,
            operation=operation.value,
            amount=str(amount),
            allowed=decision.allowed,
            outcome=decision.outcome.value,
            risk_score=decision.risk_score,
            violations=decision.violations,
        )
        return decision
    
    async def _load_for_decision(
        self,
        account_id: str,
        context: OperationContext,
    ) -> Union[RiskProfile, Decision]:
        """Load the profile or convert the failure into a blocking decision."""
        try:
            return await self.profiles.load(account_id)
        except ProfileNotFoundError:
            if self.settings.missing_profile_policy == "reject":
                logger.warning("Risk profile not found", account_id=account_id)
                return Decision.blocked(VIOLATION_NOT_FOUND)
        except CorruptProfileError as e:
            logger.error("Corrupt risk profile", account_id=account_id, reason=e.reason)
            return Decision.blocked(VIOLATION_CORRUPT)
        except StoreUnavailableError as e:
            logger.error("Risk profile store unavailable", account_id=account_id, **e.to_dict())
            return Decision.blocked(VIOLATION_STORE_UNAVAILABLE)
        except Exception as e:
            logger.exception("Risk profile load failed", account_id=account_id, error=str(e))
            return Decision.blocked(VIOLATION_STORE_UNAVAILABLE)
        
        try:
            return await self.profiles.initialize_profile(account_id, country=context.country)
        except Exception as e:
            logger.exception("Risk profile initialization failed", account_id=account_id, error=str(e))
            return Decision.blocked(VIOLATION_STORE_UNAVAILABLE)
    
    async def _check_history(
        self,
        decision: Decision,
        risk: TransactionRisk,
        account_id: str,
        operation: OperationType,
        amount: Decimal,
        now: datetime,
    ) -> TransactionRisk:
        try:
            velocity = await self.patterns.check_velocity(account_id, operation, now)
        except Exception as e:
            logger.error("Velocity check failed", account_id=account_id, error=str(e))
            decision.block(VIOLATION_HISTORY_UNAVAILABLE)
        else:
            if velocity.flagged:
                risk = risk.add(VELOCITY_POINTS, "high_velocity")
                decision.warnings.append(WARNING_VELOCITY)
                await self._alert(
                    decision, account_id, AlertType.UNUSUAL_ACTIVITY, velocity.to_details(operation)
                )
        
        try:
            pattern = await self.patterns.check_anomaly(account_id, operation, amount)
        except Exception as e:
            logger.error("Pattern check failed", account_id=account_id, error=str(e))
            decision.block(VIOLATION_HISTORY_UNAVAILABLE)
        else:
            if pattern.flagged:
                risk = risk.add(PATTERN_POINTS, "unusual_pattern")
                decision.warnings.append(WARNING_PATTERN)
                await self._alert(
                    decision,
                    account_id,
                    AlertType.UNUSUAL_ACTIVITY,
                    pattern.to_details(operation, amount),
                )
        
        return risk
    
    async def _check_compliance(
        self,
        decision: Decision,
        profile: RiskProfile,
        operation: OperationType,
        amount: Decimal,
        context: OperationContext,
        now: datetime,
    ) -> None:
        kyc = self.compliance.check_kyc(profile, amount)
        if kyc.required:
            decision.kyc_required_level = kyc.level
            decision.block(f"kyc_required_{kyc.level.value}")
        
        if not self.compliance.requires_screening(operation, amount):
            return
        
        aml = await self.compliance.screen_aml(profile, operation, amount, context, now)
        decision.aml_status = aml.status
        
        if aml.status == AmlStatus.FAILED:
            decision.block(VIOLATION_AML_FAILED)
        elif aml.status == AmlStatus.MANUAL_REVIEW:
            decision.requires_approval = True
            decision.warnings.append(WARNING_AML_REVIEW)
        
        if aml.raises_alert:
            await self._alert(
                decision,
                profile.account_id,
                AlertType.COMPLIANCE_ISSUE,
                {**aml.to_details(), "operation": operation.value, "amount": str(amount)},
            )
    
    async def _alert(
        self,
        decision: Decision,
        account_id: str,
        alert_type: AlertType,
        details: Dict[str, Any],
        risk_score: Optional[int] = None,
        risk_factors: Optional[List[str]] = None,
    ) -> None:
        alert_id = await self.alerts.dispatch(
            account_id,
            alert_type,
            details,
            risk_score=risk_score,
            risk_factors=risk_factors or (),
        )
        if alert_id:
            decision.alert_ids.append(alert_id)
    
    async def record_completed_operation(
        self,
        account_id: str,
        operation: Union[OperationType, str],
        amount: Union[Decimal, int, str],
    ) -> RiskProfile:
        """Apply a successfully completed operation to usage and reassess the profile."""
        operation = OperationType(operation)
        amount = to_amount(amount)
        
        def mutate(profile: RiskProfile, now: datetime) -> RiskProfile:
            usage = UsageTracker.record(
                profile.current_usage, UsageOperation.from_operation(operation), amount, now
            )
            factors = profile.risk_factors
            if operation == OperationType.TRADE:
                factors = replace(
                    factors,
                    trading_frequency=factors.trading_frequency + 1,
                    average_trade_size=(factors.average_trade_size + amount) / 2,
                )
            updated = replace(profile, current_usage=usage, risk_factors=factors)
            return self.profiles.refresh_after_operation(updated, now)
        
        return await self._record(account_id, operation.value, mutate)
    
    async def record_usage(
        self,
        account_id: str,
        operation: Union[UsageOperation, str],
        amount: Union[Decimal, int, str] = Decimal("0"),
    ) -> RiskProfile:
        """Apply a usage-only event (loss, position opened or closed) and reassess."""
        operation = UsageOperation(operation)
        amount = to_amount(amount, allow_zero=True)
        
        def mutate(profile: RiskProfile, now: datetime) -> RiskProfile:
            usage = UsageTracker.record(profile.current_usage, operation, amount, now)
            return self.profiles.refresh_after_operation(
                replace(profile, current_usage=usage), now
            )
        
        return await self._record(account_id, operation.value, mutate)
    
    async def record_loss(self, account_id: str, amount: Union[Decimal, int, str]) -> RiskProfile:
        return await self.record_usage(account_id, UsageOperation.LOSS, amount)
    
    async def _record(self, account_id: str, operation: str, mutate) -> RiskProfile:
        reset_seen = []
        
        def tracked(profile: RiskProfile, now: datetime) -> RiskProfile:
            if UsageTracker.is_reset_due(profile.current_usage, now):
                reset_seen.append(now)
            return mutate(profile, now)
        
        profile = await self.profiles.update(account_id, tracked)
        if reset_seen:
            logger.info("Daily usage counters reset", account_id=account_id)
        logger.info(
            "Usage recorded",
            account_id=account_id,
            operation=operation,
            risk_score=profile.risk_score,
            risk_level=profile.risk_level.value,
        )
        return profile
    
    async def aclose(self) -> None:
        """Wait for background alert dispatches to finish."""
        await self.alerts.aclose()
