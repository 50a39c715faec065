"""KYC threshold checks and simulated AML screening."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

from ....infrastructure.common.exceptions import ComplianceCheckTimeoutError
from ....infrastructure.config.settings import RiskEngineSettings
from .entities import RiskProfile
from .repositories import HistoryProvider
from .value_objects import (
    AmlStatus,
    KycStatus,
    OperationContext,
    OperationType,
    VerificationLevel,
)

logger = structlog.get_logger()


@dataclass
class KycRequirement:
    required: bool
    level: Optional[VerificationLevel] = None
    reason: Optional[str] = None


@dataclass
class AmlResult:
    """Result of one AML screening."""
    status: AmlStatus
    score: int
    flags: List[str] = field(default_factory=list)
    
    @property
    def raises_alert(self) -> bool:
        return self.status in (AmlStatus.FAILED, AmlStatus.MANUAL_REVIEW)
    
    def to_details(self) -> Dict[str, Any]:
        return {
            "type": "aml_screening",
            "status": self.status.value,
            "score": self.score,
            "flags": list(self.flags),
        }


class ComplianceGate:
    """
    Identity and anti-money-laundering gate.
    
    Screening never fails open: a timeout or a collaborator failure
    yields manual review with the configured error score.
    """
    
    def __init__(self, history: HistoryProvider, settings: RiskEngineSettings):
        self.history = history
        self.settings = settings
    
    def check_kyc(self, profile: RiskProfile, amount: Decimal) -> KycRequirement:
        kyc = self.settings.kyc
        factors = profile.risk_factors
        
        if amount >= kyc.enhanced_threshold and factors.verification_level != VerificationLevel.ENHANCED:
            return KycRequirement(
                required=True,
                level=VerificationLevel.ENHANCED,
                reason=f"Amounts of {kyc.enhanced_threshold} or more require enhanced verification",
            )
        
        if amount >= kyc.basic_threshold and factors.kyc_status != KycStatus.APPROVED:
            return KycRequirement(
                required=True,
                level=VerificationLevel.BASIC,
                reason=f"Amounts of {kyc.basic_threshold} or more require approved KYC",
            )
        
        return KycRequirement(required=False)
    
    def requires_screening(self, operation: OperationType, amount: Decimal) -> bool:
        threshold = self.settings.aml.screening_thresholds.get(operation.value)
        return threshold is not None and amount > threshold
    
    async def screen_aml(
        self,
        profile: RiskProfile,
        operation: OperationType,
        amount: Decimal,
        context: Optional[OperationContext],
        now: datetime,
    ) -> AmlResult:
        timeout = self.settings.aml.timeout_seconds
        try:
            return await asyncio.wait_for(
                self._screen(profile, amount, context or OperationContext(), now),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = ComplianceCheckTimeoutError(
                "AML screening timed out",
                check="aml",
                timeout_seconds=timeout,
                context={"account_id": profile.account_id, "operation": operation.value},
            )
            logger.error("AML screening timed out", **error.to_dict())
            return self._degraded("screening_timeout")
        except Exception as e:
            logger.exception(
                "AML screening failed",
                account_id=profile.account_id,
                operation=operation.value,
                error=str(e),
            )
            return self._degraded("screening_unavailable")
    
    async def _screen(
        self,
        profile: RiskProfile,
        amount: Decimal,
        context: OperationContext,
        now: datetime,
    ) -> AmlResult:
        aml = self.settings.aml
        
        if self._sanctions_match(profile.account_id, context):
            return AmlResult(
                status=AmlStatus.FAILED,
                score=min(100, aml.sanctions_weight),
                flags=["sanctions_match"],
            )
        
        score = 0
        flags = []
        
        if amount > aml.large_amount_threshold:
            score += aml.large_amount_weight
            flags.append("large_amount")
        
        since = now - timedelta(hours=aml.frequency_window_hours)
        recent = await self.history.count_recent(profile.account_id, None, since)
        if recent >= aml.frequency_count:
            score += aml.frequency_weight
            flags.append("high_frequency")
        
        if profile.risk_factors.pep_check:
            score += aml.pep_weight
            flags.append("politically_exposed_person")
        
        score = min(100, score)
        return AmlResult(status=self.classify(score), score=score, flags=flags)
    
    def classify(self, score: int) -> AmlStatus:
        aml = self.settings.aml
        if score > aml.fail_above:
            return AmlStatus.FAILED
        if score > aml.review_above:
            return AmlStatus.MANUAL_REVIEW
        return AmlStatus.PASSED
    
    def _sanctions_match(self, account_id: str, context: OperationContext) -> bool:
        aml = self.settings.aml
        if account_id in aml.sanctioned_accounts:
            return True
        return bool(context.country) and context.country in aml.sanctioned_countries
    
    def _degraded(self, flag: str) -> AmlResult:
        return AmlResult(
            status=AmlStatus.MANUAL_REVIEW,
            score=self.settings.aml.error_score,
            flags=[flag],
        )
