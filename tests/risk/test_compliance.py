"""
Unit Tests for the Compliance Gate

Tests KYC thresholds and simulated AML screening, including the
degraded outcomes when screening cannot complete.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from risk_gate.domains.risk.domain.compliance import ComplianceGate
from risk_gate.domains.risk.domain.value_objects import (
    AmlStatus,
    KycStatus,
    OperationContext,
    OperationType,
    VerificationLevel,
)
from risk_gate.infrastructure.common.exceptions import StoreUnavailableError
from risk_gate.infrastructure.config.settings import AmlConfig, RiskEngineSettings


class TestKycRequirement:

    @pytest.fixture
    def gate(self, history, settings):
        return ComplianceGate(history, settings)

    def test_enhanced_required_at_enhanced_threshold(self, gate, profile_factory, make_factors):
        profile = profile_factory(factors=make_factors(verification_level=VerificationLevel.BASIC))

        requirement = gate.check_kyc(profile, Decimal("10000"))

        assert requirement.required is True
        assert requirement.level == VerificationLevel.ENHANCED

    def test_enhanced_profile_passes_large_amount(self, gate, profile_factory):
        assert gate.check_kyc(profile_factory(), Decimal("50000")).required is False

    def test_basic_required_when_kyc_not_approved(self, gate, profile_factory, make_factors):
        profile = profile_factory(factors=make_factors(kyc_status=KycStatus.PENDING))

        requirement = gate.check_kyc(profile, Decimal("2000"))

        assert requirement.required is True
        assert requirement.level == VerificationLevel.BASIC

    def test_below_basic_threshold(self, gate, profile_factory, make_factors):
        profile = profile_factory(
            factors=make_factors(kyc_status=KycStatus.PENDING, verification_level=VerificationLevel.NONE)
        )

        assert gate.check_kyc(profile, Decimal("1999.99")).required is False


class TestAmlScreening:

    @pytest.fixture
    def gate(self, history, settings):
        return ComplianceGate(history, settings)

    @pytest.mark.parametrize("operation,amount,expected", [
        (OperationType.DEPOSIT, "10000", False),
        (OperationType.DEPOSIT, "10000.01", True),
        (OperationType.WITHDRAWAL, "5000", False),
        (OperationType.WITHDRAWAL, "5001", True),
        (OperationType.TRADE, "900000", False),
    ])
    def test_requires_screening(self, gate, operation, amount, expected):
        assert gate.requires_screening(operation, Decimal(amount)) is expected

    @pytest.mark.asyncio
    async def test_clean_account_passes(self, gate, profile_factory, now):
        result = await gate.screen_aml(profile_factory(), OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.status == AmlStatus.PASSED
        assert result.score == 0
        assert result.raises_alert is False

    @pytest.mark.asyncio
    async def test_large_amount_and_pep_stays_at_review_bound(self, gate, profile_factory, make_factors, now):
        profile = profile_factory(factors=make_factors(pep_check=True))

        result = await gate.screen_aml(profile, OperationType.DEPOSIT, Decimal("60000"), None, now)

        assert result.score == 50
        assert result.status == AmlStatus.PASSED
        assert result.flags == ["large_amount", "politically_exposed_person"]

    @pytest.mark.asyncio
    async def test_frequency_and_pep_require_review(self, gate, history, profile_factory, make_factors, now):
        profile = profile_factory(factors=make_factors(pep_check=True))
        for hours in range(10):
            operation = OperationType.TRADE if hours % 2 else OperationType.WITHDRAWAL
            history.add("acct-1", operation, 100, now - timedelta(hours=hours, minutes=30))

        result = await gate.screen_aml(profile, OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.score == 55
        assert result.status == AmlStatus.MANUAL_REVIEW
        assert result.raises_alert is True

    @pytest.mark.asyncio
    async def test_transactions_outside_24h_do_not_count(self, gate, history, profile_factory, make_factors, now):
        profile = profile_factory(factors=make_factors(pep_check=True))
        for _ in range(10):
            history.add("acct-1", OperationType.DEPOSIT, 100, now - timedelta(hours=25))

        result = await gate.screen_aml(profile, OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.status == AmlStatus.PASSED

    @pytest.mark.asyncio
    async def test_sanctioned_account_fails(self, history, profile_factory, now):
        settings = RiskEngineSettings(_env_file=None, aml=AmlConfig(sanctioned_accounts=["acct-1"]))
        gate = ComplianceGate(history, settings)

        result = await gate.screen_aml(profile_factory(), OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.status == AmlStatus.FAILED
        assert result.score == 100
        assert result.flags == ["sanctions_match"]

    @pytest.mark.asyncio
    async def test_sanctioned_country_fails(self, history, profile_factory, now):
        settings = RiskEngineSettings(_env_file=None, aml=AmlConfig(sanctioned_countries=["ru"]))
        gate = ComplianceGate(history, settings)
        context = OperationContext(country="RU")

        result = await gate.screen_aml(profile_factory(), OperationType.WITHDRAWAL, Decimal("6000"), context, now)

        assert result.status == AmlStatus.FAILED

    @pytest.mark.asyncio
    async def test_lowercase_context_country_fails(self, history, profile_factory, now):
        settings = RiskEngineSettings(_env_file=None, aml=AmlConfig(sanctioned_countries=["KP"]))
        gate = ComplianceGate(history, settings)
        context = OperationContext(country="kp")

        result = await gate.screen_aml(profile_factory(), OperationType.DEPOSIT, Decimal("20000"), context, now)

        assert result.status == AmlStatus.FAILED
        assert result.score == 100
        assert result.flags == ["sanctions_match"]

    @pytest.mark.parametrize("score,status", [
        (50, AmlStatus.PASSED),
        (51, AmlStatus.MANUAL_REVIEW),
        (80, AmlStatus.MANUAL_REVIEW),
        (81, AmlStatus.FAILED),
    ])
    def test_classification(self, gate, score, status):
        assert gate.classify(score) == status

    @pytest.mark.asyncio
    async def test_timeout_degrades_to_manual_review(self, profile_factory, now):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return 0

        history = AsyncMock()
        history.count_recent = AsyncMock(side_effect=slow)
        settings = RiskEngineSettings(_env_file=None, aml=AmlConfig(timeout_seconds=0.01))
        gate = ComplianceGate(history, settings)

        result = await gate.screen_aml(profile_factory(), OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.status == AmlStatus.MANUAL_REVIEW
        assert result.score == 80
        assert result.flags == ["screening_timeout"]

    @pytest.mark.asyncio
    async def test_collaborator_failure_degrades_to_manual_review(self, settings, profile_factory, now):
        history = AsyncMock()
        history.count_recent = AsyncMock(side_effect=StoreUnavailableError("history down"))
        gate = ComplianceGate(history, settings)

        result = await gate.screen_aml(profile_factory(), OperationType.DEPOSIT, Decimal("15000"), None, now)

        assert result.status == AmlStatus.MANUAL_REVIEW
        assert result.score == 80
        assert result.flags == ["screening_unavailable"]
