"""
Shared test fixtures for the risk decision engine test suite.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from risk_gate.domains.risk.application.services import RiskDecisionService
from risk_gate.domains.risk.domain.entities import RiskProfile
from risk_gate.domains.risk.domain.scorer import RiskScorer
from risk_gate.domains.risk.domain.value_objects import (
    CurrentUsage,
    KycStatus,
    RiskFactors,
    RiskLevel,
    RiskLimits,
    TradingExperience,
    VerificationLevel,
)
from risk_gate.domains.risk.infrastructure.memory import (
    InMemoryAlertStore,
    InMemoryHistoryProvider,
    InMemoryProfileStore,
)
from risk_gate.infrastructure.config.settings import RiskEngineSettings
from risk_gate.shared.kernel.clock import FixedClock

# Friday afternoon, inside business hours
NOW = datetime(2024, 3, 15, 14, 0, 0, tzinfo=timezone.utc)


def _trusted_factors(**overrides) -> RiskFactors:
    """Risk factors of an established, fully verified account (profile score 5)."""
    values = dict(
        account_age=400,
        trading_experience=TradingExperience.EXPERT,
        verification_level=VerificationLevel.ENHANCED,
        kyc_status=KycStatus.APPROVED,
        ip_reputation=100,
        device_trust=100,
        geographic_risk=0,
        aml_risk=0,
        win_rate=Decimal("60"),
    )
    values.update(overrides)
    return RiskFactors(**values)


@pytest.fixture
def now():
    """Reference time of every test."""
    return NOW


@pytest.fixture
def clock():
    """Manually driven clock starting at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def settings():
    """Default settings, isolated from any .env file."""
    return RiskEngineSettings(_env_file=None)


@pytest.fixture
def profile_factory():
    """Build assessed profiles; keyword arguments override RiskProfile fields."""
    def build(
        account_id: str = "acct-1",
        factors: RiskFactors = None,
        limits: RiskLimits = None,
        usage: CurrentUsage = None,
        **fields,
    ) -> RiskProfile:
        factors = factors or _trusted_factors()
        profile = RiskProfile(
            account_id=account_id,
            risk_level=RiskLevel.MEDIUM,
            risk_score=50,
            limits=limits or RiskLimits(),
            current_usage=usage or CurrentUsage(last_reset=NOW - timedelta(hours=2)),
            risk_factors=factors,
            created_at=NOW - timedelta(days=factors.account_age),
            updated_at=NOW,
            last_assessment=NOW,
        )
        profile = RiskScorer.assess(profile, NOW)
        return replace(profile, **fields) if fields else profile
    
    return build


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def history(clock):
    return InMemoryHistoryProvider(clock)


@pytest.fixture
def service(profile_store, alert_store, history, clock, settings):
    """Decision service wired to in-memory collaborators."""
    return RiskDecisionService(
        profile_store=profile_store,
        alert_store=alert_store,
        history=history,
        clock=clock,
        settings=settings,
    )


@pytest.fixture
def make_factors():
    """Trusted risk factors with keyword overrides."""
    return _trusted_factors
