"""
Persistence Tests

Profiles and alerts must survive a round trip through every store, and
version-guarded saves must reject stale writers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from risk_gate.domains.risk.application.services import RiskDecisionService
from risk_gate.domains.risk.domain.alerts import AlertPolicy
from risk_gate.domains.risk.domain.value_objects import (
    AlertStatus,
    AlertType,
    OperationType,
    ViolationSeverity,
    ViolationType,
)
from risk_gate.domains.risk.infrastructure.repositories import (
    SQLAlchemyAlertStore,
    SQLAlchemyProfileStore,
)
from risk_gate.infrastructure.common.exceptions import StoreUnavailableError
from risk_gate.infrastructure.config.settings import DatabaseConfig
from risk_gate.infrastructure.database.session import DatabaseSessionManager
from risk_gate.shared.exceptions.base import (
    AlertNotFoundError,
    ConcurrencyError,
    ProfileNotFoundError,
)


@pytest_asyncio.fixture
async def sessions(tmp_path):
    """Session manager over a throwaway SQLite database."""
    manager = DatabaseSessionManager(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path}/risk.db"))
    await manager.initialize(create_schema=True)
    yield manager
    await manager.close()


@pytest.fixture
def sql_profiles(sessions):
    return SQLAlchemyProfileStore(sessions)


@pytest.fixture
def sql_alerts(sessions):
    return SQLAlchemyAlertStore(sessions)


class TestInMemoryProfileStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, profile_store, profile_factory, now):
        profile = profile_factory().add_violation(
            ViolationType.LIMIT_BREACH, "Daily limit", ViolationSeverity.MEDIUM, now
        )

        saved = await profile_store.save(profile, expected_version=0)
        loaded = await profile_store.get("acct-1")

        assert saved.version == 1
        assert loaded == saved

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, profile_store, profile_factory):
        saved = await profile_store.save(profile_factory(), expected_version=0)
        await profile_store.save(saved, expected_version=1)

        with pytest.raises(ConcurrencyError) as exc_info:
            await profile_store.save(saved, expected_version=1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2

    @pytest.mark.asyncio
    async def test_create_over_existing_rejected(self, profile_store, profile_factory):
        await profile_store.save(profile_factory(), expected_version=0)

        with pytest.raises(ConcurrencyError):
            await profile_store.save(profile_factory(), expected_version=0)

    @pytest.mark.asyncio
    async def test_stored_snapshot_is_isolated(self, profile_store, profile_factory):
        await profile_store.save(profile_factory(), expected_version=0)

        first = await profile_store.get("acct-1")
        second = await profile_store.get("acct-1")

        assert first == second
        assert first is not second


class TestSQLAlchemyProfileStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, sql_profiles, profile_factory, now):
        profile = profile_factory().add_violation(
            ViolationType.SUSPICIOUS_ACTIVITY, "Chargeback", ViolationSeverity.HIGH, now
        )

        saved = await sql_profiles.save(profile, expected_version=0)
        loaded = await sql_profiles.get("acct-1")

        assert loaded == saved
        assert loaded.version == 1
        assert loaded.violations[0].type == ViolationType.SUSPICIOUS_ACTIVITY

    @pytest.mark.asyncio
    async def test_missing_profile(self, sql_profiles):
        with pytest.raises(ProfileNotFoundError):
            await sql_profiles.get("ghost")

    @pytest.mark.asyncio
    async def test_versioned_update(self, sql_profiles, profile_factory, now):
        saved = await sql_profiles.save(profile_factory(), expected_version=0)
        restricted = saved.lift_restriction(now + timedelta(minutes=1))

        updated = await sql_profiles.save(restricted, expected_version=1)

        assert updated.version == 2
        assert (await sql_profiles.get("acct-1")).version == 2

    @pytest.mark.asyncio
    async def test_stale_update_rejected(self, sql_profiles, profile_factory):
        saved = await sql_profiles.save(profile_factory(), expected_version=0)
        await sql_profiles.save(saved, expected_version=1)

        with pytest.raises(ConcurrencyError) as exc_info:
            await sql_profiles.save(saved, expected_version=1)

        assert exc_info.value.actual_version == 2

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self, sql_profiles, profile_factory):
        await sql_profiles.save(profile_factory(), expected_version=0)

        with pytest.raises(ConcurrencyError):
            await sql_profiles.save(profile_factory(), expected_version=0)

        assert (await sql_profiles.get("acct-1")).version == 1


class TestSQLAlchemyAlertStore:

    @pytest.mark.asyncio
    async def test_create_get_update(self, sql_alerts, now):
        alert = AlertPolicy.build(
            "acct-1",
            AlertType.UNUSUAL_ACTIVITY,
            {"type": "high_velocity", "count": 10},
            now,
        )

        await sql_alerts.create(alert)
        assert await sql_alerts.get(alert.alert_id) == alert

        resolved = alert.resolve("analyst-7", "Payroll run", ["verified employer"], now)
        await sql_alerts.update(resolved)

        loaded = await sql_alerts.get(alert.alert_id)
        assert loaded.status == AlertStatus.RESOLVED
        assert loaded.actions_taken == ("verified employer",)

    @pytest.mark.asyncio
    async def test_unknown_alert(self, sql_alerts, now):
        alert = AlertPolicy.build("acct-1", AlertType.LIMIT_BREACH, {"limit_type": "daily"}, now)

        assert await sql_alerts.get(alert.alert_id) is None
        with pytest.raises(AlertNotFoundError):
            await sql_alerts.update(alert)

    @pytest.mark.asyncio
    async def test_list_for_account(self, sql_alerts, now):
        for account_id in ("acct-1", "acct-1", "acct-2"):
            await sql_alerts.create(
                AlertPolicy.build(account_id, AlertType.MARKET_RISK, {}, now)
            )

        assert len(await sql_alerts.list_for_account("acct-1")) == 2
        assert await sql_alerts.list_for_account("acct-3") == []


class TestSessionManager:

    @pytest.mark.asyncio
    async def test_uninitialized_manager_is_unavailable(self):
        manager = DatabaseSessionManager(DatabaseConfig())
        store = SQLAlchemyProfileStore(manager)

        with pytest.raises(StoreUnavailableError):
            await store.get("acct-1")

    @pytest.mark.asyncio
    async def test_unavailable_store_blocks_decision(self, alert_store, history, clock, settings):
        manager = DatabaseSessionManager(DatabaseConfig())
        service = RiskDecisionService(SQLAlchemyProfileStore(manager), alert_store, history, clock, settings)

        decision = await service.check_operation("acct-1", OperationType.DEPOSIT, Decimal("100"))

        assert decision.allowed is False
        assert decision.violations == ["risk_store_unavailable"]


class TestDecisionServiceOnSQLStores:

    @pytest.mark.asyncio
    async def test_check_and_record(self, sql_profiles, sql_alerts, history, clock, settings, profile_factory, make_factors):
        await sql_profiles.save(profile_factory(factors=make_factors(account_age=10)), expected_version=0)
        service = RiskDecisionService(sql_profiles, sql_alerts, history, clock, settings)

        decision = await service.check_operation(
            "acct-1", OperationType.DEPOSIT, Decimal("1000"),
            {"country": "IR", "newDevice": True, "ipReputation": 10},
        )
        profile = await service.record_completed_operation("acct-1", OperationType.DEPOSIT, Decimal("1000"))

        assert decision.allowed is True
        assert len(decision.alert_ids) == 1
        assert (await sql_alerts.get(decision.alert_ids[0])).type == AlertType.HIGH_RISK_TRANSACTION
        assert profile.version == 2
        assert (await sql_profiles.get("acct-1")).current_usage.daily_deposits == Decimal("1000")
