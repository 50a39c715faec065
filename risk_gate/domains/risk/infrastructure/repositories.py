"""SQLAlchemy implementations of the profile and alert stores."""

from dataclasses import replace
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ....infrastructure.database.session import DatabaseSessionManager
from ....shared.exceptions.base import AlertNotFoundError, ConcurrencyError, ProfileNotFoundError
from ..domain.entities import Alert, RiskProfile
from ..domain.repositories import AlertStore, ProfileStore
from .models import RiskAlertModel, RiskProfileModel

logger = structlog.get_logger()


class SQLAlchemyProfileStore(ProfileStore):
    """Profile store guarded by a version column."""
    
    def __init__(self, sessions: DatabaseSessionManager):
        self.sessions = sessions
    
    async def get(self, account_id: str) -> RiskProfile:
        async with self.sessions.get_session() as session:
            model = await session.get(RiskProfileModel, account_id)
            if model is None:
                raise ProfileNotFoundError(account_id)
            data = dict(model.data)
            data["version"] = model.version
        return RiskProfile.from_dict(data)
    
    async def save(self, profile: RiskProfile, expected_version: int) -> RiskProfile:
        saved = replace(profile, version=expected_version + 1)
        values = self._columns(saved)
        
        async with self.sessions.get_session() as session:
            if expected_version == 0:
                session.add(RiskProfileModel(account_id=saved.account_id, **values))
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise ConcurrencyError(
                        f"Risk profile {saved.account_id} already exists",
                        expected_version=expected_version,
                    ) from e
            else:
                result = await session.execute(
                    update(RiskProfileModel)
                    .where(
                        RiskProfileModel.account_id == saved.account_id,
                        RiskProfileModel.version == expected_version,
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    actual = await session.scalar(
                        select(RiskProfileModel.version).where(
                            RiskProfileModel.account_id == saved.account_id
                        )
                    )
                    raise ConcurrencyError(
                        f"Risk profile {saved.account_id} was modified concurrently",
                        expected_version=expected_version,
                        actual_version=actual,
                    )
        
        logger.debug("Risk profile saved", account_id=saved.account_id, version=saved.version)
        return saved
    
    @staticmethod
    def _columns(profile: RiskProfile) -> Dict[str, Any]:
        return {
            "risk_level": profile.risk_level.value,
            "risk_score": profile.risk_score,
            "is_monitored": profile.monitoring.is_monitored,
            "is_restricted": profile.monitoring.is_restricted,
            "version": profile.version,
            "data": profile.to_dict(),
            "created_at": profile.created_at,
            "updated_at": profile.updated_at,
        }


class SQLAlchemyAlertStore(AlertStore):
    def __init__(self, sessions: DatabaseSessionManager):
        self.sessions = sessions
    
    async def create(self, alert: Alert) -> None:
        async with self.sessions.get_session() as session:
            session.add(RiskAlertModel(alert_id=alert.alert_id, **self._columns(alert)))
    
    async def update(self, alert: Alert) -> None:
        async with self.sessions.get_session() as session:
            result = await session.execute(
                update(RiskAlertModel)
                .where(RiskAlertModel.alert_id == alert.alert_id)
                .values(**self._columns(alert))
            )
            if result.rowcount != 1:
                raise AlertNotFoundError(alert.alert_id)
    
    async def get(self, alert_id: str) -> Optional[Alert]:
        async with self.sessions.get_session() as session:
            model = await session.get(RiskAlertModel, alert_id)
            data = dict(model.data) if model else None
        return Alert.from_dict(data) if data else None
    
    async def list_for_account(self, account_id: str) -> List[Alert]:
        async with self.sessions.get_session() as session:
            rows = await session.scalars(
                select(RiskAlertModel.data).where(RiskAlertModel.account_id == account_id)
            )
            payloads = list(rows)
        return [Alert.from_dict(data) for data in payloads]
    
    @staticmethod
    def _columns(alert: Alert) -> Dict[str, Any]:
        return {
            "account_id": alert.account_id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "status": alert.status.value,
            "risk_score": alert.risk_score,
            "escalated": alert.escalated,
            "data": alert.to_dict(),
            "created_at": alert.created_at,
            "updated_at": alert.updated_at,
        }
