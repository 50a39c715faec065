"""In-process collaborators storing serialized snapshots."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ....shared.exceptions.base import AlertNotFoundError, ConcurrencyError, ProfileNotFoundError
from ....shared.kernel.clock import Clock
from ..domain.entities import Alert, RiskProfile
from ..domain.repositories import AlertStore, HistoryProvider, ProfileStore
from ..domain.value_objects import OperationType, to_decimal

COUNTED_STATUSES = ("completed", "processing")


class InMemoryProfileStore(ProfileStore):
    """Version-guarded profile store keeping profiles as dictionaries."""
    
    def __init__(self):
        self._profiles: Dict[str, Dict[str, Any]] = {}
    
    async def get(self, account_id: str) -> RiskProfile:
        data = self._profiles.get(account_id)
        if data is None:
            raise ProfileNotFoundError(account_id)
        return RiskProfile.from_dict(data)
    
    async def save(self, profile: RiskProfile, expected_version: int) -> RiskProfile:
        stored = self._profiles.get(profile.account_id)
        actual_version = stored["version"] if stored else 0
        if actual_version != expected_version:
            raise ConcurrencyError(
                f"Risk profile {profile.account_id} was modified concurrently",
                expected_version=expected_version,
                actual_version=actual_version,
            )
        
        saved = replace(profile, version=expected_version + 1)
        self._profiles[profile.account_id] = saved.to_dict()
        return saved
    
    def __len__(self) -> int:
        return len(self._profiles)


class InMemoryAlertStore(AlertStore):
    def __init__(self):
        self._alerts: Dict[str, Dict[str, Any]] = {}
    
    async def create(self, alert: Alert) -> None:
        self._alerts[alert.alert_id] = alert.to_dict()
    
    async def update(self, alert: Alert) -> None:
        if alert.alert_id not in self._alerts:
            raise AlertNotFoundError(alert.alert_id)
        self._alerts[alert.alert_id] = alert.to_dict()
    
    async def get(self, alert_id: str) -> Optional[Alert]:
        data = self._alerts.get(alert_id)
        return Alert.from_dict(data) if data else None
    
    async def list_for_account(self, account_id: str) -> List[Alert]:
        return [
            Alert.from_dict(data)
            for data in self._alerts.values()
            if data["account_id"] == account_id
        ]


@dataclass(frozen=True)
class TransactionRecord:
    """One past transaction as seen by the risk engine."""
    account_id: str
    operation: OperationType
    amount: Decimal
    created_at: datetime
    status: str = "completed"


class InMemoryHistoryProvider(HistoryProvider):
    """Transaction history held in a list, windowed against the injected clock."""
    
    def __init__(self, clock: Clock):
        self.clock = clock
        self._records: List[TransactionRecord] = []
    
    def add(
        self,
        account_id: str,
        operation: OperationType,
        amount: Any,
        created_at: Optional[datetime] = None,
        status: str = "completed",
    ) -> TransactionRecord:
        record = TransactionRecord(
            account_id=account_id,
            operation=OperationType(operation),
            amount=to_decimal(amount),
            created_at=created_at or self.clock.now(),
            status=status,
        )
        self._records.append(record)
        return record
    
    async def count_recent(
        self,
        account_id: str,
        operation: Optional[OperationType],
        since: datetime,
    ) -> int:
        return sum(
            1
            for record in self._records
            if record.account_id == account_id
            and (operation is None or record.operation == operation)
            and record.status in COUNTED_STATUSES
            and record.created_at >= since
        )
    
    async def recent_amounts(
        self,
        account_id: str,
        operation: OperationType,
        since_days: int,
    ) -> List[Decimal]:
        since = self.clock.now() - timedelta(days=since_days)
        return [
            record.amount
            for record in self._records
            if record.account_id == account_id
            and record.operation == operation
            and record.status == "completed"
            and record.created_at >= since
        ]
