"""Collaborator interfaces consumed by the risk engine."""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .entities import Alert, RiskProfile
from .value_objects import OperationType


class ProfileStore(ABC):
    """Persistent per-account risk profiles."""
    
    @abstractmethod
    async def get(self, account_id: str) -> RiskProfile:
        """
        Load the profile of an account.
        
        Raises:
            ProfileNotFoundError: the account has no profile
            StoreUnavailableError: the store could not be reached
        """
        pass
    
    @abstractmethod
    async def save(self, profile: RiskProfile, expected_version: int) -> RiskProfile:
        """
        Persist a profile snapshot if the stored version still matches.
        
        A version of 0 means the profile must not exist yet. The returned
        snapshot carries the incremented version.
        
        Raises:
            ConcurrencyError: the stored version differs from expected_version
            StoreUnavailableError: the store could not be reached
        """
        pass


class AlertStore(ABC):
    """Append-only alert records with a mutable lifecycle."""
    
    @abstractmethod
    async def create(self, alert: Alert) -> None:
        pass
    
    @abstractmethod
    async def update(self, alert: Alert) -> None:
        pass
    
    @abstractmethod
    async def get(self, alert_id: str) -> Optional[Alert]:
        pass
    
    @abstractmethod
    async def list_for_account(self, account_id: str) -> List[Alert]:
        """All alerts of an account, in no particular order."""
        pass


class HistoryProvider(ABC):
    """Read-only view of an account's past transactions."""
    
    @abstractmethod
    async def count_recent(
        self,
        account_id: str,
        operation: Optional[OperationType],
        since: datetime,
    ) -> int:
        """
        Count completed or processing transactions created after ``since``.
        
        ``operation=None`` counts every operation type.
        """
        pass
    
    @abstractmethod
    async def recent_amounts(
        self,
        account_id: str,
        operation: OperationType,
        since_days: int,
    ) -> List[Decimal]:
        """USD amounts of completed transactions in the trailing window."""
        pass
