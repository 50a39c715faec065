"""Alert creation, escalation and lifecycle management."""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog

from ....shared.exceptions.base import AlertNotFoundError
from ....shared.kernel.clock import Clock
from ..domain.alerts import AlertPolicy
from ..domain.entities import Alert
from ..domain.repositories import AlertStore
from ..domain.value_objects import AlertSeverity, AlertStatus, AlertType

logger = structlog.get_logger()


@dataclass
class AlertPage:
    """One page of alerts, newest first."""
    items: List[Alert]
    page: int
    limit: int
    total: int
    pages: int = field(init=False)
    
    def __post_init__(self):
        self.pages = math.ceil(self.total / self.limit) if self.limit else 0
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts": [alert.to_dict() for alert in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "pages": self.pages,
            },
        }


class AlertManager:
    """Creates, classifies and escalates alerts."""
    
    def __init__(
        self,
        store: AlertStore,
        clock: Clock,
        escalation_queue: str = "risk_team",
        dispatch_async: bool = False,
    ):
        self.store = store
        self.clock = clock
        self.escalation_queue = escalation_queue
        self.dispatch_async = dispatch_async
        self._pending: Set[asyncio.Task] = set()
    
    async def create_alert(
        self,
        account_id: str,
        alert_type: AlertType,
        details: Optional[Dict[str, Any]] = None,
        risk_score: Optional[int] = None,
        trigger_event: Optional[Dict[str, Any]] = None,
        risk_factors: Iterable[str] = (),
    ) -> Alert:
        """
        Create and persist an alert.
        
        Critical alerts are escalated to the reviewing queue right away.
        """
        now = self.clock.now()
        alert = AlertPolicy.build(
            account_id,
            alert_type,
            details or {},
            now,
            risk_score=risk_score,
            trigger_event=trigger_event,
            risk_factors=risk_factors,
        )
        await self.store.create(alert)
        
        logger.info(
            "Risk alert created",
            alert_id=alert.alert_id,
            account_id=account_id,
            alert_type=alert_type.value,
            severity=alert.severity.value,
            risk_score=alert.risk_score,
        )
        
        if alert.severity == AlertSeverity.CRITICAL:
            alert = alert.escalate(self.escalation_queue, now)
            await self.store.update(alert)
            logger.warning(
                "Critical alert escalated",
                alert_id=alert.alert_id,
                escalated_to=self.escalation_queue,
            )
        
        return alert
    
    async def dispatch(
        self,
        account_id: str,
        alert_type: AlertType,
        details: Optional[Dict[str, Any]] = None,
        risk_score: Optional[int] = None,
        trigger_event: Optional[Dict[str, Any]] = None,
        risk_factors: Iterable[str] = (),
    ) -> Optional[str]:
        """
        Create an alert as a side effect of a decision.
        
        Failures are logged and never propagate. Returns the alert id when
        the alert was created synchronously, None otherwise.
        """
        create = self._create_logged(
            account_id, alert_type, details, risk_score, trigger_event, tuple(risk_factors)
        )
        
        if self.dispatch_async:
            task = asyncio.create_task(create)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return None
        
        alert = await create
        return alert.alert_id if alert else None
    
    async def _create_logged(
        self,
        account_id: str,
        alert_type: AlertType,
        details: Optional[Dict[str, Any]],
        risk_score: Optional[int],
        trigger_event: Optional[Dict[str, Any]],
        risk_factors: Iterable[str],
    ) -> Optional[Alert]:
        try:
            return await self.create_alert(
                account_id,
                alert_type,
                details,
                risk_score=risk_score,
                trigger_event=trigger_event,
                risk_factors=risk_factors,
            )
        except Exception as e:
            logger.error(
                "Failed to create risk alert",
                account_id=account_id,
                alert_type=alert_type.value,
                error=str(e),
            )
            return None
    
    async def aclose(self) -> None:
        """Wait for every alert still being dispatched."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
    
    async def get_alert(self, alert_id: str) -> Alert:
        alert = await self.store.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert
    
    async def escalate(self, alert_id: str, escalated_to: str) -> Alert:
        alert = (await self.get_alert(alert_id)).escalate(escalated_to, self.clock.now())
        await self.store.update(alert)
        logger.warning("Alert escalated", alert_id=alert_id, escalated_to=escalated_to)
        return alert
    
    async def resolve(
        self,
        alert_id: str,
        resolved_by: str,
        resolution: str,
        actions_taken: Iterable[str] = (),
    ) -> Alert:
        alert = (await self.get_alert(alert_id)).resolve(
            resolved_by, resolution, actions_taken, self.clock.now()
        )
        await self.store.update(alert)
        logger.info("Alert resolved", alert_id=alert_id, resolved_by=resolved_by)
        return alert
    
    async def start_investigation(self, alert_id: str, assignee: Optional[str] = None) -> Alert:
        alert = (await self.get_alert(alert_id)).start_investigation(assignee, self.clock.now())
        await self.store.update(alert)
        logger.info("Alert investigation started", alert_id=alert_id, assigned_to=alert.assigned_to)
        return alert
    
    async def mark_false_positive(self, alert_id: str, resolved_by: str, resolution: str) -> Alert:
        alert = (await self.get_alert(alert_id)).mark_false_positive(
            resolved_by, resolution, self.clock.now()
        )
        await self.store.update(alert)
        logger.info("Alert dismissed as false positive", alert_id=alert_id, resolved_by=resolved_by)
        return alert
    
    async def acknowledge(self, alert_id: str) -> Alert:
        alert = (await self.get_alert(alert_id)).acknowledge(self.clock.now())
        await self.store.update(alert)
        return alert
    
    async def list_alerts(
        self,
        account_id: str,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AlertPage:
        """Filtered alerts of an account, newest first."""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        
        alerts = await self.store.list_for_account(account_id)
        if status is not None:
            alerts = [a for a in alerts if a.status == status]
        if severity is not None:
            alerts = [a for a in alerts if a.severity == severity]
        if alert_type is not None:
            alerts = [a for a in alerts if a.type == alert_type]
        
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        start = (page - 1) * limit
        return AlertPage(items=alerts[start:start + limit], page=page, limit=limit, total=len(alerts))
