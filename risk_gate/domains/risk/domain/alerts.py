"""Alert classification: titles, descriptions, scores and severities."""

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from .entities import Alert
from .value_objects import AlertSeverity, AlertType, to_decimal


class AlertPolicy:
    """Derives every classified field of a new alert from its type and details."""
    
    TITLES = {
        AlertType.LIMIT_BREACH: "Transaction Limit Exceeded",
        AlertType.UNUSUAL_ACTIVITY: "Unusual Account Activity",
        AlertType.HIGH_RISK_TRANSACTION: "High Risk Transaction",
        AlertType.COMPLIANCE_ISSUE: "Compliance Issue Detected",
        AlertType.SECURITY_ALERT: "Security Alert",
        AlertType.MARKET_RISK: "Market Risk Warning",
        AlertType.CONCENTRATION_RISK: "Portfolio Concentration Risk",
        AlertType.LIMIT_INCREASE_REQUEST: "Limit Increase Requested",
        AlertType.KYC_SUBMISSION: "KYC Documents Submitted",
    }
    DEFAULT_TITLE = "Security Alert"
    DEFAULT_DESCRIPTION = "Security alert triggered"
    
    TYPE_SCORES = {
        AlertType.COMPLIANCE_ISSUE: 90,
        AlertType.UNUSUAL_ACTIVITY: 50,
        AlertType.LIMIT_BREACH: 40,
    }
    DEFAULT_SCORE = 30
    LARGE_TRANSACTION = Decimal("50000")
    
    @staticmethod
    def title_for(alert_type: AlertType) -> str:
        return AlertPolicy.TITLES.get(alert_type, AlertPolicy.DEFAULT_TITLE)
    
    @staticmethod
    def description_for(alert_type: AlertType, details: Dict[str, Any]) -> str:
        if alert_type == AlertType.LIMIT_BREACH:
            return f"User attempted to exceed {details.get('limit_type')} limit"
        if alert_type == AlertType.UNUSUAL_ACTIVITY:
            return f"Unusual {details.get('type')} detected for user account"
        if alert_type == AlertType.HIGH_RISK_TRANSACTION:
            return f"High risk {details.get('operation')} transaction of ${details.get('amount')}"
        if alert_type == AlertType.COMPLIANCE_ISSUE:
            return f"Compliance issue detected: {details.get('type')}"
        if alert_type == AlertType.LIMIT_INCREASE_REQUEST:
            return (
                f"Requested {details.get('limit_type')} increase "
                f"to {details.get('requested_amount')}"
            )
        if alert_type == AlertType.KYC_SUBMISSION:
            return f"KYC documents submitted: {details.get('document_type')}"
        return AlertPolicy.DEFAULT_DESCRIPTION
    
    @staticmethod
    def derive_score(alert_type: AlertType, details: Dict[str, Any]) -> int:
        if alert_type == AlertType.HIGH_RISK_TRANSACTION:
            amount = details.get("amount")
            if amount is not None and to_decimal(amount) > AlertPolicy.LARGE_TRANSACTION:
                return 80
            return 60
        return AlertPolicy.TYPE_SCORES.get(alert_type, AlertPolicy.DEFAULT_SCORE)
    
    @staticmethod
    def severity_for(alert_type: AlertType, score: int) -> AlertSeverity:
        if alert_type == AlertType.COMPLIANCE_ISSUE or score > 80:
            return AlertSeverity.CRITICAL
        if alert_type == AlertType.HIGH_RISK_TRANSACTION or score > 60:
            return AlertSeverity.HIGH
        if alert_type == AlertType.UNUSUAL_ACTIVITY:
            return AlertSeverity.WARNING
        return AlertSeverity.INFO
    
    @staticmethod
    def new_alert_id(now: datetime) -> str:
        return f"alert_{int(now.timestamp() * 1000)}_{secrets.token_hex(8)}"
    
    @staticmethod
    def build(
        account_id: str,
        alert_type: AlertType,
        details: Dict[str, Any],
        now: datetime,
        risk_score: Optional[int] = None,
        trigger_event: Optional[Dict[str, Any]] = None,
        risk_factors: Iterable[str] = (),
    ) -> Alert:
        """Create an open alert; an explicit risk score overrides the derived one."""
        score = risk_score if risk_score is not None else AlertPolicy.derive_score(alert_type, details)
        severity = AlertPolicy.severity_for(alert_type, score)
        
        return Alert(
            alert_id=AlertPolicy.new_alert_id(now),
            account_id=account_id,
            type=alert_type,
            severity=severity,
            title=AlertPolicy.title_for(alert_type),
            description=AlertPolicy.description_for(alert_type, details),
            risk_score=score,
            details=dict(details),
            trigger_event=dict(trigger_event or {}),
            risk_factors=tuple(risk_factors),
            requires_action=severity.requires_action,
            action_required="review" if severity.requires_action else None,
            created_at=now,
            updated_at=now,
        )
