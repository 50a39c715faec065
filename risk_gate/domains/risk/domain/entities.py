"""
Risk domain entities.

Profiles and alerts are immutable snapshots. Every transition returns a
new snapshot; persisting it is an explicit store call made by the
application layer.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from ....shared.exceptions.base import (
    BusinessRuleViolationError,
    CorruptProfileError,
    InvalidAlertTransitionError,
)
from .value_objects import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    CurrentUsage,
    MonitoringState,
    RestrictionLevel,
    RiskFactors,
    RiskLevel,
    RiskLimits,
    Violation,
    ViolationSeverity,
    ViolationType,
    format_datetime,
    jsonable,
    parse_datetime,
)

# Unresolved violations that put an account under monitoring
MONITORING_VIOLATION_COUNT = 3


@dataclass(frozen=True)
class RiskProfile:
    """Persistent per-account risk state consumed by every decision."""
    account_id: str
    risk_level: RiskLevel
    risk_score: int
    limits: RiskLimits
    current_usage: CurrentUsage
    risk_factors: RiskFactors
    created_at: datetime
    updated_at: datetime
    last_assessment: datetime
    violations: Tuple[Violation, ...] = ()
    monitoring: MonitoringState = field(default_factory=MonitoringState)
    last_review: Optional[datetime] = None
    next_review: Optional[datetime] = None
    version: int = 0
    
    def validate(self) -> None:
        """
        Check structural invariants of a loaded profile.
        
        Raises:
            CorruptProfileError: score out of range or level disagreeing with score
        """
        if not 0 <= self.risk_score <= 100:
            raise CorruptProfileError(self.account_id, f"risk score {self.risk_score} out of range")
        
        if self.risk_level != RiskLevel.for_score(self.risk_score):
            raise CorruptProfileError(
                self.account_id,
                f"risk level {self.risk_level.value} does not match score {self.risk_score}",
            )
    
    @property
    def unresolved_violations(self) -> List[Violation]:
        return [v for v in self.violations if not v.resolved]
    
    def recent_unresolved_violations(self, now: datetime, days: int) -> List[Violation]:
        """Unresolved violations that occurred within the trailing window."""
        cutoff = now - timedelta(days=days)
        return [v for v in self.unresolved_violations if v.occurred_at > cutoff]
    
    def with_assessment(self, score: int, now: datetime) -> "RiskProfile":
        """Apply a fresh score; the level always follows the score."""
        return replace(
            self,
            risk_score=score,
            risk_level=RiskLevel.for_score(score),
            last_assessment=now,
            updated_at=now,
        )
    
    def add_violation(
        self,
        violation_type: ViolationType,
        description: str,
        severity: ViolationSeverity,
        now: datetime,
    ) -> "RiskProfile":
        """Record a violation and enforce the monitoring threshold."""
        violation = Violation(
            violation_id=uuid4().hex,
            type=violation_type,
            description=description,
            severity=severity,
            occurred_at=now,
        )
        updated = replace(self, violations=self.violations + (violation,), updated_at=now)
        return updated._enforce_monitoring(now)
    
    def resolve_violation(
        self,
        violation_id: str,
        resolved_by: str,
        actions: Iterable[str],
        now: datetime,
    ) -> "RiskProfile":
        """
        Mark a violation resolved.
        
        Monitoring is never lifted automatically; a reviewer does that.
        """
        violations = []
        found = False
        for violation in self.violations:
            if violation.violation_id == violation_id:
                if violation.resolved:
                    raise BusinessRuleViolationError(f"Violation {violation_id} is already resolved")
                violation = replace(
                    violation,
                    resolved=True,
                    resolved_at=now,
                    resolved_by=resolved_by,
                    actions=tuple(actions),
                )
                found = True
            violations.append(violation)
        
        if not found:
            raise BusinessRuleViolationError(
                f"Violation {violation_id} not found for account {self.account_id}"
            )
        return replace(self, violations=tuple(violations), updated_at=now)
    
    def _enforce_monitoring(self, now: datetime) -> "RiskProfile":
        if self.monitoring.is_monitored:
            return self
        if len(self.unresolved_violations) < MONITORING_VIOLATION_COUNT:
            return self
        
        monitoring = replace(
            self.monitoring,
            is_monitored=True,
            monitoring_reason="Multiple violations detected",
            monitoring_started=now,
        )
        return replace(self, monitoring=monitoring)
    
    def restrict(self, reason: str, level: RestrictionLevel, now: datetime) -> "RiskProfile":
        if level == RestrictionLevel.NONE:
            raise BusinessRuleViolationError("Restriction level must not be 'none'")
        monitoring = replace(
            self.monitoring,
            is_restricted=True,
            restriction_reason=reason,
            restriction_level=level,
        )
        return replace(self, monitoring=monitoring, updated_at=now)
    
    def lift_restriction(self, now: datetime) -> "RiskProfile":
        monitoring = replace(
            self.monitoring,
            is_restricted=False,
            restriction_reason=None,
            restriction_level=RestrictionLevel.NONE,
        )
        return replace(self, monitoring=monitoring, updated_at=now)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "account_id": self.account_id,
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score,
            "limits": self.limits.to_dict(),
            "current_usage": self.current_usage.to_dict(),
            "risk_factors": self.risk_factors.to_dict(),
            "violations": [v.to_dict() for v in self.violations],
            "monitoring": self.monitoring.to_dict(),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "last_assessment": format_datetime(self.last_assessment),
            "last_review": format_datetime(self.last_review),
            "next_review": format_datetime(self.next_review),
            "version": self.version,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskProfile":
        return cls(
            account_id=data["account_id"],
            risk_level=RiskLevel(data["risk_level"]),
            risk_score=int(data["risk_score"]),
            limits=RiskLimits.from_dict(data["limits"]),
            current_usage=CurrentUsage.from_dict(data["current_usage"]),
            risk_factors=RiskFactors.from_dict(data["risk_factors"]),
            violations=tuple(Violation.from_dict(v) for v in data.get("violations", [])),
            monitoring=MonitoringState.from_dict(data["monitoring"]),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
            last_assessment=parse_datetime(data["last_assessment"]),
            last_review=parse_datetime(data.get("last_review")),
            next_review=parse_datetime(data.get("next_review")),
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class Alert:
    """
    Risk alert with immutable identity and a mutable lifecycle.
    
    Alerts are never deleted; resolved and false-positive alerts are terminal.
    """
    alert_id: str
    account_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    risk_score: int
    created_at: datetime
    updated_at: datetime
    status: AlertStatus = AlertStatus.OPEN
    details: Dict[str, Any] = field(default_factory=dict)
    trigger_event: Dict[str, Any] = field(default_factory=dict)
    risk_factors: Tuple[str, ...] = ()
    requires_action: bool = False
    action_required: Optional[str] = None
    assigned_to: Optional[str] = None
    escalated: bool = False
    escalated_at: Optional[datetime] = None
    escalated_to: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    actions_taken: Tuple[str, ...] = ()
    user_notified: bool = False
    admin_notified: bool = False
    
    def _ensure_open(self, action: str) -> None:
        if self.status.is_terminal:
            raise InvalidAlertTransitionError(self.alert_id, self.status.value, action)
    
    def escalate(self, escalated_to: str, now: datetime) -> "Alert":
        """Escalate to a reviewing queue; severity is raised to at least HIGH."""
        self._ensure_open("escalate")
        severity = AlertSeverity.CRITICAL if self.severity == AlertSeverity.CRITICAL else AlertSeverity.HIGH
        return replace(
            self,
            escalated=True,
            escalated_at=now,
            escalated_to=escalated_to,
            severity=severity,
            requires_action=severity.requires_action,
            updated_at=now,
        )
    
    def start_investigation(self, assignee: Optional[str], now: datetime) -> "Alert":
        self._ensure_open("investigate")
        return replace(
            self,
            status=AlertStatus.INVESTIGATING,
            assigned_to=assignee or self.assigned_to,
            updated_at=now,
        )
    
    def resolve(
        self,
        resolved_by: str,
        resolution: str,
        actions_taken: Iterable[str],
        now: datetime,
    ) -> "Alert":
        self._ensure_open("resolve")
        return replace(
            self,
            status=AlertStatus.RESOLVED,
            resolved_at=now,
            resolved_by=resolved_by,
            resolution=resolution,
            actions_taken=tuple(actions_taken),
            updated_at=now,
        )
    
    def mark_false_positive(self, resolved_by: str, resolution: str, now: datetime) -> "Alert":
        self._ensure_open("dismiss")
        return replace(
            self,
            status=AlertStatus.FALSE_POSITIVE,
            resolved_at=now,
            resolved_by=resolved_by,
            resolution=resolution,
            updated_at=now,
        )
    
    def acknowledge(self, now: datetime) -> "Alert":
        """Record that the account holder has seen the alert."""
        return replace(self, user_notified=True, updated_at=now)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "alert_id": self.alert_id,
            "account_id": self.account_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "details": jsonable(self.details),
            "trigger_event": jsonable(self.trigger_event),
            "risk_score": self.risk_score,
            "risk_factors": list(self.risk_factors),
            "requires_action": self.requires_action,
            "action_required": self.action_required,
            "assigned_to": self.assigned_to,
            "escalated": self.escalated,
            "escalated_at": format_datetime(self.escalated_at),
            "escalated_to": self.escalated_to,
            "resolved_at": format_datetime(self.resolved_at),
            "resolved_by": self.resolved_by,
            "resolution": self.resolution,
            "actions_taken": list(self.actions_taken),
            "user_notified": self.user_notified,
            "admin_notified": self.admin_notified,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(
            alert_id=data["alert_id"],
            account_id=data["account_id"],
            type=AlertType(data["type"]),
            severity=AlertSeverity(data["severity"]),
            status=AlertStatus(data["status"]),
            title=data["title"],
            description=data["description"],
            details=dict(data.get("details") or {}),
            trigger_event=dict(data.get("trigger_event") or {}),
            risk_score=int(data["risk_score"]),
            risk_factors=tuple(data.get("risk_factors") or ()),
            requires_action=bool(data["requires_action"]),
            action_required=data.get("action_required"),
            assigned_to=data.get("assigned_to"),
            escalated=bool(data["escalated"]),
            escalated_at=parse_datetime(data.get("escalated_at")),
            escalated_to=data.get("escalated_to"),
            resolved_at=parse_datetime(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            resolution=data.get("resolution"),
            actions_taken=tuple(data.get("actions_taken") or ()),
            user_notified=bool(data.get("user_notified", False)),
            admin_notified=bool(data.get("admin_notified", False)),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
        )
