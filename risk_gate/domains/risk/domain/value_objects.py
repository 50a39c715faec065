"""Risk domain value objects and enumerations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ....shared.exceptions.base import InvalidAmountError, ValidationError


class OperationType(str, Enum):
    """Money-movement operations gated by the engine."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRADE = "trade"


class UsageOperation(str, Enum):
    """Operations that move the rolling usage counters."""
    TRADE = "trade"
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    LOSS = "loss"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    
    @classmethod
    def from_operation(cls, operation: OperationType) -> "UsageOperation":
        return cls(operation.value)


class RiskLevel(str, Enum):
    """Risk level enumeration."""
    VERY_LOW = "very_low"      # score < 20
    LOW = "low"                # score < 40
    MEDIUM = "medium"          # score < 60
    HIGH = "high"              # score < 80
    VERY_HIGH = "very_high"    # score >= 80
    RESTRICTED = "restricted"  # never produced by scoring
    
    @classmethod
    def for_score(cls, score: int) -> "RiskLevel":
        """Map a 0-100 score to its level (exclusive upper bounds)."""
        if score < 20:
            return cls.VERY_LOW
        if score < 40:
            return cls.LOW
        if score < 60:
            return cls.MEDIUM
        if score < 80:
            return cls.HIGH
        return cls.VERY_HIGH


class TradingExperience(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class VerificationLevel(str, Enum):
    NONE = "none"
    BASIC = "basic"
    ENHANCED = "enhanced"
    INSTITUTIONAL = "institutional"


class KycStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ViolationType(str, Enum):
    LIMIT_BREACH = "limit_breach"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    POLICY_VIOLATION = "policy_violation"
    MANUAL_FLAG = "manual_flag"


class ViolationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RestrictionLevel(str, Enum):
    NONE = "none"
    TRADING_SUSPENDED = "trading_suspended"
    WITHDRAWALS_SUSPENDED = "withdrawals_suspended"
    ACCOUNT_FROZEN = "account_frozen"


class AlertType(str, Enum):
    LIMIT_BREACH = "limit_breach"
    UNUSUAL_ACTIVITY = "unusual_activity"
    HIGH_RISK_TRANSACTION = "high_risk_transaction"
    COMPLIANCE_ISSUE = "compliance_issue"
    SECURITY_ALERT = "security_alert"
    MARKET_RISK = "market_risk"
    CONCENTRATION_RISK = "concentration_risk"
    LOSS_LIMIT_APPROACH = "loss_limit_approach"
    LIMIT_INCREASE_REQUEST = "limit_increase_request"
    KYC_SUBMISSION = "kyc_submission"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    HIGH = "high"
    CRITICAL = "critical"
    
    @property
    def requires_action(self) -> bool:
        return self in (AlertSeverity.HIGH, AlertSeverity.CRITICAL)


class AlertStatus(str, Enum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"
    
    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE)


class AmlStatus(str, Enum):
    PASSED = "passed"
    MANUAL_REVIEW = "manual_review"
    FAILED = "failed"


class LimitBreach(str, Enum):
    """Violation codes reported by the limit enforcer."""
    DAILY_TRADING_LIMIT = "daily_trading_limit"
    SINGLE_TRADE_SIZE_LIMIT = "single_trade_size_limit"
    DAILY_WITHDRAWAL_LIMIT = "daily_withdrawal_limit"
    DAILY_DEPOSIT_LIMIT = "daily_deposit_limit"
    MAX_OPEN_POSITIONS = "max_open_positions"
    DAILY_LOSS_LIMIT = "daily_loss_limit"
    WEEKLY_LOSS_LIMIT = "weekly_loss_limit"
    MONTHLY_LOSS_LIMIT = "monthly_loss_limit"


class DecisionOutcome(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    ESCALATE = "escalate"
    BLOCK = "block"


def to_decimal(value: Any) -> Decimal:
    """Convert numbers without going through binary floats."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_amount(value: Any, allow_zero: bool = False) -> Decimal:
    """
    Parse an operation amount.

    Raises:
        InvalidAmountError: value is not a finite number, or is negative
            (zero too unless ``allow_zero``)
    """
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidAmountError(value) from exc
    if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(value)
    return amount


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def jsonable(value: Any) -> Any:
    """Recursively convert Decimals, enums and datetimes for JSON storage."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    return value


def _check_percentage(name: str, value: int) -> None:
    if not 0 <= value <= 100:
        raise ValidationError(f"{name} must be between 0 and 100, got {value}")


@dataclass(frozen=True)
class RiskLimits:
    """Per-operation ceilings for an account."""
    daily_trading_limit: Decimal = Decimal("50000")
    daily_withdrawal_limit: Decimal = Decimal("10000")
    daily_deposit_limit: Decimal = Decimal("25000")
    max_position_size: Decimal = Decimal("100000")
    max_open_positions: int = 20
    max_leverage: Decimal = Decimal("1")
    max_daily_loss: Decimal = Decimal("5000")
    max_weekly_loss: Decimal = Decimal("15000")
    max_monthly_loss: Decimal = Decimal("50000")
    max_asset_concentration: Decimal = Decimal("50")
    max_single_trade_size: Decimal = Decimal("10000")
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_trading_limit": str(self.daily_trading_limit),
            "daily_withdrawal_limit": str(self.daily_withdrawal_limit),
            "daily_deposit_limit": str(self.daily_deposit_limit),
            "max_position_size": str(self.max_position_size),
            "max_open_positions": self.max_open_positions,
            "max_leverage": str(self.max_leverage),
            "max_daily_loss": str(self.max_daily_loss),
            "max_weekly_loss": str(self.max_weekly_loss),
            "max_monthly_loss": str(self.max_monthly_loss),
            "max_asset_concentration": str(self.max_asset_concentration),
            "max_single_trade_size": str(self.max_single_trade_size),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskLimits":
        return cls(
            daily_trading_limit=to_decimal(data["daily_trading_limit"]),
            daily_withdrawal_limit=to_decimal(data["daily_withdrawal_limit"]),
            daily_deposit_limit=to_decimal(data["daily_deposit_limit"]),
            max_position_size=to_decimal(data["max_position_size"]),
            max_open_positions=int(data["max_open_positions"]),
            max_leverage=to_decimal(data["max_leverage"]),
            max_daily_loss=to_decimal(data["max_daily_loss"]),
            max_weekly_loss=to_decimal(data["max_weekly_loss"]),
            max_monthly_loss=to_decimal(data["max_monthly_loss"]),
            max_asset_concentration=to_decimal(data["max_asset_concentration"]),
            max_single_trade_size=to_decimal(data["max_single_trade_size"]),
        )


@dataclass(frozen=True)
class CurrentUsage:
    """Rolling usage counters. None of them may go negative."""
    last_reset: datetime
    daily_trading: Decimal = Decimal("0")
    daily_withdrawals: Decimal = Decimal("0")
    daily_deposits: Decimal = Decimal("0")
    daily_loss: Decimal = Decimal("0")
    weekly_loss: Decimal = Decimal("0")
    monthly_loss: Decimal = Decimal("0")
    open_positions: int = 0
    
    def __post_init__(self):
        for name in (
            "daily_trading", "daily_withdrawals", "daily_deposits",
            "daily_loss", "weekly_loss", "monthly_loss", "open_positions",
        ):
            if getattr(self, name) < 0:
                raise ValidationError(f"Usage counter {name} cannot be negative")
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_trading": str(self.daily_trading),
            "daily_withdrawals": str(self.daily_withdrawals),
            "daily_deposits": str(self.daily_deposits),
            "daily_loss": str(self.daily_loss),
            "weekly_loss": str(self.weekly_loss),
            "monthly_loss": str(self.monthly_loss),
            "open_positions": self.open_positions,
            "last_reset": format_datetime(self.last_reset),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurrentUsage":
        return cls(
            daily_trading=to_decimal(data["daily_trading"]),
            daily_withdrawals=to_decimal(data["daily_withdrawals"]),
            daily_deposits=to_decimal(data["daily_deposits"]),
            daily_loss=to_decimal(data["daily_loss"]),
            weekly_loss=to_decimal(data["weekly_loss"]),
            monthly_loss=to_decimal(data["monthly_loss"]),
            open_positions=int(data["open_positions"]),
            last_reset=parse_datetime(data["last_reset"]),
        )


@dataclass(frozen=True)
class RiskFactors:
    """Inputs of the static profile score."""
    account_age: int = 0  # days
    trading_experience: TradingExperience = TradingExperience.BEGINNER
    verification_level: VerificationLevel = VerificationLevel.NONE
    
    # Behavioral
    trading_frequency: Decimal = Decimal("0")  # trades per day
    average_trade_size: Decimal = Decimal("0")  # USD
    win_rate: Decimal = Decimal("0")  # percentage
    profit_loss_ratio: Decimal = Decimal("0")
    
    # External, 0-100
    ip_reputation: int = 50
    device_trust: int = 50
    geographic_risk: int = 20
    
    # Compliance
    kyc_status: KycStatus = KycStatus.PENDING
    aml_risk: int = 10
    sanctions_check: bool = False
    pep_check: bool = False
    
    def __post_init__(self):
        _check_percentage("ip_reputation", self.ip_reputation)
        _check_percentage("device_trust", self.device_trust)
        _check_percentage("geographic_risk", self.geographic_risk)
        _check_percentage("aml_risk", self.aml_risk)
        if self.account_age < 0:
            raise ValidationError("account_age cannot be negative")
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_age": self.account_age,
            "trading_experience": self.trading_experience.value,
            "verification_level": self.verification_level.value,
            "trading_frequency": str(self.trading_frequency),
            "average_trade_size": str(self.average_trade_size),
            "win_rate": str(self.win_rate),
            "profit_loss_ratio": str(self.profit_loss_ratio),
            "ip_reputation": self.ip_reputation,
            "device_trust": self.device_trust,
            "geographic_risk": self.geographic_risk,
            "kyc_status": self.kyc_status.value,
            "aml_risk": self.aml_risk,
            "sanctions_check": self.sanctions_check,
            "pep_check": self.pep_check,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskFactors":
        return cls(
            account_age=int(data["account_age"]),
            trading_experience=TradingExperience(data["trading_experience"]),
            verification_level=VerificationLevel(data["verification_level"]),
            trading_frequency=to_decimal(data["trading_frequency"]),
            average_trade_size=to_decimal(data["average_trade_size"]),
            win_rate=to_decimal(data["win_rate"]),
            profit_loss_ratio=to_decimal(data["profit_loss_ratio"]),
            ip_reputation=int(data["ip_reputation"]),
            device_trust=int(data["device_trust"]),
            geographic_risk=int(data["geographic_risk"]),
            kyc_status=KycStatus(data["kyc_status"]),
            aml_risk=int(data["aml_risk"]),
            sanctions_check=bool(data["sanctions_check"]),
            pep_check=bool(data["pep_check"]),
        )


@dataclass(frozen=True)
class Violation:
    """Recorded policy violation on a profile."""
    violation_id: str
    type: ViolationType
    description: str
    severity: ViolationSeverity
    occurred_at: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    actions: Tuple[str, ...] = ()
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "violation_id": self.violation_id,
            "type": self.type.value,
            "description": self.description,
            "severity": self.severity.value,
            "occurred_at": format_datetime(self.occurred_at),
            "resolved": self.resolved,
            "resolved_at": format_datetime(self.resolved_at),
            "resolved_by": self.resolved_by,
            "actions": list(self.actions),
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Violation":
        return cls(
            violation_id=data["violation_id"],
            type=ViolationType(data["type"]),
            description=data["description"],
            severity=ViolationSeverity(data["severity"]),
            occurred_at=parse_datetime(data["occurred_at"]),
            resolved=bool(data["resolved"]),
            resolved_at=parse_datetime(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            actions=tuple(data.get("actions") or ()),
        )


@dataclass(frozen=True)
class MonitoringState:
    """Monitoring and restriction flags of an account."""
    is_monitored: bool = False
    monitoring_reason: Optional[str] = None
    monitoring_started: Optional[datetime] = None
    is_restricted: bool = False
    restriction_reason: Optional[str] = None
    restriction_level: RestrictionLevel = RestrictionLevel.NONE
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_monitored": self.is_monitored,
            "monitoring_reason": self.monitoring_reason,
            "monitoring_started": format_datetime(self.monitoring_started),
            "is_restricted": self.is_restricted,
            "restriction_reason": self.restriction_reason,
            "restriction_level": self.restriction_level.value,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitoringState":
        return cls(
            is_monitored=bool(data["is_monitored"]),
            monitoring_reason=data.get("monitoring_reason"),
            monitoring_started=parse_datetime(data.get("monitoring_started")),
            is_restricted=bool(data["is_restricted"]),
            restriction_reason=data.get("restriction_reason"),
            restriction_level=RestrictionLevel(data.get("restriction_level", "none")),
        )


@dataclass(frozen=True)
class OperationContext:
    """Request context accompanying an operation check."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    payment_method_id: Optional[str] = None
    new_device: bool = False
    ip_reputation: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    
    def __post_init__(self):
        # Country lists in settings are upper-case ISO codes.
        if self.country:
            object.__setattr__(self, "country", self.country.strip().upper())
    
    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OperationContext":
        """Build from a loose request payload (camelCase or snake_case keys)."""
        data = dict(data or {})
        
        def take(*keys):
            for key in keys:
                if key in data:
                    return data.pop(key)
            return None
        
        ip_reputation = take("ip_reputation", "ipReputation")
        country = take("country")
        return cls(
            ip_address=take("ip_address", "ipAddress"),
            user_agent=take("user_agent", "userAgent"),
            country=country or None,
            payment_method_id=take("payment_method_id", "paymentMethodId"),
            new_device=bool(take("new_device", "newDevice")),
            ip_reputation=int(ip_reputation) if ip_reputation is not None else None,
            extra=data,
        )
