"""Base exception hierarchy for the risk engine."""

from typing import Optional


class RiskGateError(Exception):
    """Base exception for all risk engine errors."""
    pass


class DomainError(RiskGateError):
    """Base exception for domain-related errors."""
    pass


class ApplicationError(RiskGateError):
    """Base exception for application layer errors."""
    pass


class ValidationError(DomainError):
    """Raised when domain validation fails."""
    pass


class BusinessRuleViolationError(DomainError):
    """Raised when a business rule is violated."""
    pass


class InvalidAmountError(ValidationError):
    """Raised when an operation amount is not strictly positive."""

    def __init__(self, amount: object) -> None:
        super().__init__(f"Amount must be positive, got {amount}")
        self.amount = amount


class CorruptProfileError(DomainError):
    """Raised when a persisted risk profile breaks a structural invariant."""

    def __init__(self, account_id: str, reason: str) -> None:
        super().__init__(f"Risk profile for account {account_id} is corrupt: {reason}")
        self.account_id = account_id
        self.reason = reason


class InvalidAlertTransitionError(BusinessRuleViolationError):
    """Raised when an alert lifecycle transition is not permitted."""

    def __init__(self, alert_id: str, status: str, action: str) -> None:
        super().__init__(f"Cannot {action} alert {alert_id} in status {status}")
        self.alert_id = alert_id
        self.status = status
        self.action = action


class EntityNotFoundError(ApplicationError):
    """Raised when an entity is not found."""
    
    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type} with ID {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ProfileNotFoundError(EntityNotFoundError):
    """Raised when an account has no risk profile."""

    def __init__(self, account_id: str) -> None:
        super().__init__("RiskProfile", account_id)
        self.account_id = account_id


class AlertNotFoundError(EntityNotFoundError):
    """Raised when an alert id is unknown."""

    def __init__(self, alert_id: str) -> None:
        super().__init__("Alert", alert_id)
        self.alert_id = alert_id


class ConcurrencyError(ApplicationError):
    """Raised when a concurrency conflict occurs."""

    def __init__(
        self,
        message: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version
