"""Infrastructure-specific exceptions with detailed error context."""

from typing import Any, Dict, Optional

from ...shared.exceptions.base import RiskGateError


class InfrastructureError(RiskGateError):
    """Base exception for infrastructure-related errors."""
    
    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.correlation_id = correlation_id
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "correlation_id": self.correlation_id,
        }


class StoreUnavailableError(InfrastructureError):
    """A profile, alert or history store could not be reached."""
    
    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if store:
            context["store"] = store
        
        super().__init__(
            message,
            error_code="STORE_UNAVAILABLE",
            context=context,
            **kwargs,
        )


class ComplianceCheckTimeoutError(InfrastructureError):
    """A KYC/AML collaborator did not answer within the configured timeout."""
    
    def __init__(
        self,
        message: str,
        check: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if check:
            context["check"] = check
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds
        
        super().__init__(
            message,
            error_code="COMPLIANCE_TIMEOUT",
            context=context,
            **kwargs,
        )
