"""
Risk Gate Infrastructure Layer

- Configuration management with environment-based settings
- Async database sessions for the SQL profile and alert stores
- Structured logging with sensitive data masking
- Infrastructure errors carrying error codes and context
"""

from .config.settings import RiskEngineSettings, get_settings, reload_settings
from .database.session import DatabaseSessionManager
from .logging.structured_logger import configure_logging, get_logger
from .common.exceptions import (
    ComplianceCheckTimeoutError,
    InfrastructureError,
    StoreUnavailableError,
)

__all__ = [
    # Configuration
    "RiskEngineSettings",
    "get_settings",
    "reload_settings",
    
    # Database
    "DatabaseSessionManager",
    
    # Logging
    "configure_logging",
    "get_logger",
    
    # Errors
    "InfrastructureError",
    "StoreUnavailableError",
    "ComplianceCheckTimeoutError",
]
