"""Structured logging with sensitive data masking."""

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from structlog.types import FilteringBoundLogger

from ..config.settings import LoggingConfig

# Global logger instance
_logger: Optional[FilteringBoundLogger] = None


class SensitiveDataMasker:
    """Masks sensitive data in log messages."""
    
    MASK_VALUE = "***MASKED***"
    
    # Patterns masked inside free-text messages
    PATTERNS = [
        (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "XXXX-XXXX-XXXX-XXXX"),
        (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "x.x.x.x"),
        (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "email@masked.com"),
    ]
    
    def __init__(self, sensitive_fields: List[str]):
        self.sensitive_fields = set(field.lower() for field in sensitive_fields)
    
    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively mask sensitive fields in dictionary."""
        masked_data = {}
        
        for key, value in data.items():
            if str(key).lower() in self.sensitive_fields:
                masked_data[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [
                    self.mask_dict(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                masked_data[key] = value
        
        return masked_data
    
    def mask_string(self, text: str) -> str:
        """Mask sensitive patterns in string."""
        masked_text = text
        for pattern, replacement in self.PATTERNS:
            masked_text = pattern.sub(replacement, masked_text)
        return masked_text


class TimestampProcessor:
    """Adds ISO timestamp to log records."""
    
    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        return event_dict


class SensitiveDataProcessor:
    """Masks sensitive data in log records."""
    
    def __init__(self, masker: SensitiveDataMasker):
        self.masker = masker
    
    def __call__(self, logger, method_name, event_dict):
        masked_dict = self.masker.mask_dict(event_dict)
        
        if "event" in masked_dict and isinstance(masked_dict["event"], str):
            masked_dict["event"] = self.masker.mask_string(masked_dict["event"])
        
        return masked_dict


class StructuredLoggerManager:
    """Manages structured logging configuration and setup."""
    
    def __init__(self, config: LoggingConfig):
        self.config = config
        self.masker = SensitiveDataMasker(config.sensitive_fields)
        self._configured = False
    
    def build_processors(self) -> list:
        """Build the processor chain for the configured output format."""
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            TimestampProcessor(),
            SensitiveDataProcessor(self.masker),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]
        
        if self.config.format == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())
        
        return processors
    
    def configure_logging(self) -> FilteringBoundLogger:
        """Configure structured logging with all processors."""
        if self._configured:
            return structlog.get_logger()
        
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, self.config.level),
        )
        
        structlog.configure(
            processors=self.build_processors(),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        
        self._configured = True
        
        logger = structlog.get_logger()
        logger.info(
            "Structured logging configured",
            level=self.config.level,
            format=self.config.format,
            sensitive_fields_count=len(self.config.sensitive_fields),
        )
        
        return logger


def configure_logging(config: LoggingConfig) -> FilteringBoundLogger:
    """Configure global structured logging."""
    global _logger
    
    if _logger is None:
        manager = StructuredLoggerManager(config)
        _logger = manager.configure_logging()
    
    return _logger


def get_logger(name: Optional[str] = None) -> FilteringBoundLogger:
    """Get a logger, bound to ``name`` when given."""
    logger = _logger if _logger is not None else structlog.get_logger()
    
    if name:
        return logger.bind(logger_name=name)
    
    return logger
