"""
Unit Tests for Structured Logging

Tests sensitive data masking and the structlog processor chain.
"""

import pytest
import structlog

from risk_gate.infrastructure.config.settings import DatabaseConfig, LoggingConfig, RiskEngineSettings
from risk_gate.infrastructure.logging import structured_logger
from risk_gate.infrastructure.logging.structured_logger import (
    SensitiveDataMasker,
    SensitiveDataProcessor,
    StructuredLoggerManager,
    TimestampProcessor,
    configure_logging,
    get_logger,
)
from risk_gate.domains.risk.domain.value_objects import OperationType
from risk_gate.domains.risk.infrastructure.memory import InMemoryHistoryProvider
from risk_gate.main import risk_engine


@pytest.fixture
def reset_logging(monkeypatch):
    """Restore structlog defaults after a test configures logging globally."""
    monkeypatch.setattr(structured_logger, "_logger", None)
    yield
    structlog.reset_defaults()


class TestSensitiveDataMasker:

    @pytest.fixture
    def masker(self):
        return SensitiveDataMasker(["ip_address", "User_Agent"])

    def test_masks_configured_fields_case_insensitively(self, masker):
        masked = masker.mask_dict({"ip_address": "203.0.113.9", "user_agent": "curl/8", "amount": "10"})

        assert masked == {"ip_address": "***MASKED***", "user_agent": "***MASKED***", "amount": "10"}

    def test_masks_nested_structures(self, masker):
        masked = masker.mask_dict({
            "context": {"ip_address": "203.0.113.9", "country": "FR"},
            "devices": [{"user_agent": "curl/8"}, "raw"],
        })

        assert masked["context"] == {"ip_address": "***MASKED***", "country": "FR"}
        assert masked["devices"] == [{"user_agent": "***MASKED***"}, "raw"]

    def test_masks_patterns_in_text(self, masker):
        text = masker.mask_string("card 4111 1111 1111 1111 from 10.0.0.1 by jane@example.com")

        assert text == "card XXXX-XXXX-XXXX-XXXX from x.x.x.x by email@masked.com"


class TestProcessors:

    def test_sensitive_data_processor(self):
        processor = SensitiveDataProcessor(SensitiveDataMasker(["ip_address"]))

        event = processor(None, "info", {"event": "login from 10.0.0.1", "ip_address": "10.0.0.1"})

        assert event == {"event": "login from x.x.x.x", "ip_address": "***MASKED***"}

    def test_timestamp_processor(self):
        event = TimestampProcessor()(None, "info", {"event": "decision"})

        assert event["timestamp"].endswith("+00:00")

    @pytest.mark.parametrize("fmt,renderer", [
        ("json", structlog.processors.JSONRenderer),
        ("console", structlog.dev.ConsoleRenderer),
    ])
    def test_renderer_follows_format(self, fmt, renderer):
        processors = StructuredLoggerManager(LoggingConfig(format=fmt)).build_processors()

        assert isinstance(processors[-1], renderer)
        assert any(isinstance(p, SensitiveDataProcessor) for p in processors)


class TestConfiguration:

    def test_configure_is_idempotent(self, reset_logging):
        first = configure_logging(LoggingConfig(format="console"))
        second = configure_logging(LoggingConfig(format="json"))

        assert first is second
        assert get_logger() is first

    def test_named_logger_is_bound(self, reset_logging):
        configure_logging(LoggingConfig())

        logger = get_logger("risk_gate.decisions")

        assert logger is not get_logger()


class TestRiskEngine:

    @pytest.mark.asyncio
    async def test_engine_lifecycle(self, reset_logging, tmp_path, clock):
        settings = RiskEngineSettings(
            _env_file=None,
            missing_profile_policy="initialize",
            database=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path}/engine.db"),
            logging=LoggingConfig(format="console"),
        )
        history = InMemoryHistoryProvider(clock)

        async with risk_engine(history, settings, clock, create_schema=True) as service:
            decision = await service.check_operation("acct-1", OperationType.DEPOSIT, "100")
            profile = await service.profiles.load("acct-1")

        assert decision.allowed is True
        assert profile.version == 1
