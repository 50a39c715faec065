"""Risk engine composition root."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog

from .domains.risk.application.services import RiskDecisionService
from .domains.risk.domain.repositories import HistoryProvider
from .domains.risk.infrastructure.repositories import SQLAlchemyAlertStore, SQLAlchemyProfileStore
from .infrastructure.config.settings import RiskEngineSettings, get_settings
from .infrastructure.database.session import DatabaseSessionManager
from .infrastructure.logging.structured_logger import configure_logging
from .shared.kernel.clock import Clock

logger = structlog.get_logger()


@asynccontextmanager
async def risk_engine(
    history: HistoryProvider,
    settings: Optional[RiskEngineSettings] = None,
    clock: Optional[Clock] = None,
    create_schema: bool = False,
) -> AsyncGenerator[RiskDecisionService, None]:
    """
    Run a decision service backed by the configured database.
    
    Transaction history belongs to the caller's ledger and is passed in.
    Background alert dispatches are awaited before the engine is disposed.
    """
    settings = settings or get_settings()
    configure_logging(settings.logging)
    
    logger.info("Starting risk engine")
    sessions = DatabaseSessionManager(settings.database)
    await sessions.initialize(create_schema=create_schema)
    
    service = RiskDecisionService(
        profile_store=SQLAlchemyProfileStore(sessions),
        alert_store=SQLAlchemyAlertStore(sessions),
        history=history,
        clock=clock,
        settings=settings,
    )
    logger.info("Risk engine startup complete")
    
    try:
        yield service
    finally:
        logger.info("Shutting down risk engine")
        await service.aclose()
        await sessions.close()
