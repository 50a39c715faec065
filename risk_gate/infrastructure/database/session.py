"""Async engine and transactional session scopes."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..common.exceptions import StoreUnavailableError
from ..config.settings import DatabaseConfig
from .base import BaseModel

logger = structlog.get_logger()


class DatabaseSessionManager:
    """Owns the async engine and hands out one transaction per session."""
    
    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
    
    async def initialize(self, create_schema: bool = False) -> None:
        """Create the engine and session factory, optionally the tables."""
        try:
            self.engine = create_async_engine(
                self.config.url,
                echo=self.config.echo,
                pool_pre_ping=self.config.pool_pre_ping,
            )
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            
            if create_schema:
                async with self.engine.begin() as conn:
                    await conn.run_sync(BaseModel.metadata.create_all)
        except SQLAlchemyError as e:
            logger.error("Failed to initialize database", error=str(e))
            raise StoreUnavailableError(f"Database initialization failed: {e}", store="database") from e
        
        logger.info("Database session factory initialized", create_schema=create_schema)
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in a transaction.
        
        Commits on normal exit and rolls back on any exception. Driver
        errors surface as StoreUnavailableError.
        """
        if not self.session_factory:
            raise StoreUnavailableError("Session factory not initialized", store="database")
        
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error("Database session error, rolled back", error=str(e))
            raise StoreUnavailableError(f"Database session failed: {e}", store="database") from e
    
    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("Database engine disposed")
