"""
Base service class for the ranking bot.

Provides read-side async database session management for service layer
queries. Writes go through MatchStore.atomic().
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)

class BaseService:
    """Base class for services that query through a session factory."""
    
    def __init__(self, session_factory):
        """
        Initialize base service with session factory.
        
        Args:
            session_factory: Async session factory from Database.session_factory
        """
        self.session_factory = session_factory
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a read-only scope; anything left open is rolled back."""
        session = self.session_factory()
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()
