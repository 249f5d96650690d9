from typing import Optional, List
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from rankbot.config import Config
from rankbot.database.models import Base, Participant
from rankbot.utils.logger import setup_logger


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.write_engine = None
        self.async_session = None
        self.write_session = None
        
    @property
    def session_factory(self):
        """Read-side session factory for services built on BaseService"""
        return self.async_session
    
    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith('sqlite')
    
    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")
        
        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        
        engine_kwargs = {'echo': Config.DEBUG}
        if self.is_sqlite:
            # Writers queue on the database lock for at most the write deadline
            engine_kwargs['connect_args'] = {'timeout': Config.DB_WRITE_TIMEOUT}
        
        self.engine = create_async_engine(database_url, **engine_kwargs)
        
        if self.is_sqlite and ':memory:' not in database_url:
            # Separate writer engine whose transactions open with BEGIN IMMEDIATE,
            # so every writer takes the database write lock before its first read
            self.write_engine = create_async_engine(database_url, **engine_kwargs)
            self._install_sqlite_hooks(self.engine, immediate=False)
            self._install_sqlite_hooks(self.write_engine, immediate=True)
        else:
            self.write_engine = self.engine
        
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        self.write_session = async_sessionmaker(
            self.write_engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        
        # Create all tables
        async with self.write_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            
        self.logger.info("Database initialized successfully")
    
    @staticmethod
    def _install_sqlite_hooks(engine, immediate: bool):
        """Take over BEGIN from the sqlite driver and enable WAL for concurrent readers"""
        
        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
        
        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE" if immediate else "BEGIN")
    
    @asynccontextmanager
    async def get_session(self):
        """Get a read-side database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
    
    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.
        
        All statements issued through the yielded session are committed together
        on success, or rolled back together on failure or cancellation.
        
        Usage:
            async with db.transaction() as session:
                await store.claim_match(session, ...)
                await store.write_ratings(session, ...)
                # Everything commits together here
        """
        async with self.write_session() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
            finally:
                await session.close()
    
    async def close(self):
        """Close the database connections"""
        if self.write_engine is not None and self.write_engine is not self.engine:
            await self.write_engine.dispose()
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")
    
    # Participant lookups
    async def get_participant(self, participant_id: int) -> Optional[Participant]:
        """Get a participant by internal id"""
        async with self.get_session() as session:
            return await session.get(Participant, participant_id)
    
    async def get_participant_by_discord_id(self, discord_id: int) -> Optional[Participant]:
        """Get a participant by their Discord ID"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Participant).where(Participant.discord_id == discord_id)
            )
            return result.scalar_one_or_none()
    
    async def get_banned_participants(self) -> List[Participant]:
        """Get all suspended participants, most recent first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Participant)
                .where(Participant.is_banned == True)
                .order_by(Participant.banned_at.desc())
            )
            return list(result.scalars().all())
