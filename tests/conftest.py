"""
Pytest fixtures for the ranking core.

Every test gets its own file-backed SQLite database under tmp_path so that
concurrent transactions run on separate connections, the way they do in the
running bot.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from rankbot.database.database import Database
from rankbot.database.match_store import MatchStore
from rankbot.database.models import Participant
from rankbot.operations.admin_operations import AdminOperations
from rankbot.operations.match_lifecycle import MatchLifecycle
from rankbot.operations.participant_operations import ParticipantOperations
from rankbot.services.leaderboard import LeaderboardService
from rankbot.services.ranking_cache import CacheConfig, RankingCache

K_FACTOR = 32


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'ranking_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def store(db):
    return MatchStore(db, write_timeout=10)


@pytest_asyncio.fixture
async def cache():
    ranking_cache = RankingCache(CacheConfig(ttl_seconds=300, cleanup_interval_seconds=60, max_entries=100))
    yield ranking_cache
    await ranking_cache.stop()


@pytest.fixture
def lifecycle(store, cache):
    return MatchLifecycle(store, cache, k_factor=K_FACTOR)


@pytest.fixture
def leaderboard_service(db, cache):
    return LeaderboardService(db.session_factory, cache)


@pytest.fixture
def admin_ops(store, cache):
    return AdminOperations(store, cache)


@pytest.fixture
def participant_ops(store):
    return ParticipantOperations(store)


@pytest_asyncio.fixture
async def players(db, participant_ops):
    """Three regular participants and one administrator."""
    alice = await participant_ops.get_or_create_participant(1001, "alice", "Alice")
    bob = await participant_ops.get_or_create_participant(1002, "bob", "Bob")
    carol = await participant_ops.get_or_create_participant(1003, "carol", "Carol")
    
    async with db.transaction() as session:
        admin = Participant(discord_id=9001, username="admin", display_name="Admin", is_admin=True)
        session.add(admin)
        await session.flush()
        admin_id = admin.id
    
    return SimpleNamespace(alice=alice, bob=bob, carol=carol, admin_id=admin_id)
