"""Database initialization and connection setup."""

import pytest
from sqlalchemy import inspect, text

from rankbot.database.database import Database


@pytest.mark.asyncio
async def test_initialize_creates_schema(db):
    async with db.engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        index_sql = (await conn.execute(text(
            "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = 'uq_matches_pending_pair'"
        ))).scalar()
    
    assert {'participants', 'participant_ratings', 'matches',
            'rating_adjustments', 'admin_audit_log'} <= set(tables)
    assert index_sql.upper().startswith("CREATE UNIQUE INDEX")
    assert "status = 'PENDING'" in index_sql


@pytest.mark.asyncio
async def test_sqlite_file_database_uses_wal_and_separate_writer(db):
    assert db.write_engine is not db.engine
    async with db.get_session() as session:
        mode = (await session.execute(text("PRAGMA journal_mode"))).scalar()
    assert mode.lower() == "wal"


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as session:
            await session.execute(text(
                "INSERT INTO participants (discord_id, username, is_admin, is_banned) "
                "VALUES (77, 'temp', 0, 0)"
            ))
            raise RuntimeError("abort")
    
    assert await db.get_participant_by_discord_id(77) is None


@pytest.mark.asyncio
async def test_in_memory_database_shares_one_engine():
    database = Database("sqlite:///:memory:")
    await database.initialize()
    try:
        assert database.write_engine is database.engine
    finally:
        await database.close()
