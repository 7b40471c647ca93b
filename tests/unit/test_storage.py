"""
test_storage.py - StorageManager schema setup and transaction semantics.
"""

import sqlite3

import aiosqlite
import pytest

from roundmint.storage import SCHEMA_SQL, SCHEMA_VERSION, StorageManager

pytestmark = pytest.mark.asyncio


async def test_schema_version_recorded(storage):
    async with storage.db.execute("SELECT MAX(version) FROM schema_version") as cursor:
        row = await cursor.fetchone()
    assert row[0] == SCHEMA_VERSION


async def test_reinitialize_is_noop(tmp_path):
    path = str(tmp_path / "ledger.db")
    first = StorageManager(path)
    await first.initialize()
    await first.close()

    second = StorageManager(path)
    await second.initialize()
    async with second.db.execute("SELECT COUNT(*) FROM schema_version") as cursor:
        row = await cursor.fetchone()
    assert row[0] == 1
    await second.close()


async def test_v1_database_gains_pool_snapshot(tmp_path):
    path = str(tmp_path / "v1.db")
    async with aiosqlite.connect(path) as db:
        await db.executescript(SCHEMA_SQL.replace("    pool_snapshot        TEXT,\n", ""))
        await db.execute("INSERT INTO schema_version (version, applied_at) VALUES (1, 0)")
        await db.commit()

    storage = StorageManager(path)
    await storage.initialize()
    async with storage.db.execute("PRAGMA table_info(rounds)") as cursor:
        columns = {row[1] for row in await cursor.fetchall()}
    assert "pool_snapshot" in columns
    async with storage.transaction():
        await storage.rounds.insert(1, 4, 0, 1000.0)
        assert await storage.rounds.try_lock(1, "acct-a", "00ab", 7, [])
    assert (await storage.rounds.get(1))["pool_snapshot"] == []
    await storage.close()


async def test_transaction_rolls_back_on_error(storage):
    with pytest.raises(RuntimeError):
        async with storage.transaction():
            await storage.rounds.insert(1, 4, 0, 1000.0)
            raise RuntimeError("boom")
    assert await storage.rounds.get(1) is None


async def test_nested_transaction_joins_outer(storage):
    async with storage.transaction():
        await storage.rounds.insert(1, 4, 0, 1000.0)
        async with storage.transaction():
            await storage.supply.ensure(100.0)
    assert await storage.rounds.get(1) is not None
    assert (await storage.supply.get())["cap"] == 100.0


async def test_supply_check_constraint(storage):
    async with storage.transaction():
        await storage.supply.ensure(10.0)
        assert await storage.supply.add_minted(10.0, 1)
        assert not await storage.supply.add_minted(0.5, 2)
    with pytest.raises(sqlite3.IntegrityError):
        async with storage.transaction():
            await storage.db.execute("UPDATE supply SET minted_total = 11.0 WHERE id = 1")
