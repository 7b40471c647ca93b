import time
from typing import Optional

import aiosqlite


class SupplyRepo:
    """Single-row mint counter (id = 1)."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def ensure(self, cap: float) -> dict:
        await self._db.execute(
            "INSERT OR IGNORE INTO supply (id, minted_total, cap, last_round, updated_at) "
            "VALUES (1, 0.0, ?, 0, ?)",
            (cap, time.time()),
        )
        return await self.get()

    async def get(self) -> Optional[dict]:
        async with self._db.execute(
            "SELECT minted_total, cap, last_round, updated_at FROM supply WHERE id = 1"
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "minted_total": row[0],
            "cap": row[1],
            "last_round": row[2],
            "updated_at": row[3],
        }

    async def add_minted(self, amount: float, round_sequence: int) -> bool:
        """Atomically add to minted_total. Refused (False) if it would pass the cap."""
        cursor = await self._db.execute(
            "UPDATE supply SET minted_total = minted_total + ?, last_round = ?, updated_at = ? "
            "WHERE id = 1 AND minted_total + ? <= cap",
            (amount, round_sequence, time.time(), amount),
        )
        return cursor.rowcount == 1
