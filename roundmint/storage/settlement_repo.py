import time
from typing import List, Optional

import aiosqlite

_COLUMNS = (
    "round_sequence, finder_id, finder_reward, pool_count, pool_share_each, "
    "total_paid, capped_reward, settled_at"
)


def _row_to_dict(row) -> dict:
    return {
        "round_sequence": row[0],
        "finder_id": row[1],
        "finder_reward": row[2],
        "pool_count": row[3],
        "pool_share_each": row[4],
        "total_paid": row[5],
        "capped_reward": row[6],
        "settled_at": row[7],
    }


class SettlementRepo:
    """One settlement per round; the UNIQUE round_sequence is the idempotency key."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        round_sequence: int,
        finder_id: str,
        finder_reward: float,
        pool_count: int,
        pool_share_each: float,
        total_paid: float,
        capped_reward: float,
    ) -> dict:
        now = time.time()
        await self._db.execute(
            "INSERT INTO settlements (round_sequence, finder_id, finder_reward, pool_count, "
            "pool_share_each, total_paid, capped_reward, settled_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (round_sequence, finder_id, finder_reward, pool_count, pool_share_each,
             total_paid, capped_reward, now),
        )
        return {
            "round_sequence": round_sequence,
            "finder_id": finder_id,
            "finder_reward": finder_reward,
            "pool_count": pool_count,
            "pool_share_each": pool_share_each,
            "total_paid": total_paid,
            "capped_reward": capped_reward,
            "settled_at": now,
        }

    async def get(self, round_sequence: int) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM settlements WHERE round_sequence = ?",
            (round_sequence,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def list_all(self, limit: Optional[int] = None, offset: int = 0) -> List[dict]:
        results = []
        query = f"SELECT {_COLUMNS} FROM settlements ORDER BY round_sequence DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params = (limit, offset)
        async with self._db.execute(query, params) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def count(self) -> int:
        async with self._db.execute("SELECT COUNT(*) FROM settlements") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
