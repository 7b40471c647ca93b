import time
from typing import List, Optional

import aiosqlite


class ActivityRepo:
    """Insert + paginated reads for the mining_activity log."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record(
        self,
        account_id: str,
        round_sequence: int,
        mode: str,
        tokens_earned: float,
        energy_spent: int = 0,
        is_finder: bool = False,
        digest: Optional[str] = None,
        nonce: Optional[int] = None,
    ):
        await self._db.execute(
            "INSERT INTO mining_activity (account_id, round_sequence, mode, energy_spent, "
            "tokens_earned, is_finder, digest, nonce, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (account_id, round_sequence, mode, energy_spent, tokens_earned, int(is_finder),
             digest, nonce, time.time()),
        )

    async def list_for_account(self, account_id: str, limit: int = 20, offset: int = 0) -> List[dict]:
        results = []
        async with self._db.execute(
            "SELECT id, round_sequence, mode, energy_spent, tokens_earned, is_finder, digest, "
            "nonce, created_at FROM mining_activity WHERE account_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (account_id, limit, offset),
        ) as cursor:
            async for row in cursor:
                results.append({
                    "id": row[0],
                    "round_sequence": row[1],
                    "mode": row[2],
                    "energy_spent": row[3],
                    "tokens_earned": row[4],
                    "is_finder": bool(row[5]),
                    "digest": row[6],
                    "nonce": row[7],
                    "created_at": row[8],
                })
        return results

    async def count_for_account(self, account_id: str) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM mining_activity WHERE account_id = ?", (account_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
