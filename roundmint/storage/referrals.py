import time
from typing import List, Optional

import aiosqlite


class ReferralRepo:
    """Audit trail of referral commissions."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record(
        self,
        referrer_id: str,
        referred_id: str,
        commission: float,
        round_sequence: Optional[int] = None,
        source: str = "mining",
    ):
        await self._db.execute(
            "INSERT INTO referral_commissions (referrer_id, referred_id, round_sequence, "
            "commission, source, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (referrer_id, referred_id, round_sequence, commission, source, time.time()),
        )

    async def list_for_referrer(self, referrer_id: str, limit: int = 100) -> List[dict]:
        results = []
        async with self._db.execute(
            "SELECT referred_id, round_sequence, commission, source, created_at "
            "FROM referral_commissions WHERE referrer_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (referrer_id, limit),
        ) as cursor:
            async for row in cursor:
                results.append({
                    "referred_id": row[0],
                    "round_sequence": row[1],
                    "commission": row[2],
                    "source": row[3],
                    "created_at": row[4],
                })
        return results

    async def total_for_referrer(self, referrer_id: str) -> float:
        async with self._db.execute(
            "SELECT COALESCE(SUM(commission), 0.0) FROM referral_commissions WHERE referrer_id = ?",
            (referrer_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0.0
