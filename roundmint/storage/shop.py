import sqlite3
import time
from typing import Optional

import aiosqlite


class ShopCreditRepo:
    """Applied payment attestations, unique per attestation id."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record(self, attestation_id: str, account_id: str, item: str) -> bool:
        """Returns False if this attestation was already applied."""
        try:
            await self._db.execute(
                "INSERT INTO shop_credits (attestation_id, account_id, item, created_at) "
                "VALUES (?, ?, ?, ?)",
                (attestation_id, account_id, item, time.time()),
            )
        except sqlite3.IntegrityError:
            return False
        return True

    async def get(self, attestation_id: str) -> Optional[dict]:
        async with self._db.execute(
            "SELECT attestation_id, account_id, item, created_at FROM shop_credits "
            "WHERE attestation_id = ?",
            (attestation_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "attestation_id": row[0],
            "account_id": row[1],
            "item": row[2],
            "created_at": row[3],
        }
