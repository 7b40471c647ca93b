import time
from typing import List, Optional

import aiosqlite

_COLUMNS = (
    "round_sequence, account_id, identity, mode, joined_at, last_heartbeat, ticks, energy_spent"
)


def _row_to_dict(row) -> dict:
    return {
        "round_sequence": row[0],
        "account_id": row[1],
        "identity": row[2],
        "mode": row[3],
        "joined_at": row[4],
        "last_heartbeat": row[5],
        "ticks": row[6],
        "energy_spent": row[7],
    }


class ParticipantRepo:
    """Keyed (round, account) registry. Each write touches one row only."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def upsert(self, round_sequence: int, account_id: str, identity: str, mode: str) -> dict:
        now = time.time()
        await self._db.execute(
            "INSERT INTO participants (round_sequence, account_id, identity, mode, joined_at, last_heartbeat) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(round_sequence, account_id) DO UPDATE SET "
            "identity=excluded.identity, mode=excluded.mode, joined_at=excluded.joined_at, "
            "last_heartbeat=excluded.last_heartbeat, ticks=0, energy_spent=0",
            (round_sequence, account_id, identity, mode, now, now),
        )
        return await self.get(round_sequence, account_id)

    async def get(self, round_sequence: int, account_id: str) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM participants WHERE round_sequence = ? AND account_id = ?",
            (round_sequence, account_id),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def touch(self, round_sequence: int, account_id: str, energy_cost: int) -> bool:
        cursor = await self._db.execute(
            "UPDATE participants SET last_heartbeat = ?, ticks = ticks + 1, "
            "energy_spent = energy_spent + ? WHERE round_sequence = ? AND account_id = ?",
            (time.time(), energy_cost, round_sequence, account_id),
        )
        return cursor.rowcount == 1

    async def delete(self, round_sequence: int, account_id: str) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM participants WHERE round_sequence = ? AND account_id = ?",
            (round_sequence, account_id),
        )
        return cursor.rowcount == 1

    async def delete_stale(self, cutoff: float, round_sequence: Optional[int] = None) -> int:
        if round_sequence is None:
            cursor = await self._db.execute(
                "DELETE FROM participants WHERE last_heartbeat <= ?", (cutoff,)
            )
        else:
            cursor = await self._db.execute(
                "DELETE FROM participants WHERE round_sequence = ? AND last_heartbeat <= ?",
                (round_sequence, cutoff),
            )
        return cursor.rowcount

    async def delete_round(self, round_sequence: int) -> int:
        cursor = await self._db.execute(
            "DELETE FROM participants WHERE round_sequence = ?", (round_sequence,)
        )
        return cursor.rowcount

    async def list_live(self, round_sequence: int, cutoff: float) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM participants "
            "WHERE round_sequence = ? AND last_heartbeat > ? ORDER BY joined_at",
            (round_sequence, cutoff),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def count_live(self, round_sequence: int, cutoff: float) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM participants WHERE round_sequence = ? AND last_heartbeat > ?",
            (round_sequence, cutoff),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
