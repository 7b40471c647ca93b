import json
import time
from typing import List, Optional

import aiosqlite

_COLUMNS = (
    "sequence, difficulty, era, base_reward, status, winner_id, winning_value, "
    "winning_nonce, pool_snapshot, total_attempts, total_participations, created_at, locked_at, closed_at"
)


def _row_to_dict(row) -> dict:
    return {
        "sequence": row[0],
        "difficulty": row[1],
        "era": row[2],
        "base_reward": row[3],
        "status": row[4],
        "winner_id": row[5],
        "winning_value": row[6],
        "winning_nonce": row[7],
        "pool_snapshot": json.loads(row[8]) if row[8] else [],
        "total_attempts": row[9],
        "total_participations": row[10],
        "created_at": row[11],
        "locked_at": row[12],
        "closed_at": row[13],
    }


class RoundRepo:
    """CRUD and conditional state transitions for the rounds table.

    Every transition is a single UPDATE guarded by the expected prior
    state; the returned bool tells the caller whether it won.
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def insert(self, sequence: int, difficulty: int, era: int, base_reward: float) -> dict:
        """Insert an open round. Raises sqlite3.IntegrityError when the
        sequence already exists or another round is still open/locked."""
        now = time.time()
        await self._db.execute(
            "INSERT INTO rounds (sequence, difficulty, era, base_reward, status, created_at) "
            "VALUES (?, ?, ?, ?, 'open', ?)",
            (sequence, difficulty, era, base_reward, now),
        )
        return await self.get(sequence)

    async def get(self, sequence: int) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM rounds WHERE sequence = ?", (sequence,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def get_active(self) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM rounds WHERE status IN ('open', 'locked') "
            "ORDER BY sequence DESC LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def find_won(self, winner_id: str, value: str, nonce: int) -> Optional[dict]:
        """Locked or closed round won by ``winner_id`` with this exact proof."""
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM rounds "
            "WHERE winner_id = ? AND winning_value = ? AND winning_nonce = ? AND status != 'open' "
            "ORDER BY sequence DESC LIMIT 1",
            (winner_id, value, nonce),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def max_sequence(self) -> int:
        async with self._db.execute("SELECT MAX(sequence) FROM rounds") as cursor:
            row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def try_lock(self, sequence: int, winner_id: str, value: str, nonce: int,
                       snapshot: Optional[List[dict]] = None) -> bool:
        """Open -> locked. The pool snapshot is frozen in the same statement."""
        cursor = await self._db.execute(
            "UPDATE rounds SET status = 'locked', winner_id = ?, winning_value = ?, "
            "winning_nonce = ?, pool_snapshot = ?, locked_at = ? "
            "WHERE sequence = ? AND status = 'open' AND winner_id IS NULL",
            (winner_id, value, nonce, json.dumps(snapshot or []), time.time(), sequence),
        )
        return cursor.rowcount == 1

    async def release_lock(self, sequence: int, winner_id: str) -> bool:
        cursor = await self._db.execute(
            "UPDATE rounds SET status = 'open', winner_id = NULL, winning_value = NULL, "
            "winning_nonce = NULL, pool_snapshot = NULL, locked_at = NULL "
            "WHERE sequence = ? AND status = 'locked' AND winner_id = ?",
            (sequence, winner_id),
        )
        return cursor.rowcount == 1

    async def close(self, sequence: int, winner_id: str) -> bool:
        cursor = await self._db.execute(
            "UPDATE rounds SET status = 'closed', closed_at = ? "
            "WHERE sequence = ? AND status = 'locked' AND winner_id = ?",
            (time.time(), sequence, winner_id),
        )
        return cursor.rowcount == 1

    async def add_attempts(self, sequence: int, attempts: int):
        await self._db.execute(
            "UPDATE rounds SET total_attempts = total_attempts + ? WHERE sequence = ?",
            (attempts, sequence),
        )

    async def add_participation(self, sequence: int):
        await self._db.execute(
            "UPDATE rounds SET total_participations = total_participations + 1 WHERE sequence = ?",
            (sequence,),
        )

    async def list_locked(self, older_than: float = 0.0) -> List[dict]:
        cutoff = time.time() - older_than
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM rounds WHERE status = 'locked' AND locked_at <= ? "
            "ORDER BY sequence",
            (cutoff,),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def list_closed(self, limit: int = 10) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM rounds WHERE status = 'closed' "
            "ORDER BY sequence DESC LIMIT ?",
            (limit,),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def count(self, status: Optional[str] = None) -> int:
        if status:
            async with self._db.execute(
                "SELECT COUNT(*) FROM rounds WHERE status = ?", (status,)
            ) as cursor:
                row = await cursor.fetchone()
        else:
            async with self._db.execute("SELECT COUNT(*) FROM rounds") as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0
