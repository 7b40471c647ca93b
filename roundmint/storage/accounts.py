import json
import logging
import time
from typing import List, Optional

import aiosqlite

logger = logging.getLogger("storage")

_COLUMNS = (
    "account_id, identity, username, energy, max_energy, energy_updated_at, "
    "tokens, total_mined, mining_sessions, unlocked_modes, referral_code, "
    "referred_by, referral_count, referral_earnings, api_key, created_at, updated_at"
)


def _row_to_dict(row) -> dict:
    return {
        "account_id": row[0],
        "identity": row[1],
        "username": row[2],
        "energy": row[3],
        "max_energy": row[4],
        "energy_updated_at": row[5],
        "tokens": row[6],
        "total_mined": row[7],
        "mining_sessions": row[8],
        "unlocked_modes": json.loads(row[9]),
        "referral_code": row[10],
        "referred_by": row[11],
        "referral_count": row[12],
        "referral_earnings": row[13],
        "api_key": row[14],
        "created_at": row[15],
        "updated_at": row[16],
    }


class AccountRepo:
    """CRUD operations for the accounts table.

    Balance mutations are single-statement relative updates
    (``tokens = tokens + ?``), never read-modify-write from Python.
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def create(
        self,
        account_id: str,
        identity: str,
        referral_code: str,
        energy: int,
        max_energy: int,
        username: str = "",
        api_key: str = "",
    ) -> dict:
        now = time.time()
        await self._db.execute(
            "INSERT INTO accounts (account_id, identity, username, energy, max_energy, "
            "energy_updated_at, referral_code, api_key, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (account_id, identity, username, energy, max_energy, now, referral_code, api_key, now, now),
        )
        return await self.get(account_id)

    async def _fetch_one(self, where: str, params: tuple) -> Optional[dict]:
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM accounts WHERE {where}", params
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    async def get(self, account_id: str) -> Optional[dict]:
        return await self._fetch_one("account_id = ?", (account_id,))

    async def get_by_identity(self, identity: str) -> Optional[dict]:
        return await self._fetch_one("identity = ?", (identity,))

    async def get_by_api_key(self, api_key: str) -> Optional[dict]:
        if not api_key:
            return None
        return await self._fetch_one("api_key = ? AND api_key != ''", (api_key,))

    async def get_by_referral_code(self, code: str) -> Optional[dict]:
        if not code:
            return None
        return await self._fetch_one("referral_code = ?", (code,))

    async def set_api_key(self, account_id: str, api_key: str):
        await self._db.execute(
            "UPDATE accounts SET api_key = ?, updated_at = ? WHERE account_id = ?",
            (api_key, time.time(), account_id),
        )

    async def set_referrer(self, account_id: str, referral_code: str) -> bool:
        """Link a referrer. Only succeeds while no referrer is recorded yet."""
        cursor = await self._db.execute(
            "UPDATE accounts SET referred_by = ?, updated_at = ? "
            "WHERE account_id = ? AND referred_by IS NULL",
            (referral_code, time.time(), account_id),
        )
        return cursor.rowcount == 1

    async def increment_referral_count(self, account_id: str):
        await self._db.execute(
            "UPDATE accounts SET referral_count = referral_count + 1, updated_at = ? "
            "WHERE account_id = ?",
            (time.time(), account_id),
        )

    async def set_energy(self, account_id: str, energy: int, energy_updated_at: float):
        await self._db.execute(
            "UPDATE accounts SET energy = ?, energy_updated_at = ?, updated_at = ? "
            "WHERE account_id = ?",
            (energy, energy_updated_at, time.time(), account_id),
        )

    async def debit_energy(self, account_id: str, amount: int) -> bool:
        cursor = await self._db.execute(
            "UPDATE accounts SET energy = energy - ?, updated_at = ? "
            "WHERE account_id = ? AND energy >= ?",
            (amount, time.time(), account_id, amount),
        )
        return cursor.rowcount == 1

    async def boost_energy(self, account_id: str, amount: int, raise_capacity: int = 0):
        await self._db.execute(
            "UPDATE accounts SET energy = energy + ?, max_energy = max_energy + ?, updated_at = ? "
            "WHERE account_id = ?",
            (amount, raise_capacity, time.time(), account_id),
        )

    async def credit_reward(self, account_id: str, amount: float):
        await self._db.execute(
            "UPDATE accounts SET tokens = tokens + ?, total_mined = total_mined + ?, "
            "mining_sessions = mining_sessions + 1, updated_at = ? WHERE account_id = ?",
            (amount, amount, time.time(), account_id),
        )

    async def credit_commission(self, account_id: str, amount: float):
        await self._db.execute(
            "UPDATE accounts SET tokens = tokens + ?, referral_earnings = referral_earnings + ?, "
            "updated_at = ? WHERE account_id = ?",
            (amount, amount, time.time(), account_id),
        )

    async def unlock_mode(self, account_id: str, mode: str) -> bool:
        """Add a mode to the unlocked set. Returns False if already unlocked."""
        acct = await self.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")
        modes = acct["unlocked_modes"]
        if mode in modes:
            return False
        modes.append(mode)
        await self._db.execute(
            "UPDATE accounts SET unlocked_modes = ?, updated_at = ? WHERE account_id = ?",
            (json.dumps(modes), time.time(), account_id),
        )
        return True

    async def list_referred(self, referral_code: str, limit: int = 50) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM accounts WHERE referred_by = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (referral_code, limit),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def top_by_tokens(self, limit: int = 100) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM accounts ORDER BY tokens DESC, created_at ASC LIMIT ?",
            (limit,),
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def count_above(self, tokens: float) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM accounts WHERE tokens > ?", (tokens,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def count(self) -> int:
        async with self._db.execute("SELECT COUNT(*) FROM accounts") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
