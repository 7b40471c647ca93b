import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

try:
    import aiosqlite
except ImportError:
    raise ImportError(
        "aiosqlite is required for the storage layer. "
        "Install with: pip install aiosqlite"
    )

from ._schema import SCHEMA_VERSION
from ._migrate import run_migrations
from .accounts import AccountRepo
from .rounds import RoundRepo
from .participants import ParticipantRepo
from .supply import SupplyRepo
from .settlement_repo import SettlementRepo
from .activity import ActivityRepo
from .referrals import ReferralRepo
from .shop import ShopCreditRepo

logger = logging.getLogger("storage")


class StorageManager:
    """Top-level manager: opens the database, runs migrations, exposes repos.

    All repo write methods assume they run inside ``transaction()``. The
    transaction holds a process-wide lock and a SQLite write lock
    (BEGIN IMMEDIATE), commits on success and rolls back on any exception.
    Nested use from the same task joins the outer transaction.
    """

    def __init__(self, db_path: str = "roundmint.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None
        self.accounts: Optional[AccountRepo] = None
        self.rounds: Optional[RoundRepo] = None
        self.participants: Optional[ParticipantRepo] = None
        self.supply: Optional[SupplyRepo] = None
        self.settlements: Optional[SettlementRepo] = None
        self.activity: Optional[ActivityRepo] = None
        self.referrals: Optional[ReferralRepo] = None
        self.shop_credits: Optional[ShopCreditRepo] = None

    async def initialize(self):
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await run_migrations(self._db, logger)

        self.accounts = AccountRepo(self._db)
        self.rounds = RoundRepo(self._db)
        self.participants = ParticipantRepo(self._db)
        self.supply = SupplyRepo(self._db)
        self.settlements = SettlementRepo(self._db)
        self.activity = ActivityRepo(self._db)
        self.referrals = ReferralRepo(self._db)
        self.shop_credits = ShopCreditRepo(self._db)

        logger.info("Storage initialized: %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    @property
    def db(self) -> aiosqlite.Connection:
        return self._db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        task = asyncio.current_task()
        if self._tx_owner is not None and self._tx_owner is task:
            yield self._db
            return
        async with self._write_lock:
            self._tx_owner = task
            try:
                await self._db.execute("BEGIN IMMEDIATE")
                try:
                    yield self._db
                except BaseException:
                    await self._db.rollback()
                    raise
                else:
                    await self._db.commit()
            finally:
                self._tx_owner = None

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Storage closed")
