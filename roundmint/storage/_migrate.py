"""Schema versioning for the roundmint database.

SCHEMA_SQL is idempotent and creates anything missing. Column changes to
existing tables go in _STEPS, keyed by the version that introduced them.
"""

import logging
import time

from ._schema import SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger("storage")


async def _columns(db, table: str) -> set:
    async with db.execute(f"PRAGMA table_info({table})") as cursor:
        return {row[1] for row in await cursor.fetchall()}


async def _add_pool_snapshot(db):
    if "pool_snapshot" not in await _columns(db, "rounds"):
        await db.execute("ALTER TABLE rounds ADD COLUMN pool_snapshot TEXT")


_STEPS = {
    2: _add_pool_snapshot,
}


async def _installed_version(db, log) -> int:
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            row = await cursor.fetchone()
    except Exception:
        log.debug("schema_version missing, treating database as empty")
        return 0
    return row[0] if row and row[0] is not None else 0


async def run_migrations(db, log=logger):
    installed = await _installed_version(db, log)
    if installed >= SCHEMA_VERSION:
        log.debug("Schema at v%d, nothing to do", installed)
        return

    log.info("Upgrading schema v%d -> v%d", installed, SCHEMA_VERSION)
    await db.executescript(SCHEMA_SQL)
    for version in sorted(_STEPS):
        if version > installed:
            await _STEPS[version](db)
    await db.execute(
        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
        (SCHEMA_VERSION, time.time()),
    )
    await db.commit()
