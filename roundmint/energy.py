"""
energy.py - Per-user energy account.

Energy regenerates lazily: whenever an account is observed, whole seconds
elapsed since ``energy_updated_at`` are converted into energy (capped at
``max_energy``) and the marker advances by exactly those seconds, so the
fractional remainder carries over to the next observation.
"""

import logging
import math
import time
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from roundmint.storage import StorageManager

logger = logging.getLogger("energy")


def regenerated(energy: int, max_energy: int, updated_at: float, now: float,
                per_second: int = 1):
    """Pure regeneration step. Returns (new_energy, new_updated_at)."""
    elapsed = math.floor(now - updated_at)
    if elapsed <= 0:
        return energy, updated_at
    if energy >= max_energy:
        return energy, updated_at + elapsed
    return min(energy + elapsed * per_second, max_energy), updated_at + elapsed


class EnergyAccount:
    """Regeneration and debit of account energy."""

    def __init__(self, storage: "StorageManager", regen_per_sec: int = 1):
        self._storage = storage
        self._accounts = storage.accounts
        self._regen = regen_per_sec

    async def regenerate(self, account_id: str, now: Optional[float] = None) -> dict:
        """Apply regeneration and return the fresh account row."""
        now = time.time() if now is None else now
        async with self._storage.transaction():
            acct = await self._accounts.get(account_id)
            if acct is None:
                raise KeyError(f"Account {account_id} not found")
            energy, marker = regenerated(
                acct["energy"], acct["max_energy"], acct["energy_updated_at"], now, self._regen,
            )
            if marker != acct["energy_updated_at"]:
                await self._accounts.set_energy(account_id, energy, marker)
                acct["energy"] = energy
                acct["energy_updated_at"] = marker
        return acct

    async def debit(self, account_id: str, amount: int) -> bool:
        """Atomically take ``amount`` energy. False when the balance is short."""
        async with self._storage.transaction():
            ok = await self._accounts.debit_energy(account_id, amount)
        if not ok:
            logger.debug("Energy debit of %d refused for %s", amount, account_id)
        return ok
