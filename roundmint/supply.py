"""
supply.py - Global supply ledger.

A single-row, monotonically increasing mint counter with a hard cap.
``record_mint`` is one conditional UPDATE, so minted_total can never pass
the cap even if a caller forgets to clamp first.
"""

import logging
from typing import TYPE_CHECKING

from roundmint.errors import SupplyExhaustedError

if TYPE_CHECKING:
    from roundmint.storage import StorageManager

logger = logging.getLogger("supply")


class SupplyLedger:
    """Mint counter service backed by SupplyRepo."""

    def __init__(self, storage: "StorageManager", cap: float):
        self._storage = storage
        self._repo = storage.supply
        self.cap = cap

    async def setup_defaults(self):
        """Create the singleton row at bootstrap (no-op when it already exists)."""
        async with self._storage.transaction():
            row = await self._repo.ensure(self.cap)
        if row["cap"] != self.cap:
            logger.warning(
                "Configured cap %.2f differs from stored cap %.2f; stored cap wins",
                self.cap, row["cap"],
            )
            self.cap = row["cap"]
        logger.info("Supply ledger ready: minted=%.4f cap=%.2f", row["minted_total"], row["cap"])

    async def snapshot(self) -> dict:
        row = await self._repo.get()
        return {
            "minted_total": row["minted_total"],
            "cap": row["cap"],
            "headroom": max(row["cap"] - row["minted_total"], 0.0),
            "last_round": row["last_round"],
        }

    async def headroom(self) -> float:
        row = await self._repo.get()
        return max(row["cap"] - row["minted_total"], 0.0)

    async def record_mint(self, amount: float, round_sequence: int):
        """Add ``amount`` to minted_total inside the caller's transaction.

        The caller must already have clamped ``amount`` to the headroom it
        observed in the same transaction.
        """
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        if amount == 0:
            return
        async with self._storage.transaction():
            if not await self._repo.add_minted(amount, round_sequence):
                logger.warning(
                    "Mint of %.6f for round %d refused: cap reached", amount, round_sequence,
                )
                raise SupplyExhaustedError(context={"round": round_sequence, "amount": amount})
        logger.debug("Minted %.6f for round %d", amount, round_sequence)
