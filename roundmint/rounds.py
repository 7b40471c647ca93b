"""
rounds.py - Round lifecycle manager.

Exactly one round is open or locked at any time (enforced by a partial
unique index). A round moves Open -> Locked -> Closed:

    open    -- participants join and race for a qualifying proof
    locked  -- one claimant won the conditional UPDATE; payout pending
    closed  -- settled, participants purged, next round may be created

Round creation is optimistic: compute the next sequence, INSERT, and on a
uniqueness conflict re-read whatever the concurrent winner created.
"""

import logging
import sqlite3
import time
from typing import TYPE_CHECKING, List, Optional

from roundmint import emission
from roundmint.config import EngineConfig
from roundmint.errors import AlreadyClaimedError, NoActiveRoundError, SupplyExhaustedError

if TYPE_CHECKING:
    from roundmint.rewards import RewardDistributor
    from roundmint.storage import StorageManager

logger = logging.getLogger("rounds")


class RoundLifecycleManager:
    """Creates, claims and finalizes rounds."""

    def __init__(self, storage: "StorageManager", rewards: "RewardDistributor",
                 cfg: Optional[EngineConfig] = None):
        self._storage = storage
        self._repo = storage.rounds
        self._rewards = rewards
        self._cfg = cfg or EngineConfig()

    async def get_active(self) -> Optional[dict]:
        return await self._repo.get_active()

    async def get(self, sequence: int) -> Optional[dict]:
        return await self._repo.get(sequence)

    async def get_or_create_active_round(self) -> dict:
        while True:
            active = await self._repo.get_active()
            if active is not None:
                return active
            try:
                async with self._storage.transaction():
                    sequence = await self._repo.max_sequence() + 1
                    params = emission.round_params(sequence, self._cfg)
                    created = await self._repo.insert(
                        sequence, params["difficulty"], params["era"], params["base_reward"],
                    )
            except sqlite3.IntegrityError:
                logger.debug("Round creation lost to a concurrent caller, re-reading")
                continue
            logger.info(
                "Round %d opened: difficulty=%d era=%d reward=%.4f",
                sequence, created["difficulty"], created["era"], created["base_reward"],
            )
            return created

    async def claim_round(self, sequence: int, claimant_id: str, value: str, nonce: int) -> dict:
        """Lock the round for ``claimant_id``. Only one concurrent caller wins;
        a repeated claim by the winner returns the round it already holds.

        The online pool is purged of stale entries and frozen onto the round
        in the same transaction as the lock.
        """
        cutoff = time.time() - self._cfg.heartbeat_timeout
        async with self._storage.transaction():
            current = await self._repo.get(sequence)
            if current is None:
                raise NoActiveRoundError(context={"round": sequence})
            await self._storage.participants.delete_stale(cutoff, round_sequence=sequence)
            live = await self._storage.participants.list_live(sequence, cutoff)
            snapshot = [
                {"account_id": e["account_id"], "mode": e["mode"], "energy_spent": e["energy_spent"]}
                for e in live
            ]
            won = await self._repo.try_lock(sequence, claimant_id, value, nonce, snapshot)
            if won:
                locked = await self._repo.get(sequence)
        if not won and current["winner_id"] == claimant_id:
            # Repeat claim by the current holder
            logger.debug("Round %d already claimed by %s (status=%s)",
                         sequence, claimant_id, current["status"])
            return current
        if not won:
            logger.info("Claim on round %d by %s lost (status=%s)",
                        sequence, claimant_id, current["status"])
            raise AlreadyClaimedError(context={"round": sequence, "status": current["status"]})
        logger.info("Round %d locked by %s (pool of %d online)", sequence, claimant_id, len(snapshot))
        return locked

    async def finalize_round(self, sequence: int) -> dict:
        """Pay out and close a locked round. Safe to call more than once."""
        async with self._storage.transaction():
            existing = await self._storage.settlements.get(sequence)
            if existing is not None:
                logger.debug("Round %d already settled, returning prior result", sequence)
                return existing
            round_ = await self._repo.get(sequence)
            if round_ is None or round_["status"] != "locked":
                raise NoActiveRoundError(
                    message="round is not awaiting settlement",
                    context={"round": sequence},
                )
            settlement = await self._rewards.distribute(round_)
            await self._repo.close(sequence, round_["winner_id"])
            purged = await self._storage.participants.delete_round(sequence)
        logger.info("Round %d closed, %d participant(s) purged", sequence, purged)
        return settlement

    async def release_claim(self, sequence: int, winner_id: str) -> bool:
        async with self._storage.transaction():
            released = await self._repo.release_lock(sequence, winner_id)
        if released:
            logger.info("Round %d claim by %s released, round is open again", sequence, winner_id)
        return released

    async def recover_locked_rounds(self, older_than: float = 0.0) -> int:
        """Finalize rounds left locked by a failed request. Returns rounds closed."""
        recovered = 0
        for round_ in await self._repo.list_locked(older_than=older_than):
            try:
                await self.finalize_round(round_["sequence"])
                recovered += 1
            except SupplyExhaustedError:
                await self.release_claim(round_["sequence"], round_["winner_id"])
            except Exception:
                logger.exception("Recovery of round %d failed", round_["sequence"])
        if recovered:
            logger.info("Recovered %d locked round(s)", recovered)
        return recovered

    async def recent_closed(self, limit: int = 10) -> List[dict]:
        return await self._repo.list_closed(limit=limit)

    @staticmethod
    def snapshot(round_: dict, online: int = 0) -> dict:
        """Client-facing view of a round."""
        return {
            "blockNumber": round_["sequence"],
            "difficulty": round_["difficulty"],
            "reward": round_["base_reward"],
            "era": round_["era"],
            "status": round_["status"],
            "onlineMiners": online,
            "totalAttempts": round_["total_attempts"],
            "totalParticipations": round_["total_participations"],
        }
