"""
participants.py - Participant registry for the active round.

Entries are keyed by (round, account). Join/heartbeat/leave each touch only
the caller's row plus counter increments on the round, so concurrent users
never overwrite each other. An entry whose last heartbeat is older than the
timeout is treated as absent everywhere and purged before any online count.
"""

import logging
import time
from typing import TYPE_CHECKING, List, Optional

from roundmint.config import EngineConfig
from roundmint.errors import (
    InsufficientEnergyError,
    InvalidModeError,
    ModeLockedError,
    NoActiveRoundError,
)

if TYPE_CHECKING:
    from roundmint.energy import EnergyAccount
    from roundmint.storage import StorageManager

logger = logging.getLogger("participants")

REASON_ENERGY = "energy"
REASON_TIMEOUT = "timeout"
REASON_NOT_JOINED = "not_joined"


class ParticipantRegistry:
    """Join, heartbeat, leave and stale eviction of round participants."""

    def __init__(self, storage: "StorageManager", energy: "EnergyAccount",
                 cfg: Optional[EngineConfig] = None):
        self._storage = storage
        self._repo = storage.participants
        self._rounds = storage.rounds
        self._energy = energy
        self._cfg = cfg or EngineConfig()

    def _cutoff(self) -> float:
        return time.time() - self._cfg.heartbeat_timeout

    def mode_info(self, mode: str) -> dict:
        mode_cfg = self._cfg.mode(mode)
        if mode_cfg is None:
            raise InvalidModeError(context={"mode": mode, "modes": sorted(self._cfg.modes)})
        return {
            "mode": mode,
            "label": mode_cfg.label,
            "energy_cost": mode_cfg.energy_cost,
            "multiplier": mode_cfg.multiplier,
        }

    async def join(self, round_: dict, account_id: str, mode: str) -> dict:
        info = self.mode_info(mode)
        async with self._storage.transaction():
            current = await self._rounds.get(round_["sequence"])
            if current is None or current["status"] != "open":
                raise NoActiveRoundError(context={"round": round_["sequence"]})
            acct = await self._energy.regenerate(account_id)
            if mode not in acct["unlocked_modes"]:
                raise ModeLockedError(context={"mode": mode})
            if acct["energy"] < info["energy_cost"]:
                raise InsufficientEnergyError(
                    context={"required": info["energy_cost"], "current": acct["energy"]},
                )
            entry = await self._repo.upsert(round_["sequence"], account_id, acct["identity"], mode)
            await self._rounds.add_participation(round_["sequence"])
        logger.info("Account %s joined round %d mode=%s", account_id, round_["sequence"], mode)
        return {"entry": entry, "mode": info, "energy": acct["energy"], "max_energy": acct["max_energy"]}

    async def heartbeat(self, round_: dict, account_id: str) -> dict:
        """Drain one tick of energy and refresh liveness.

        Returns ``{"continue": bool, "reason"?, "energy", "max_energy", "tokens"}``.
        ``continue`` False means the caller must stop polling.
        """
        sequence = round_["sequence"]
        async with self._storage.transaction():
            acct = await self._energy.regenerate(account_id)
            entry = await self._repo.get(sequence, account_id)
            reason = None
            if entry is None:
                reason = REASON_NOT_JOINED
            elif entry["last_heartbeat"] <= self._cutoff():
                await self._repo.delete(sequence, account_id)
                reason = REASON_TIMEOUT
            else:
                mode_cfg = self._cfg.mode(entry["mode"])
                if mode_cfg is None or not await self._energy.debit(account_id, mode_cfg.energy_cost):
                    await self._repo.delete(sequence, account_id)
                    reason = REASON_ENERGY
                else:
                    await self._repo.touch(sequence, account_id, mode_cfg.energy_cost)
                    await self._rounds.add_attempts(
                        sequence, self._cfg.attempts_per_tick * mode_cfg.multiplier,
                    )
                    acct["energy"] -= mode_cfg.energy_cost

        result = {
            "continue": reason is None,
            "energy": acct["energy"],
            "max_energy": acct["max_energy"],
            "tokens": round(acct["tokens"], 6),
        }
        if reason is not None:
            result["reason"] = reason
            if reason != REASON_NOT_JOINED:
                logger.info("Evicted %s from round %d (%s)", account_id, sequence, reason)
        return result

    async def leave(self, round_: dict, account_id: str) -> bool:
        async with self._storage.transaction():
            removed = await self._repo.delete(round_["sequence"], account_id)
        if removed:
            logger.info("Account %s left round %d", account_id, round_["sequence"])
        return removed

    async def evict_stale(self, round_: Optional[dict] = None) -> int:
        """Purge entries past the heartbeat timeout (all rounds when round_ is None)."""
        sequence = round_["sequence"] if round_ else None
        async with self._storage.transaction():
            evicted = await self._repo.delete_stale(self._cutoff(), round_sequence=sequence)
        if evicted:
            logger.info("Evicted %d stale participant(s)%s", evicted,
                        f" from round {sequence}" if sequence else "")
        return evicted

    async def list_online(self, round_: dict) -> List[dict]:
        await self.evict_stale(round_)
        return await self._repo.list_live(round_["sequence"], self._cutoff())

    async def count_online(self, round_: dict) -> int:
        await self.evict_stale(round_)
        return await self._repo.count_live(round_["sequence"], self._cutoff())

    async def get_entry(self, round_: dict, account_id: str) -> Optional[dict]:
        entry = await self._repo.get(round_["sequence"], account_id)
        if entry is None or entry["last_heartbeat"] <= self._cutoff():
            return None
        return entry
