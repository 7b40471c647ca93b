"""
mining.py - Mining service facade.

Glues rounds, participants, proofs, energy and supply together into the
operations the HTTP layer exposes. Request handlers never talk to the
repositories directly.
"""

import logging
import math
from typing import TYPE_CHECKING, Optional

from roundmint import emission, proof
from roundmint.config import EngineConfig
from roundmint.errors import (
    AlreadyClaimedError,
    InvalidProofError,
    NoActiveRoundError,
    NotJoinedError,
    SupplyExhaustedError,
)
from roundmint.rounds import RoundLifecycleManager

if TYPE_CHECKING:
    from roundmint.energy import EnergyAccount
    from roundmint.participants import ParticipantRegistry
    from roundmint.storage import StorageManager
    from roundmint.supply import SupplyLedger

logger = logging.getLogger("mining")


def settlement_view(settlement: dict) -> dict:
    return {
        "blockNumber": settlement["round_sequence"],
        "finderReward": settlement["finder_reward"],
        "poolMinersCount": settlement["pool_count"],
        "poolShareEach": settlement["pool_share_each"],
        "totalReward": settlement["capped_reward"],
        "totalPaid": settlement["total_paid"],
    }


class MiningService:
    """Request-level mining operations for one authenticated account."""

    def __init__(
        self,
        storage: "StorageManager",
        rounds: RoundLifecycleManager,
        registry: "ParticipantRegistry",
        energy: "EnergyAccount",
        supply: "SupplyLedger",
        cfg: Optional[EngineConfig] = None,
    ):
        self._storage = storage
        self.rounds = rounds
        self.registry = registry
        self._energy = energy
        self._supply = supply
        self._cfg = cfg or EngineConfig()

    async def current_round(self) -> dict:
        round_ = await self.rounds.get_or_create_active_round()
        online = await self.registry.count_online(round_)
        return RoundLifecycleManager.snapshot(round_, online)

    async def join(self, account_id: str, mode: str) -> dict:
        info = self.registry.mode_info(mode)
        round_ = await self.rounds.get_or_create_active_round()
        result = await self.registry.join(round_, account_id, mode)
        round_ = await self.rounds.get(round_["sequence"])
        online = await self.registry.count_online(round_)
        return {
            "block": RoundLifecycleManager.snapshot(round_, online),
            "mode": {
                "id": info["mode"],
                "label": info["label"],
                "energyCost": info["energy_cost"],
                "multiplier": info["multiplier"],
            },
            "energy": result["energy"],
            "maxEnergy": result["max_energy"],
        }

    async def heartbeat(self, account_id: str) -> dict:
        round_ = await self.rounds.get_or_create_active_round()
        result = await self.registry.heartbeat(round_, account_id)
        view = {
            "continue": result["continue"],
            "blockNumber": round_["sequence"],
            "energy": result["energy"],
            "maxEnergy": result["max_energy"],
            "tokens": result["tokens"],
        }
        if "reason" in result:
            view["reason"] = result["reason"]
        return view

    async def submit(self, account_id: str, digest: str, nonce: int,
                     block_number: Optional[int] = None) -> dict:
        """Verify a proof, claim the round and settle it.

        Retries are safe: a caller resubmitting a proof that already won a
        round gets that round's settlement back instead of an error, whether
        or not ``block_number`` is given.
        """
        acct = await self._storage.accounts.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")

        if block_number is not None:
            round_ = await self.rounds.get(block_number)
        else:
            round_ = await self.rounds.get_active()

        if round_ is not None and round_["status"] == "open":
            valid, computed = proof.verify(round_["sequence"], nonce, acct["identity"], round_["difficulty"])
            if valid and digest.lower() == computed:
                await self.rounds.claim_round(round_["sequence"], account_id, computed, nonce)
                return await self._settle(round_["sequence"], account_id)
        elif round_ is not None and round_["winner_id"] == account_id:
            # Retry by the winner: return or complete the original settlement
            return await self._settle(round_["sequence"], account_id)

        if block_number is None:
            # The proof may be for an earlier round this caller already won
            won = await self._storage.rounds.find_won(account_id, digest.lower(), nonce)
            if won is not None:
                logger.debug("Resubmitted proof from %s matches round %d", account_id, won["sequence"])
                return await self._settle(won["sequence"], account_id)

        if round_ is None:
            raise NoActiveRoundError(context={"blockNumber": block_number})
        if round_["status"] != "open":
            raise AlreadyClaimedError(context={"blockNumber": round_["sequence"]})
        logger.info("Rejected proof from %s for round %d (nonce=%d)",
                    account_id, round_["sequence"], nonce)
        raise InvalidProofError(context={
            "blockNumber": round_["sequence"],
            "difficulty": round_["difficulty"],
            "submitted": digest,
            "computed": computed,
        })

    async def _settle(self, sequence: int, account_id: str) -> dict:
        try:
            settlement = await self.rounds.finalize_round(sequence)
        except SupplyExhaustedError:
            await self.rounds.release_claim(sequence, account_id)
            raise
        await self.rounds.get_or_create_active_round()
        return settlement_view(settlement)

    async def leave(self, account_id: str) -> dict:
        round_ = await self.rounds.get_active()
        if round_ is None or not await self.registry.leave(round_, account_id):
            raise NotJoinedError(context={"blockNumber": round_["sequence"] if round_ else None})
        return {"left": True, "blockNumber": round_["sequence"]}

    async def status(self, account_id: str) -> dict:
        acct = await self._energy.regenerate(account_id)
        round_ = await self.rounds.get_active()
        entry = await self.registry.get_entry(round_, account_id) if round_ else None
        return {
            "mining": entry is not None,
            "blockNumber": round_["sequence"] if round_ else None,
            "mode": entry["mode"] if entry else None,
            "ticks": entry["ticks"] if entry else 0,
            "energySpent": entry["energy_spent"] if entry else 0,
            "energy": acct["energy"],
            "maxEnergy": acct["max_energy"],
            "tokens": round(acct["tokens"], 6),
        }

    async def modes(self, account_id: str) -> dict:
        acct = await self._energy.regenerate(account_id)
        return {
            "modes": [
                {
                    "id": name,
                    "label": mode.label,
                    "energyCost": mode.energy_cost,
                    "multiplier": mode.multiplier,
                    "unlocked": name in acct["unlocked_modes"],
                    "available": name in acct["unlocked_modes"] and acct["energy"] >= mode.energy_cost,
                }
                for name, mode in self._cfg.modes.items()
            ]
        }

    async def history(self, account_id: str, page: int = 1, limit: int = 20) -> dict:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        activity = await self._storage.activity.list_for_account(
            account_id, limit=limit, offset=(page - 1) * limit,
        )
        total = await self._storage.activity.count_for_account(account_id)
        return {
            "activities": [
                {
                    "id": a["id"],
                    "blockNumber": a["round_sequence"],
                    "mode": a["mode"],
                    "energyConsumed": a["energy_spent"],
                    "tokensEarned": a["tokens_earned"],
                    "isFinder": a["is_finder"],
                    "createdAt": a["created_at"],
                }
                for a in activity
            ],
            "pagination": {"page": page, "limit": limit, "total": total,
                           "pages": math.ceil(total / limit)},
        }

    async def last_blocks(self, limit: int = 10) -> dict:
        blocks = []
        for r in await self.rounds.recent_closed(limit=limit):
            settlement = await self._storage.settlements.get(r["sequence"])
            winner = await self._storage.accounts.get(r["winner_id"]) if r["winner_id"] else None
            blocks.append({
                "blockNumber": r["sequence"],
                "difficulty": r["difficulty"],
                "reward": settlement["total_paid"] if settlement else r["base_reward"],
                "minedBy": (winner["username"] if winner else "") or "Anonymous",
                "poolMiners": settlement["pool_count"] if settlement else 0,
                "totalParticipations": r["total_participations"],
                "totalAttempts": r["total_attempts"],
                "completedAt": r["closed_at"],
            })
        return {"blocks": blocks}

    async def supply_info(self) -> dict:
        snap = await self._supply.snapshot()
        active = await self.rounds.get_active()
        if active is not None:
            era, reward = active["era"], active["base_reward"]
        else:
            nxt = await self._storage.rounds.max_sequence() + 1
            era, reward = emission.era_for(nxt, self._cfg), emission.reward_for(nxt, self._cfg)
        return {
            "mintedTotal": snap["minted_total"],
            "cap": snap["cap"],
            "headroom": snap["headroom"],
            "lastRound": snap["last_round"],
            "era": era,
            "currentReward": reward,
        }
