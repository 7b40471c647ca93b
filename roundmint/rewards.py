"""
rewards.py - Reward distribution for a claimed round.

The finder and the online pool split the round reward, capped to the supply
headroom. Shares are computed in Decimal cents: the finder share is rounded
half-up, pool shares are rounded down, so the total actually paid never
exceeds the capped amount. Amounts below one cent are split at a finer
resolution instead. Referral commissions are paid on top of the split
and are not counted against the supply cap.
"""

import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Optional

from roundmint.config import DEFAULT_MODE, EngineConfig
from roundmint.errors import SupplyExhaustedError

if TYPE_CHECKING:
    from roundmint.storage import StorageManager
    from roundmint.supply import SupplyLedger

logger = logging.getLogger("rewards")

CENT = Decimal("0.01")
# Sub-cent rewards are split at this resolution instead of whole cents
DUST_UNIT = Decimal("1e-12")


def _cents(value: Decimal, rounding=ROUND_HALF_UP) -> Decimal:
    return value.quantize(CENT, rounding=rounding)


def _dust_split(total: Decimal, pool_count: int, finder_share: Decimal):
    each = (total * (1 - finder_share) / pool_count).quantize(DUST_UNIT, rounding=ROUND_DOWN)
    # The finder absorbs the truncated remainder so the whole amount is paid
    return total - each * pool_count, each


def split_reward(capped: float, pool_count: int, finder_share: float = 0.5) -> dict:
    """Split ``capped`` between the finder and ``pool_count`` other members.

    Returns ``{finder_reward, pool_share_each, pool_count, total_paid}``.
    """
    if capped <= 0:
        return {"finder_reward": 0.0, "pool_share_each": 0.0,
                "pool_count": pool_count, "total_paid": 0.0}
    if pool_count == 0:
        return {"finder_reward": capped, "pool_share_each": 0.0,
                "pool_count": 0, "total_paid": capped}

    total = Decimal(str(capped))
    share = Decimal(str(finder_share))
    if total < CENT:
        finder, each = _dust_split(total, pool_count, share)
    else:
        finder = min(_cents(total * share), total)
        each = _cents((total - finder) / pool_count, rounding=ROUND_DOWN)
    paid = finder + each * pool_count
    return {
        "finder_reward": float(finder),
        "pool_share_each": float(each),
        "pool_count": pool_count,
        "total_paid": float(paid),
    }


def commission_for(amount: float, rate: float) -> float:
    if amount <= 0 or rate <= 0:
        return 0.0
    return float(_cents(Decimal(str(amount)) * Decimal(str(rate))))


class RewardDistributor:
    """Applies a round's payout. Must run inside the finalize transaction."""

    def __init__(self, storage: "StorageManager", supply: "SupplyLedger",
                 cfg: Optional[EngineConfig] = None):
        self._storage = storage
        self._accounts = storage.accounts
        self._supply = supply
        self._cfg = cfg or EngineConfig()

    async def distribute(self, round_: dict) -> dict:
        """Credit finder, pool and referrers for a locked round.

        Raises SupplyExhaustedError when there is no headroom left; the
        enclosing transaction then rolls back every credit made here.
        """
        sequence = round_["sequence"]
        finder_id = round_["winner_id"]
        snapshot = round_["pool_snapshot"] or []

        async with self._storage.transaction():
            headroom = await self._supply.headroom()
            capped = min(round_["base_reward"], headroom)
            if capped <= 0:
                logger.warning("Round %d cannot be paid: supply exhausted", sequence)
                raise SupplyExhaustedError(context={"round": sequence})

            entries = {e["account_id"]: e for e in snapshot}
            pool = [e for e in snapshot if e["account_id"] != finder_id]
            split = split_reward(capped, len(pool), self._cfg.finder_share)

            finder_entry = entries.get(finder_id, {})
            await self._credit(
                finder_id, split["finder_reward"], sequence,
                mode=finder_entry.get("mode", DEFAULT_MODE),
                energy_spent=finder_entry.get("energy_spent", 0),
                is_finder=True,
                digest=round_["winning_value"],
                nonce=round_["winning_nonce"],
            )
            if split["pool_share_each"] > 0:
                for entry in pool:
                    await self._credit(
                        entry["account_id"], split["pool_share_each"], sequence,
                        mode=entry["mode"], energy_spent=entry.get("energy_spent", 0),
                    )

            await self._supply.record_mint(split["total_paid"], sequence)
            settlement = await self._storage.settlements.create(
                round_sequence=sequence,
                finder_id=finder_id,
                finder_reward=split["finder_reward"],
                pool_count=split["pool_count"],
                pool_share_each=split["pool_share_each"],
                total_paid=split["total_paid"],
                capped_reward=capped,
            )

        logger.info(
            "Round %d paid: finder=%s %.6f pool=%d x %.2f total=%.6f (capped %.6f)",
            sequence, finder_id, split["finder_reward"], split["pool_count"],
            split["pool_share_each"], split["total_paid"], capped,
        )
        return settlement

    async def _credit(self, account_id: str, amount: float, sequence: int, mode: str,
                      energy_spent: int = 0, is_finder: bool = False,
                      digest: Optional[str] = None, nonce: Optional[int] = None):
        await self._accounts.credit_reward(account_id, amount)
        await self._storage.activity.record(
            account_id, sequence, mode, amount,
            energy_spent=energy_spent, is_finder=is_finder, digest=digest, nonce=nonce,
        )
        await self._pay_commission(account_id, amount, sequence)

    async def _pay_commission(self, account_id: str, amount: float, sequence: int):
        member = await self._accounts.get(account_id)
        if member is None or not member.get("referred_by"):
            return
        commission = commission_for(amount, self._cfg.referral_rate)
        if commission <= 0:
            return
        referrer = await self._accounts.get_by_referral_code(member["referred_by"])
        if referrer is None:
            logger.warning("Referrer code %s of %s not found", member["referred_by"], account_id)
            return
        await self._accounts.credit_commission(referrer["account_id"], commission)
        await self._storage.referrals.record(
            referrer["account_id"], account_id, commission, round_sequence=sequence,
        )
        logger.debug("Commission %.2f to %s for %s", commission, referrer["account_id"], account_id)

