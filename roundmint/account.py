"""
account.py - Account service.

Account creation on first authentication, referral linking and lookup,
profile reads (with lazy energy regeneration) and the write side of the
external shop: attested purchases that unlock modes or boost energy.
"""

import logging
import secrets
import sqlite3
import string
import uuid
from typing import TYPE_CHECKING, Optional

from roundmint.config import DEFAULT_MODE, EngineConfig

if TYPE_CHECKING:
    from roundmint.energy import EnergyAccount
    from roundmint.storage import StorageManager

logger = logging.getLogger("account")

REFERRAL_PREFIX = "XH"
ENERGY_BOOST_AMOUNT = 2000

SHOP_ITEMS = {
    "energy_boost": {"label": "Energy Boost", "repeatable": True, "unlocks": None},
    "turbo_unlock": {"label": "Turbo Mode", "repeatable": False, "unlocks": "turbo"},
    "super_unlock": {"label": "Super Mode", "repeatable": False, "unlocks": "super"},
    "nitro_unlock": {"label": "Nitro Mode", "repeatable": False, "unlocks": "nitro"},
}


def make_referral_code(identity: str) -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"{REFERRAL_PREFIX}{identity[-4:]}{suffix}"


def public_view(acct: dict) -> dict:
    """Account fields safe to return to the owner (no api_key)."""
    return {
        "account_id": acct["account_id"],
        "identity": acct["identity"],
        "username": acct["username"],
        "energy": acct["energy"],
        "max_energy": acct["max_energy"],
        "tokens": round(acct["tokens"], 6),
        "total_mined": round(acct["total_mined"], 6),
        "mining_sessions": acct["mining_sessions"],
        "unlocked_modes": acct["unlocked_modes"],
        "referral_code": acct["referral_code"],
        "referral_count": acct["referral_count"],
        "referral_earnings": round(acct["referral_earnings"], 6),
    }


class AccountService:
    """Account service backed by SQLite via AccountRepo."""

    def __init__(self, storage: "StorageManager", energy: "EnergyAccount",
                 cfg: Optional[EngineConfig] = None):
        self._storage = storage
        self._repo = storage.accounts
        self._energy = energy
        self._cfg = cfg or EngineConfig()

    async def create_account(
        self,
        identity: str,
        username: str = "",
        referral_code: Optional[str] = None,
        api_key: str = "",
    ) -> dict:
        if not identity:
            raise ValueError("identity is required")
        account_id = f"acct-{uuid.uuid4().hex[:12]}"
        async with self._storage.transaction():
            if await self._repo.get_by_identity(identity) is not None:
                raise ValueError(f"Account for identity '{identity}' already exists")
            for _ in range(5):
                try:
                    acct = await self._repo.create(
                        account_id,
                        identity,
                        referral_code=make_referral_code(identity),
                        energy=self._cfg.energy_capacity,
                        max_energy=self._cfg.energy_capacity,
                        username=username,
                        api_key=api_key,
                    )
                    break
                except sqlite3.IntegrityError:
                    # referral code collision, draw another
                    continue
            else:
                raise RuntimeError("Failed to allocate a unique referral code")

            if referral_code:
                referrer = await self._repo.get_by_referral_code(referral_code)
                if referrer is None:
                    logger.info("Unknown referral code %s for %s, ignored", referral_code, identity)
                elif referrer["account_id"] == account_id:
                    logger.info("Self-referral ignored for %s", identity)
                elif await self._repo.set_referrer(account_id, referral_code):
                    await self._repo.increment_referral_count(referrer["account_id"])
                    await self._pay_signup_bonus(referrer["account_id"], account_id)
                    acct["referred_by"] = referral_code
                    logger.info("Account %s referred by %s", account_id, referrer["account_id"])
        logger.info("Created account %s identity=%s", account_id, identity)
        return acct

    async def _pay_signup_bonus(self, referrer_id: str, referred_id: str):
        bonus = self._cfg.signup_bonus
        if bonus <= 0:
            return
        await self._repo.credit_commission(referrer_id, bonus)
        await self._storage.referrals.record(referrer_id, referred_id, bonus, source="signup")
        logger.debug("Signup bonus %.2f to %s for %s", bonus, referrer_id, referred_id)

    async def profile(self, account_id: str) -> dict:
        acct = await self._energy.regenerate(account_id)
        return public_view(acct)

    async def referral_info(self, account_id: str) -> dict:
        acct = await self._repo.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")
        return {
            "referral_code": acct["referral_code"],
            "referral_count": acct["referral_count"],
            "referral_earnings": round(acct["referral_earnings"], 6),
            "referred_by": acct["referred_by"],
        }

    async def referral_list(self, account_id: str) -> dict:
        acct = await self._repo.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")
        friends = await self._repo.list_referred(acct["referral_code"])
        commissions = await self._storage.referrals.list_for_referrer(account_id)
        return {
            "friends": [
                {
                    "username": f["username"] or "Anonymous",
                    "tokens": round(f["tokens"], 6),
                    "total_mined": round(f["total_mined"], 6),
                    "joined_at": f["created_at"],
                }
                for f in friends
            ],
            "recent_commissions": [
                {
                    "commission": c["commission"],
                    "source": c["source"],
                    "round": c["round_sequence"],
                    "date": c["created_at"],
                }
                for c in commissions
            ],
        }

    async def leaderboard(self, account_id: str, limit: int = 100) -> dict:
        """Top balances plus the caller's own rank (1 + accounts holding more)."""
        acct = await self._repo.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")
        top = await self._repo.top_by_tokens(limit=limit)
        return {
            "leaderboard": [
                {
                    "rank": i + 1,
                    "username": a["username"] or "Anonymous",
                    "tokens": round(a["tokens"], 6),
                    "total_mined": round(a["total_mined"], 6),
                }
                for i, a in enumerate(top)
            ],
            "my_rank": await self._repo.count_above(acct["tokens"]) + 1,
            "my_tokens": round(acct["tokens"], 6),
        }

    async def shop_items(self, account_id: str) -> dict:
        acct = await self._repo.get(account_id)
        if acct is None:
            raise KeyError(f"Account {account_id} not found")
        return {
            "items": [
                {
                    "id": item_id,
                    "label": item["label"],
                    "repeatable": item["repeatable"],
                    "unlocks": item["unlocks"],
                    "purchased": bool(item["unlocks"]) and item["unlocks"] in acct["unlocked_modes"],
                }
                for item_id, item in SHOP_ITEMS.items()
            ]
        }

    async def apply_shop_credit(self, attestation_id: str, account_id: str, item: str) -> dict:
        """Apply an already-verified purchase. Each attestation applies once."""
        spec = SHOP_ITEMS.get(item)
        if spec is None:
            raise ValueError(f"Unknown shop item '{item}'")
        async with self._storage.transaction():
            acct = await self._repo.get(account_id)
            if acct is None:
                raise KeyError(f"Account {account_id} not found")
            applied = await self._storage.shop_credits.record(attestation_id, account_id, item)
            if not applied:
                logger.info("Attestation %s already applied, skipping", attestation_id)
            elif spec["unlocks"]:
                await self.unlock_mode(account_id, spec["unlocks"])
            else:
                await self._repo.boost_energy(account_id, ENERGY_BOOST_AMOUNT, ENERGY_BOOST_AMOUNT)
            acct = await self._repo.get(account_id)
        if applied:
            logger.info("Applied %s to %s (attestation %s)", item, account_id, attestation_id)
        return {
            "applied": applied,
            "item": item,
            "energy": acct["energy"],
            "max_energy": acct["max_energy"],
            "unlocked_modes": acct["unlocked_modes"],
        }

    async def unlock_mode(self, account_id: str, mode: str) -> bool:
        if mode not in self._cfg.modes:
            raise ValueError(f"Unknown mode '{mode}'")
        if mode == DEFAULT_MODE:
            return False
        async with self._storage.transaction():
            return await self._repo.unlock_mode(account_id, mode)
