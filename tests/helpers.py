"""Test helpers: engine wiring, account setup, round seeding and proof solving."""

import time
from dataclasses import dataclass

from roundmint import proof
from roundmint.account import AccountService
from roundmint.config import EngineConfig
from roundmint.energy import EnergyAccount
from roundmint.mining import MiningService
from roundmint.participants import ParticipantRegistry
from roundmint.rewards import RewardDistributor
from roundmint.rounds import RoundLifecycleManager
from roundmint.storage import StorageManager
from roundmint.supply import SupplyLedger


@dataclass
class Engine:
    storage: StorageManager
    cfg: EngineConfig
    energy: EnergyAccount
    accounts: AccountService
    supply: SupplyLedger
    registry: ParticipantRegistry
    rewards: RewardDistributor
    rounds: RoundLifecycleManager
    mining: MiningService


async def build_engine(storage: StorageManager, cfg: EngineConfig) -> Engine:
    energy = EnergyAccount(storage, regen_per_sec=cfg.energy_regen_per_sec)
    accounts = AccountService(storage, energy, cfg)
    supply = SupplyLedger(storage, cfg.supply_cap)
    await supply.setup_defaults()
    registry = ParticipantRegistry(storage, energy, cfg)
    rewards = RewardDistributor(storage, supply, cfg)
    rounds = RoundLifecycleManager(storage, rewards, cfg)
    mining = MiningService(storage, rounds, registry, energy, supply, cfg)
    return Engine(storage, cfg, energy, accounts, supply, registry, rewards, rounds, mining)


# ── Helpers ─────────────────────────────────────────────────────────────────

async def execute(storage: StorageManager, sql: str, params: tuple = ()):
    async with storage.transaction():
        await storage.db.execute(sql, params)


async def make_account(engine: Engine, identity: str, referral_code: str = None,
                       energy: int = None) -> dict:
    """Create an account whose energy does not regenerate during the test."""
    acct = await engine.accounts.create_account(identity, username=identity,
                                                referral_code=referral_code)
    await freeze_energy(engine.storage, acct["account_id"],
                        engine.cfg.energy_capacity if energy is None else energy)
    return await engine.storage.accounts.get(acct["account_id"])


async def freeze_energy(storage: StorageManager, account_id: str, energy: int):
    # A marker in the future means zero elapsed seconds on every observation
    await execute(
        storage,
        "UPDATE accounts SET energy = ?, energy_updated_at = ? WHERE account_id = ?",
        (energy, time.time() + 3600, account_id),
    )


async def seed_closed_round(storage: StorageManager, sequence: int, difficulty: int = 4,
                            era: int = 0, base_reward: float = 1000.0):
    now = time.time()
    await execute(
        storage,
        "INSERT INTO rounds (sequence, difficulty, era, base_reward, status, created_at, closed_at) "
        "VALUES (?, ?, ?, ?, 'closed', ?, ?)",
        (sequence, difficulty, era, base_reward, now, now),
    )


async def age_heartbeat(storage: StorageManager, account_id: str, seconds: float):
    await execute(
        storage,
        "UPDATE participants SET last_heartbeat = ? WHERE account_id = ?",
        (time.time() - seconds, account_id),
    )


def solve(round_: dict, identity: str, start_nonce: int = 0):
    """Find a qualifying (nonce, digest) for ``identity`` on ``round_``."""
    return proof.search(round_["sequence"], identity, round_["difficulty"], start_nonce=start_nonce)
