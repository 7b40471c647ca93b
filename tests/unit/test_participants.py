"""
test_participants.py - Participant registry: join, heartbeat, leave, eviction.

Covers:
 - join validation order (mode known, mode unlocked, enough energy)
 - heartbeat energy drain and attempt accounting per mode multiplier
 - eviction on energy exhaustion and heartbeat timeout
 - stale entries never counted as online
"""

import pytest
import pytest_asyncio

from roundmint.errors import (
    InsufficientEnergyError,
    InvalidModeError,
    ModeLockedError,
    NoActiveRoundError,
)
from roundmint.participants import REASON_ENERGY, REASON_NOT_JOINED, REASON_TIMEOUT
from tests.helpers import age_heartbeat, freeze_energy, make_account

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def round_(engine):
    return await engine.rounds.get_or_create_active_round()


class TestJoin:

    async def test_join_creates_entry(self, engine, round_):
        acct = await make_account(engine, "alice")
        result = await engine.registry.join(round_, acct["account_id"], "basic")
        assert result["entry"]["mode"] == "basic"
        assert result["energy"] == 2000
        assert result["mode"]["energy_cost"] == 100
        current = await engine.rounds.get(round_["sequence"])
        assert current["total_participations"] == 1
        assert await engine.registry.count_online(round_) == 1

    async def test_unknown_mode(self, engine, round_):
        acct = await make_account(engine, "alice")
        with pytest.raises(InvalidModeError):
            await engine.registry.join(round_, acct["account_id"], "warp")

    async def test_locked_mode(self, engine, round_):
        acct = await make_account(engine, "alice")
        with pytest.raises(ModeLockedError) as exc:
            await engine.registry.join(round_, acct["account_id"], "turbo")
        assert exc.value.reason == "locked"

    async def test_not_enough_energy(self, engine, round_):
        acct = await make_account(engine, "alice", energy=50)
        with pytest.raises(InsufficientEnergyError) as exc:
            await engine.registry.join(round_, acct["account_id"], "basic")
        assert exc.value.context == {"required": 100, "current": 50}
        assert await engine.registry.get_entry(round_, acct["account_id"]) is None

    async def test_rejoin_replaces_entry(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.registry.join(round_, acct["account_id"], "basic")
        await engine.registry.heartbeat(round_, acct["account_id"])
        await engine.registry.join(round_, acct["account_id"], "basic")
        entry = await engine.registry.get_entry(round_, acct["account_id"])
        assert entry["ticks"] == 0
        assert await engine.registry.count_online(round_) == 1
        current = await engine.rounds.get(round_["sequence"])
        assert current["total_participations"] == 2

    async def test_join_refused_while_round_locked(self, engine, round_):
        finder = await make_account(engine, "finder")
        late = await make_account(engine, "late")
        await engine.rounds.claim_round(round_["sequence"], finder["account_id"], "00" * 32, 1)
        with pytest.raises(NoActiveRoundError):
            await engine.registry.join(round_, late["account_id"], "basic")


class TestHeartbeat:

    async def test_heartbeat_drains_energy(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.registry.join(round_, acct["account_id"], "basic")
        result = await engine.registry.heartbeat(round_, acct["account_id"])
        assert result["continue"] is True
        assert "reason" not in result
        assert result["energy"] == 1900
        assert result["max_energy"] == 2000
        entry = await engine.registry.get_entry(round_, acct["account_id"])
        assert entry["ticks"] == 1
        assert entry["energy_spent"] == 100
        current = await engine.rounds.get(round_["sequence"])
        assert current["total_attempts"] == engine.cfg.attempts_per_tick

    async def test_multiplier_scales_attempts_and_cost(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.accounts.unlock_mode(acct["account_id"], "turbo")
        await engine.registry.join(round_, acct["account_id"], "turbo")
        result = await engine.registry.heartbeat(round_, acct["account_id"])
        assert result["energy"] == 1800
        current = await engine.rounds.get(round_["sequence"])
        assert current["total_attempts"] == engine.cfg.attempts_per_tick * 2

    async def test_heartbeat_without_join(self, engine, round_):
        acct = await make_account(engine, "alice")
        result = await engine.registry.heartbeat(round_, acct["account_id"])
        assert result["continue"] is False
        assert result["reason"] == REASON_NOT_JOINED

    async def test_evicted_when_energy_runs_out(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.registry.join(round_, acct["account_id"], "basic")
        await freeze_energy(engine.storage, acct["account_id"], 100)

        first = await engine.registry.heartbeat(round_, acct["account_id"])
        assert first["continue"] is True
        assert first["energy"] == 0

        second = await engine.registry.heartbeat(round_, acct["account_id"])
        assert second["continue"] is False
        assert second["reason"] == REASON_ENERGY
        assert await engine.registry.get_entry(round_, acct["account_id"]) is None
        stored = await engine.storage.accounts.get(acct["account_id"])
        assert stored["energy"] == 0

    async def test_stale_heartbeat_times_out(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.registry.join(round_, acct["account_id"], "basic")
        await age_heartbeat(engine.storage, acct["account_id"], engine.cfg.heartbeat_timeout + 1)
        result = await engine.registry.heartbeat(round_, acct["account_id"])
        assert result["continue"] is False
        assert result["reason"] == REASON_TIMEOUT
        assert await engine.storage.participants.get(round_["sequence"], acct["account_id"]) is None
        stored = await engine.storage.accounts.get(acct["account_id"])
        assert stored["energy"] == 2000


class TestOnlinePool:

    async def test_stale_entries_are_not_online(self, engine, round_):
        ids = []
        for name in ("a", "b", "c"):
            acct = await make_account(engine, name)
            await engine.registry.join(round_, acct["account_id"], "basic")
            ids.append(acct["account_id"])
        await age_heartbeat(engine.storage, ids[2], 45)

        assert await engine.registry.get_entry(round_, ids[2]) is None
        assert await engine.registry.count_online(round_) == 2
        online = await engine.registry.list_online(round_)
        assert sorted(e["account_id"] for e in online) == sorted(ids[:2])
        # count_online purged the stale row
        assert await engine.storage.participants.get(round_["sequence"], ids[2]) is None

    async def test_leave(self, engine, round_):
        acct = await make_account(engine, "alice")
        await engine.registry.join(round_, acct["account_id"], "basic")
        assert await engine.registry.leave(round_, acct["account_id"]) is True
        assert await engine.registry.leave(round_, acct["account_id"]) is False
        assert await engine.registry.count_online(round_) == 0

    async def test_evict_stale_everywhere(self, engine, round_):
        a = await make_account(engine, "a")
        b = await make_account(engine, "b")
        await engine.registry.join(round_, a["account_id"], "basic")
        await engine.registry.join(round_, b["account_id"], "basic")
        await age_heartbeat(engine.storage, a["account_id"], 120)
        assert await engine.registry.evict_stale() == 1
        assert await engine.registry.evict_stale() == 0

    async def test_mode_info(self, engine):
        info = engine.registry.mode_info("super")
        assert info == {"mode": "super", "label": "Super", "energy_cost": 400, "multiplier": 4}
