"""
test_accounts.py - Account creation, referral linking, shop credits and auth.
"""

import time

import jwt
import pytest

from roundmint.account import ENERGY_BOOST_AMOUNT, REFERRAL_PREFIX, AccountService
from roundmint.auth import AuthService
from roundmint.config import EngineConfig
from roundmint.errors import AttestationError
from tests.helpers import execute

pytestmark = pytest.mark.asyncio

SECRET = "test-attestation-secret-0123456789abcdef"


@pytest.fixture
def auth(engine):
    return AuthService(engine.accounts, admin_key="admin-key", attestation_secret=SECRET)


class TestAccounts:

    async def test_create_account_defaults(self, engine):
        acct = await engine.accounts.create_account("tg-1001", username="alice")
        assert acct["energy"] == engine.cfg.energy_capacity
        assert acct["max_energy"] == engine.cfg.energy_capacity
        assert acct["unlocked_modes"] == ["basic"]
        assert acct["referral_code"].startswith(REFERRAL_PREFIX)
        assert acct["referred_by"] is None
        assert acct["tokens"] == 0.0

    async def test_duplicate_identity(self, engine):
        await engine.accounts.create_account("tg-1001")
        with pytest.raises(ValueError):
            await engine.accounts.create_account("tg-1001")

    async def test_referral_link(self, engine):
        referrer = await engine.accounts.create_account("tg-1")
        friend = await engine.accounts.create_account("tg-2", referral_code=referrer["referral_code"])
        assert friend["referred_by"] == referrer["referral_code"]
        info = await engine.accounts.referral_info(referrer["account_id"])
        assert info["referral_count"] == 1
        listing = await engine.accounts.referral_list(referrer["account_id"])
        assert len(listing["friends"]) == 1
        assert listing["recent_commissions"][0]["source"] == "signup"

    async def test_signup_bonus_paid_to_referrer(self, engine):
        referrer = await engine.accounts.create_account("tg-1")
        await engine.accounts.create_account("tg-2", referral_code=referrer["referral_code"])
        ref = await engine.storage.accounts.get(referrer["account_id"])
        assert ref["tokens"] == engine.cfg.signup_bonus == 500.0
        assert ref["referral_earnings"] == 500.0
        assert ref["total_mined"] == 0.0
        # Bonuses are paid outside the mined supply
        assert (await engine.supply.snapshot())["minted_total"] == 0.0

    async def test_signup_bonus_disabled(self, engine):
        accounts = AccountService(engine.storage, engine.energy, EngineConfig(signup_bonus=0.0))
        referrer = await accounts.create_account("tg-1")
        friend = await accounts.create_account("tg-2", referral_code=referrer["referral_code"])
        assert friend["referred_by"] == referrer["referral_code"]
        assert (await engine.storage.accounts.get(referrer["account_id"]))["tokens"] == 0.0
        assert await engine.storage.referrals.list_for_referrer(referrer["account_id"]) == []

    async def test_leaderboard_and_rank(self, engine):
        balances = {"tg-a": 30.0, "tg-b": 120.0, "tg-c": 75.0}
        created = {}
        for identity, tokens in balances.items():
            acct = await engine.accounts.create_account(identity, username=identity)
            await execute(engine.storage, "UPDATE accounts SET tokens = ? WHERE account_id = ?",
                          (tokens, acct["account_id"]))
            created[identity] = acct
        me = created["tg-a"]
        board = await engine.accounts.leaderboard(me["account_id"], limit=2)
        assert [e["username"] for e in board["leaderboard"]] == ["tg-b", "tg-c"]
        assert [e["rank"] for e in board["leaderboard"]] == [1, 2]
        assert board["my_rank"] == 3
        assert board["my_tokens"] == 30.0

    async def test_unknown_referral_code_ignored(self, engine):
        acct = await engine.accounts.create_account("tg-3", referral_code="XHnope0000")
        assert acct["referred_by"] is None

    async def test_profile_hides_api_key(self, engine):
        acct = await engine.accounts.create_account("tg-4", api_key="secret-key")
        profile = await engine.accounts.profile(acct["account_id"])
        assert "api_key" not in profile
        assert profile["identity"] == "tg-4"


class TestShopCredits:

    async def test_unlock_mode_once_per_attestation(self, engine):
        acct = await engine.accounts.create_account("tg-5")
        first = await engine.accounts.apply_shop_credit("att-1", acct["account_id"], "turbo_unlock")
        assert first["applied"] is True
        assert "turbo" in first["unlocked_modes"]
        again = await engine.accounts.apply_shop_credit("att-1", acct["account_id"], "turbo_unlock")
        assert again["applied"] is False
        assert again["unlocked_modes"].count("turbo") == 1
        record = await engine.storage.shop_credits.get("att-1")
        assert record["account_id"] == acct["account_id"]
        assert record["item"] == "turbo_unlock"

    async def test_energy_boost(self, engine):
        acct = await engine.accounts.create_account("tg-6")
        result = await engine.accounts.apply_shop_credit("att-2", acct["account_id"], "energy_boost")
        assert result["max_energy"] == engine.cfg.energy_capacity + ENERGY_BOOST_AMOUNT
        assert result["energy"] >= engine.cfg.energy_capacity + ENERGY_BOOST_AMOUNT

    async def test_shop_items_mark_unlocked_modes(self, engine):
        acct = await engine.accounts.create_account("tg-8")
        await engine.accounts.apply_shop_credit("att-4", acct["account_id"], "super_unlock")
        items = {i["id"]: i for i in (await engine.accounts.shop_items(acct["account_id"]))["items"]}
        assert set(items) == {"energy_boost", "turbo_unlock", "super_unlock", "nitro_unlock"}
        assert items["super_unlock"]["purchased"] is True
        assert items["turbo_unlock"]["purchased"] is False
        assert items["energy_boost"]["purchased"] is False
        assert items["energy_boost"]["repeatable"] is True

    async def test_unknown_item(self, engine):
        acct = await engine.accounts.create_account("tg-7")
        with pytest.raises(ValueError):
            await engine.accounts.apply_shop_credit("att-3", acct["account_id"], "rocket")


class TestAuth:

    async def test_register_and_resolve(self, auth):
        acct = await auth.register("tg-10", username="bob")
        assert len(acct["api_key"]) == 32
        resolved = await auth.resolve_account(acct["api_key"])
        assert resolved["account_id"] == acct["account_id"]
        assert resolved["role"] == "user"

    async def test_admin_key(self, auth):
        resolved = await auth.resolve_account("admin-key")
        assert resolved["role"] == "admin"

    async def test_unknown_key(self, auth):
        assert await auth.resolve_account("nope") is None
        assert await auth.resolve_account("") is None

    async def test_login_unknown_identity(self, auth):
        with pytest.raises(KeyError):
            await auth.login("tg-missing")

    async def test_login_returns_existing_key(self, auth):
        acct = await auth.register("tg-11")
        again = await auth.login("tg-11")
        assert again["api_key"] == acct["api_key"]

    async def test_attestation_round_trip(self, auth, engine):
        acct = await engine.accounts.create_account("tg-12")
        token = auth.issue_attestation(acct["account_id"], "nitro_unlock", attestation_id="pay-1")
        claims = auth.verify_attestation(token, acct["account_id"])
        assert claims["jti"] == "pay-1"
        assert claims["item"] == "nitro_unlock"

    async def test_attestation_for_other_account(self, auth):
        token = auth.issue_attestation("acct-a", "energy_boost")
        with pytest.raises(AttestationError):
            auth.verify_attestation(token, "acct-b")

    async def test_expired_attestation(self, auth):
        now = int(time.time())
        token = jwt.encode(
            {"jti": "old", "sub": "acct-a", "item": "energy_boost", "iat": now - 7200, "exp": now - 3600},
            SECRET, algorithm="HS256",
        )
        with pytest.raises(AttestationError) as exc:
            auth.verify_attestation(token, "acct-a")
        assert "expired" in exc.value.message

    async def test_forged_attestation(self, auth):
        token = jwt.encode({"jti": "x", "sub": "acct-a", "item": "energy_boost",
                            "exp": int(time.time()) + 60}, "wrong-secret-0123456789abcdef-0123456789", algorithm="HS256")
        with pytest.raises(AttestationError):
            auth.verify_attestation(token, "acct-a")

    async def test_unknown_item_in_attestation(self, auth):
        token = auth.issue_attestation("acct-a", "rocket")
        with pytest.raises(AttestationError):
            auth.verify_attestation(token, "acct-a")

    async def test_shop_disabled_without_secret(self, engine):
        auth = AuthService(engine.accounts, attestation_secret="")
        with pytest.raises(AttestationError):
            auth.verify_attestation("anything", "acct-a")
