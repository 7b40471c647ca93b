"""
auth.py - API key authentication and payment attestation checks.

Callers identify themselves with the X-API-Key header. Shop purchases are
validated by an external payment service which hands the client a signed
attestation (HS256 JWT); this module only checks the signature and claims.
"""

import logging
import secrets
import time
from typing import TYPE_CHECKING, Optional

import jwt as pyjwt
from fastapi import Header, HTTPException

from roundmint.account import SHOP_ITEMS
from roundmint.errors import AttestationError

if TYPE_CHECKING:
    from roundmint.account import AccountService

logger = logging.getLogger("auth")

DEFAULT_ADMIN_KEY = "admin-test-key-do-not-use-in-production"
ATTESTATION_ALGORITHM = "HS256"
ATTESTATION_MAX_AGE = 3600  # 1 hour


class AuthService:
    """API key authentication, admin access and attestation verification."""

    def __init__(
        self,
        accounts: "AccountService",
        admin_key: str = DEFAULT_ADMIN_KEY,
        attestation_secret: str = "",
    ):
        self._accounts = accounts
        self._repo = accounts._repo
        self._admin_key = admin_key
        self._attestation_secret = attestation_secret
        if not attestation_secret:
            logger.warning(
                "No attestation secret configured; shop purchases will be rejected"
            )

    @staticmethod
    def generate_api_key() -> str:
        return secrets.token_hex(16)

    # -------------------------------------------------------------------
    # Registration / login
    # -------------------------------------------------------------------

    async def register(self, identity: str, username: str = "",
                       referral_code: Optional[str] = None) -> dict:
        api_key = self.generate_api_key()
        acct = await self._accounts.create_account(
            identity, username=username, referral_code=referral_code, api_key=api_key,
        )
        logger.info("Registered account %s", acct["account_id"])
        return acct

    async def login(self, identity: str) -> dict:
        acct = await self._repo.get_by_identity(identity)
        if acct is None:
            raise KeyError(f"No account for identity '{identity}'")
        if not acct.get("api_key"):
            api_key = self.generate_api_key()
            async with self._accounts._storage.transaction():
                await self._repo.set_api_key(acct["account_id"], api_key)
            acct["api_key"] = api_key
        return acct

    # -------------------------------------------------------------------
    # FastAPI dependencies
    # -------------------------------------------------------------------

    async def resolve_account(self, x_api_key: str = Header(default="")) -> Optional[dict]:
        """Resolve an API key to an account. Returns None if no credentials."""
        if not x_api_key:
            return None
        if secrets.compare_digest(x_api_key.encode(), self._admin_key.encode()):
            return {"account_id": "_admin", "role": "admin", "api_key": x_api_key}
        acct = await self._repo.get_by_api_key(x_api_key)
        if acct is not None:
            acct["role"] = "user"
        return acct

    async def get_current_account(self, x_api_key: str = Header(default="")) -> dict:
        acct = await self.resolve_account(x_api_key)
        if acct is None:
            raise HTTPException(
                status_code=401,
                detail="Missing or invalid credentials. Pass the X-API-Key header.",
            )
        return acct

    async def require_user(self, x_api_key: str = Header(default="")) -> dict:
        acct = await self.get_current_account(x_api_key)
        if acct["role"] != "user":
            raise HTTPException(status_code=403, detail="User account required")
        return acct

    async def require_admin(self, x_api_key: str = Header(default="")) -> dict:
        acct = await self.get_current_account(x_api_key)
        if acct["role"] != "admin":
            raise HTTPException(status_code=403, detail="Admin access required")
        return acct

    # -------------------------------------------------------------------
    # Payment attestations
    # -------------------------------------------------------------------

    def issue_attestation(self, account_id: str, item: str, attestation_id: str = "") -> str:
        """Sign an attestation. Used by the payment service and by tests."""
        if not self._attestation_secret:
            raise RuntimeError("attestation secret not configured")
        now = int(time.time())
        payload = {
            "jti": attestation_id or secrets.token_hex(12),
            "sub": account_id,
            "item": item,
            "iat": now,
            "exp": now + ATTESTATION_MAX_AGE,
        }
        return pyjwt.encode(payload, self._attestation_secret, algorithm=ATTESTATION_ALGORITHM)

    def verify_attestation(self, token: str, account_id: str) -> dict:
        if not self._attestation_secret:
            raise AttestationError(message="shop is not configured")
        try:
            claims = pyjwt.decode(
                token,
                self._attestation_secret,
                algorithms=[ATTESTATION_ALGORITHM],
                options={"require": ["jti", "sub", "exp"]},
            )
        except pyjwt.ExpiredSignatureError:
            raise AttestationError(message="payment attestation expired")
        except pyjwt.InvalidTokenError as e:
            raise AttestationError(message=f"invalid payment attestation: {e}")
        if claims["sub"] != account_id:
            raise AttestationError(message="payment attestation belongs to another account")
        if claims.get("item") not in SHOP_ITEMS:
            raise AttestationError(message="payment attestation names an unknown item")
        return claims
