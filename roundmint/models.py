"""Pydantic request models for the REST API."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JoinRequest(BaseModel):
    mode: str = "basic"


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hash: str = Field(min_length=1, max_length=128)
    nonce: int = Field(ge=0)
    block_number: Optional[int] = Field(default=None, alias="blockNumber", ge=1)


class RegisterRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=128)
    username: str = ""
    referral_code: Optional[str] = Field(default=None, alias="referralCode")

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    identity: str


class ShopApplyRequest(BaseModel):
    attestation: str
