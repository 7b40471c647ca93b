"""
config.py - Engine and server configuration.

Defaults mirror the production economy. Every field can be overridden with a
ROUNDMINT_<FIELD> environment variable; the server entry point additionally
exposes the most common ones as CLI flags.
"""

import os
from typing import Dict, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator


class ModeConfig(BaseModel):
    """A mining mode: energy drained per tick and attempt multiplier."""

    label: str
    energy_cost: PositiveInt
    multiplier: PositiveInt


DEFAULT_MODES: Dict[str, ModeConfig] = {
    "basic": ModeConfig(label="Basic", energy_cost=100, multiplier=1),
    "turbo": ModeConfig(label="Turbo", energy_cost=200, multiplier=2),
    "super": ModeConfig(label="Super", energy_cost=400, multiplier=4),
    "nitro": ModeConfig(label="Nitro", energy_cost=800, multiplier=8),
}

DEFAULT_MODE = "basic"


class EngineConfig(BaseModel):
    # Emission
    supply_cap: float = 1_000_000_000.0
    initial_reward: float = 1000.0
    halving_interval: PositiveInt = 100
    min_reward: float = 0.01

    # Difficulty
    base_difficulty: PositiveInt = 4
    difficulty_step: PositiveInt = 200
    max_difficulty: PositiveInt = 10

    # Settlement
    finder_share: float = Field(default=0.5, gt=0.0, le=1.0)
    referral_rate: float = Field(default=0.10, ge=0.0, lt=1.0)
    signup_bonus: float = Field(default=500.0, ge=0.0)

    # Participants / energy
    heartbeat_timeout: float = 30.0
    energy_capacity: PositiveInt = 2000
    energy_regen_per_sec: PositiveInt = 1
    attempts_per_tick: PositiveInt = 500

    modes: Dict[str, ModeConfig] = Field(default_factory=lambda: dict(DEFAULT_MODES))

    @field_validator("modes")
    @classmethod
    def _basic_mode_present(cls, v: Dict[str, ModeConfig]) -> Dict[str, ModeConfig]:
        if DEFAULT_MODE not in v:
            raise ValueError(f"modes must include '{DEFAULT_MODE}'")
        return v

    def mode(self, name: str) -> Optional[ModeConfig]:
        return self.modes.get(name)


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    api_port: int = 8080
    db_path: str = "data/roundmint.db"
    admin_key: str = "admin-test-key-do-not-use-in-production"
    attestation_secret: str = ""
    watchdog_interval: float = 5.0
    engine: EngineConfig = Field(default_factory=EngineConfig)


_ENV_PREFIX = "ROUNDMINT_"


def _env_overrides(model_cls) -> dict:
    overrides = {}
    for name in model_cls.model_fields:
        raw = os.environ.get(_ENV_PREFIX + name.upper())
        if raw is not None:
            overrides[name] = raw
    return overrides


def load_config(**cli_overrides) -> ServerConfig:
    """Build a ServerConfig from defaults, environment, then explicit overrides.

    Explicit overrides whose value is None are ignored so argparse defaults
    do not mask environment values.
    """
    engine_fields = _env_overrides(EngineConfig)
    engine_fields.pop("modes", None)
    server_fields = _env_overrides(ServerConfig)
    server_fields.pop("engine", None)
    for key, value in cli_overrides.items():
        if value is None:
            continue
        if key in EngineConfig.model_fields:
            engine_fields[key] = value
        else:
            server_fields[key] = value
    return ServerConfig(engine=EngineConfig(**engine_fields), **server_fields)
