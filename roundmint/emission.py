"""
emission.py - Halving emission and difficulty schedule.

Pure functions of the round sequence number (1-based):

    era(n)        = (n - 1) // halving_interval
    reward(n)     = max(initial_reward / 2**era(n), min_reward)
    difficulty(n) = min(base_difficulty + (n - 1) // difficulty_step, max_difficulty)
"""

from typing import Optional

from roundmint.config import EngineConfig

_DEFAULTS = EngineConfig()


def era_for(sequence: int, cfg: Optional[EngineConfig] = None) -> int:
    cfg = cfg or _DEFAULTS
    if sequence < 1:
        raise ValueError(f"Round sequence must be >= 1, got {sequence}")
    return (sequence - 1) // cfg.halving_interval


def reward_for(sequence: int, cfg: Optional[EngineConfig] = None) -> float:
    cfg = cfg or _DEFAULTS
    era = era_for(sequence, cfg)
    # 2**era no longer converts to float past this point
    if era > 1000:
        return cfg.min_reward
    return max(cfg.initial_reward / (2 ** era), cfg.min_reward)


def difficulty_for(sequence: int, cfg: Optional[EngineConfig] = None) -> int:
    cfg = cfg or _DEFAULTS
    if sequence < 1:
        raise ValueError(f"Round sequence must be >= 1, got {sequence}")
    return min(cfg.base_difficulty + (sequence - 1) // cfg.difficulty_step, cfg.max_difficulty)


def round_params(sequence: int, cfg: Optional[EngineConfig] = None) -> dict:
    """Everything a new round derives from its sequence number."""
    return {
        "sequence": sequence,
        "difficulty": difficulty_for(sequence, cfg),
        "era": era_for(sequence, cfg),
        "base_reward": reward_for(sequence, cfg),
    }
