"""
roundmint - Mining round lifecycle and reward distribution service.

Single active proof-discovery round, ephemeral participant pool, toy proof
verification, capped halving emission and finder/pool settlement.
Includes SQLite storage, REST API and background recovery watchdog.
"""

__version__ = "0.1.0"

__all__ = [
    "account",
    "auth",
    "config",
    "emission",
    "energy",
    "errors",
    "mining",
    "participants",
    "proof",
    "rewards",
    "rounds",
    "server",
    "storage",
    "supply",
]
