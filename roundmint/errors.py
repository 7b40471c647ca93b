"""
errors.py - Error taxonomy for the mining engine.

Every error carries a machine-readable ``reason`` the client uses to decide
whether to retry (re-fetch the round, rejoin) or stop polling for good.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    RACE_LOST = "race_lost"
    INTERNAL = "internal"


@dataclass(eq=False)
class MiningError(Exception):
    """
    Base class for engine errors.

    Attributes
    ----------
    message : str
        Human-friendly explanation (safe to log and return).
    reason : str
        Stable, machine-readable reason string.
    category : ErrorCategory
        Taxonomy bucket; decides the HTTP status in the routers.
    retryable : bool
        Whether re-running the read-then-act sequence may succeed.
    context : dict
        Small JSON-serializable diagnostics.
    """

    message: str = "mining operation failed"
    reason: str = "internal"
    category: ErrorCategory = ErrorCategory.INTERNAL
    retryable: bool = False
    context: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        base = f"[{self.reason}] {self.message}"
        if self.context:
            base += f" ctx={self.context}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        d = {"error": self.reason, "message": self.message, "retryable": self.retryable}
        d.update(self.context)
        return d


@dataclass(eq=False)
class InvalidModeError(MiningError):
    message: str = "unknown mining mode"
    reason: str = "invalid_mode"
    category: ErrorCategory = ErrorCategory.VALIDATION


@dataclass(eq=False)
class ModeLockedError(MiningError):
    message: str = "mining mode is not unlocked"
    reason: str = "locked"
    category: ErrorCategory = ErrorCategory.AUTHORIZATION


@dataclass(eq=False)
class InsufficientEnergyError(MiningError):
    message: str = "not enough energy"
    reason: str = "energy"
    category: ErrorCategory = ErrorCategory.RESOURCE_EXHAUSTED


@dataclass(eq=False)
class NotJoinedError(MiningError):
    message: str = "no active participation in the current round"
    reason: str = "not_joined"
    category: ErrorCategory = ErrorCategory.VALIDATION
    retryable: bool = True


@dataclass(eq=False)
class InvalidProofError(MiningError):
    message: str = "invalid: does not meet difficulty"
    reason: str = "invalid"
    category: ErrorCategory = ErrorCategory.VALIDATION


@dataclass(eq=False)
class AlreadyClaimedError(MiningError):
    message: str = "already claimed by someone else"
    reason: str = "already_claimed"
    category: ErrorCategory = ErrorCategory.RACE_LOST
    retryable: bool = True


@dataclass(eq=False)
class NoActiveRoundError(MiningError):
    message: str = "no active round"
    reason: str = "no_active_round"
    category: ErrorCategory = ErrorCategory.RACE_LOST
    retryable: bool = True


@dataclass(eq=False)
class SupplyExhaustedError(MiningError):
    message: str = "supply exhausted"
    reason: str = "supply_exhausted"
    category: ErrorCategory = ErrorCategory.RESOURCE_EXHAUSTED


@dataclass(eq=False)
class AttestationError(MiningError):
    message: str = "payment attestation rejected"
    reason: str = "attestation"
    category: ErrorCategory = ErrorCategory.AUTHORIZATION


HTTP_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.RESOURCE_EXHAUSTED: 409,
    ErrorCategory.RACE_LOST: 409,
    ErrorCategory.INTERNAL: 500,
}


def http_status(exc: MiningError) -> int:
    return HTTP_STATUS.get(exc.category, 500)


__all__ = [
    "ErrorCategory",
    "MiningError",
    "InvalidModeError",
    "ModeLockedError",
    "InsufficientEnergyError",
    "NotJoinedError",
    "InvalidProofError",
    "AlreadyClaimedError",
    "NoActiveRoundError",
    "SupplyExhaustedError",
    "AttestationError",
    "http_status",
]
