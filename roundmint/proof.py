"""
proof.py - Proof verifier.

The digest is SHA-256 over the UTF-8 string "<sequence>:<nonce>:<identity>",
rendered as 64 lowercase hex characters. The client-side search loop builds
the exact same string, so both sides must agree byte-for-byte.
"""

import hashlib
import re
from typing import Tuple

HASH_LENGTH = 64

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def compute(sequence: int, nonce: int, identity: str) -> str:
    payload = f"{sequence}:{nonce}:{identity}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def leading_zeros(digest: str) -> int:
    """Length of the leading run of '0' hex digits."""
    return len(digest) - len(digest.lstrip("0"))


def is_valid(digest: str, difficulty: int) -> bool:
    if len(digest) != HASH_LENGTH or not _HEX_RE.match(digest):
        return False
    return leading_zeros(digest) >= difficulty


def verify(sequence: int, nonce: int, identity: str, difficulty: int) -> Tuple[bool, str]:
    """Recompute the digest server-side and check it against the difficulty.

    Returns (valid, digest) so callers can report the computed value next to
    whatever the client claimed it found.
    """
    digest = compute(sequence, nonce, identity)
    return is_valid(digest, difficulty), digest


def search(sequence: int, identity: str, difficulty: int, start_nonce: int = 0,
           max_attempts: int = 10_000_000) -> Tuple[int, str]:
    """Brute-force the first qualifying nonce, like the client worker does.

    Used by the load simulator and tests. Raises RuntimeError when nothing
    qualifies within max_attempts.
    """
    prefix = "0" * difficulty
    for nonce in range(start_nonce, start_nonce + max_attempts):
        digest = compute(sequence, nonce, identity)
        if digest.startswith(prefix):
            return nonce, digest
    raise RuntimeError(
        f"No nonce found for round {sequence} at difficulty {difficulty} "
        f"within {max_attempts} attempts"
    )
