"""
test_proof.py - Proof digest and difficulty predicate.
"""

import hashlib

import pytest

from roundmint import proof


def test_compute_matches_client_format():
    expected = hashlib.sha256(b"7:12345:alice").hexdigest()
    assert proof.compute(7, 12345, "alice") == expected


def test_compute_is_lowercase_hex_of_fixed_length():
    digest = proof.compute(1, 0, "user-é")
    assert len(digest) == proof.HASH_LENGTH
    assert digest == digest.lower()


def test_identity_changes_digest():
    assert proof.compute(1, 1, "alice") != proof.compute(1, 1, "bob")


def test_nonce_changes_digest():
    digests = {proof.compute(1, nonce, "alice") for nonce in range(50)}
    assert len(digests) == 50


def test_search_result_is_specific_to_nonce():
    nonce, digest = proof.search(2, "alice", 3)
    assert proof.compute(2, nonce + 1, "alice") != digest
    assert proof.verify(2, nonce, "alice", 3)[0]


class TestIsValid:

    def test_leading_zeros(self):
        assert proof.leading_zeros("000a" + "f" * 60) == 3
        assert proof.leading_zeros("f" * 64) == 0

    def test_meets_difficulty(self):
        digest = "0000" + "ab" * 30
        assert proof.is_valid(digest, 4)
        assert proof.is_valid(digest, 3)
        assert not proof.is_valid(digest, 5)

    def test_zero_difficulty_accepts_any_hex(self):
        assert proof.is_valid("f" * 64, 0)

    def test_rejects_wrong_length(self):
        assert not proof.is_valid("0000abc", 4)

    def test_rejects_uppercase_and_non_hex(self):
        assert not proof.is_valid("0000" + "AB" * 30, 4)
        assert not proof.is_valid("0000" + "zz" * 30, 4)


class TestVerifyAndSearch:

    def test_search_then_verify(self):
        nonce, digest = proof.search(3, "carol", 3)
        valid, computed = proof.verify(3, nonce, "carol", 3)
        assert valid
        assert computed == digest
        assert digest.startswith("000")

    def test_verify_is_bound_to_round(self):
        nonce, _ = proof.search(3, "carol", 3)
        _, other = proof.verify(4, nonce, "carol", 3)
        assert other != proof.compute(3, nonce, "carol")

    def test_search_gives_up(self):
        with pytest.raises(RuntimeError):
            proof.search(1, "dave", 64, max_attempts=10)
