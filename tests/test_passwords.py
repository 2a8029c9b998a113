"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - hash/verify round trip and rejection of a wrong password
  - fresh salt per hash
  - malformed hashes and over-long passwords are non-matches, not errors
"""

from __future__ import annotations

from auth.passwords import dummy_hash, hash_password, verify_password


class TestHashPassword:
    def test_round_trip(self) -> None:
        hashed = hash_password("password123", rounds=4)
        assert verify_password("password123", hashed)

    def test_wrong_password_rejected(self) -> None:
        hashed = hash_password("password123", rounds=4)
        assert not verify_password("password124", hashed)

    def test_same_password_gets_distinct_hashes(self) -> None:
        assert hash_password("password123", rounds=4) != hash_password("password123", rounds=4)

    def test_hash_is_bcrypt_format(self) -> None:
        hashed = hash_password("password123", rounds=4)
        assert hashed.startswith("$2")
        assert len(hashed) == 60


class TestVerifyPassword:
    def test_malformed_hash_is_non_match(self) -> None:
        assert verify_password("password123", "not-a-bcrypt-hash") is False

    def test_none_hash_is_non_match(self) -> None:
        assert verify_password("password123", None) is False

    def test_over_long_password_does_not_raise(self) -> None:
        # Older bcrypt truncates at 72 bytes, newer raises; neither escapes.
        hashed = hash_password("a" * 72, rounds=4)
        assert isinstance(verify_password("a" * 100, hashed), bool)

    def test_dummy_hash_never_matches_real_input(self) -> None:
        assert not verify_password("password123", dummy_hash(4))
