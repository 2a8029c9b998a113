"""
auth/passwords.py -- Password hashing and verification (bcrypt).

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.

Every hash gets a fresh random salt from bcrypt.gensalt(), so two accounts with
the same password never share a hash. The default cost factor is 10.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 10

# bcrypt only looks at the first 72 bytes and newer releases raise on longer input.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash (60 chars) of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed hash or an over-long password is a non-match, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


@lru_cache(maxsize=None)
def dummy_hash(rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash compared against when the account does not exist.

    Running bcrypt at the same cost whether or not the email is known keeps
    response time from revealing which emails have accounts. Cached so only the
    first unknown-email login pays for generating it.
    """
    return hash_password("socialhub_timing_dummy", rounds=rounds)
