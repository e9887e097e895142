"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

bcrypt.checkpw compares digests in constant time, so verify_password has no
early-exit timing leak. dummy_hash() supports the sign-in timing equalization:
when an identifier is unknown the caller still pays for one bcrypt check.

Hashing failures are internal errors and propagate. Verification never raises:
a corrupt stored digest simply does not match.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of its input. The validator rejects
# longer passwords so two different passwords can never share a hash.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def dummy_hash(rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash used to burn the same bcrypt cost when no account matched.

    Cached per cost factor so only the first unknown-identifier sign-in pays
    for generating it.
    """
    return hash_password("quill_timing_dummy", rounds=rounds)
