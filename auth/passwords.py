"""
auth/passwords.py -- bcrypt password hashing with timing equalization.

Passwords: bcrypt directly (no passlib wrapper). Each hash gets its own
random salt from bcrypt.gensalt(); the cost factor comes from
Settings.bcrypt_rounds (default 12). Hashing is deliberately slow -- routes
that call into this module are sync handlers so FastAPI runs them in its
thread pool instead of on the event loop.

The dummy hash enables timing equalization in UserStore.verify_credentials()
so response time does not reveal whether an email is registered.

Layer rule: no imports from api/, tasks/, or admin/.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

from core.config import get_settings

# bcrypt only looks at the first 72 bytes. The API layer caps passwords at
# 128 characters; anything beyond 72 bytes is truncated, never rejected.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash is
    treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """Hash checked when no account matches, so misses cost the same as hits.

    Computed once, lazily, with the configured cost factor. Lazy so that
    importing this module never pays for a bcrypt round.
    """
    return hash_password("taskflow_timing_dummy")
