"""
auth/tokens.py -- JWT session token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), email, role, iat, exp, iss and aud. iss/aud pin a token
       to this deployment; a token minted by another deployment sharing the
       key is still rejected.

  Stateless: there is no session table. The only revocation paths are a
       password change (tokens with iat before password_changed_at are
       rejected) and deactivation (is_active is re-read on every request).

  Live identity: verify_token() returns the User re-read from the store,
       never the token's embedded snapshot, so a role change takes effect on
       the next request.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates the key at startup.

Layer rule: no imports from api/, tasks/, or admin/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import ExpiredToken, InvalidToken, Unauthenticated

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("taskflow.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "role", "iat", "exp")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, issued_at: datetime | None = None, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the given user.

    Args:
        user:           The identity the token is bound to.
        issued_at:      Mint time. Defaults to now; tests pass an explicit
                        time to place a token before or after a password change.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (7 days).
    """
    settings = get_settings()
    iat = issued_at or datetime.now(timezone.utc)
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
        "iat": int(iat.timestamp()),
        "exp": iat + timedelta(seconds=duration),
        "iss": settings.token_issuer,
        "aud": settings.token_audience,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT's signature, expiry, issuer and audience.

    Raises ExpiredToken past exp, InvalidToken on any other failure
    (bad signature, wrong iss/aud, malformed or missing claims).
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[_ALGORITHM],
            audience=settings.token_audience,
            issuer=settings.token_issuer,
        )
    except ExpiredSignatureError as exc:
        raise ExpiredToken() from exc
    except JWTError as exc:
        raise InvalidToken() from exc
    if any(claim not in payload for claim in _REQUIRED_CLAIMS):
        raise InvalidToken()
    # jose only rejects once exp < now; the token is dead from exp onwards.
    if payload["exp"] <= int(datetime.now(timezone.utc).timestamp()):
        raise ExpiredToken()
    return payload


# ---------------------------------------------------------------------------
# Verification against the store
# ---------------------------------------------------------------------------


def _changed_password_after(user: User, issued_at: int) -> bool:
    """Return True if the user's password changed after the token was minted."""
    if not user.password_changed_at:
        return False
    changed = datetime.fromisoformat(user.password_changed_at)
    if changed.tzinfo is None:
        changed = changed.replace(tzinfo=timezone.utc)
    return issued_at < int(changed.timestamp())


def verify_token(store: UserStore, token: str) -> User:
    """Resolve a token to the live User, or raise.

    Raises:
        InvalidToken:    signature, issuer, audience or claim shape is wrong.
        ExpiredToken:    exp is in the past.
        Unauthenticated: the user was deleted, deactivated, or changed their
                         password after this token was issued.
    """
    payload = decode_access_token(token)
    user = store.get_by_id(str(payload["sub"]))
    if user is None:
        raise Unauthenticated("User belonging to this token no longer exists.")
    if not user.is_active:
        raise Unauthenticated("User account has been deactivated.")
    if _changed_password_after(user, int(payload["iat"])):
        raise Unauthenticated("Password recently changed. Please log in again.")
    return user
