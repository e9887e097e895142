"""
auth/tokens.py -- JWT issuing and verification with counter-based revocation.

Security design decisions:
  JWT: python-jose, HS256 by default. Claims:
         sub  -- account id (string, as RFC 7519 requires)
         ver  -- the account's token_version at issuance
         typ  -- "access", "refresh" or "password_reset"
         iat  -- issuance time
         exp  -- expiry horizon (fixed duration from iat)

  Revocation without a session store: a token is fresh only while its ver
       claim equals the account's stored token_version. Bumping the counter
       (sign-out, password change, compromise) instantly strands every token
       issued before it. The price is one store read per verification; there
       is deliberately no cache in front of that read.

  Verification order: decode (Malformed) -> signature (Tampered) -> expiry
       (Expired) -> claim shape (Malformed) -> counter (Revoked). Store errors
       and deadline overruns fail closed with StoreUnavailable so callers never
       confuse "could not check" with "known invalid".

  Config: TokenConfig is built explicitly and handed to TokenIssuer /
       TokenVerifier at startup. Nothing here reads process-wide settings, so
       each test can sign with its own secret.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from auth.errors import StoreUnavailable, TokenExpired, TokenMalformed, TokenRevoked, TokenTampered
from auth.models import Identity, IssuedToken, TokenPair, TokenType

if TYPE_CHECKING:
    from auth.store import AccountStore

logger = logging.getLogger("quill.auth")

_REQUIRED_CLAIMS = ("sub", "ver", "typ", "iat", "exp")


@dataclass(frozen=True)
class TokenConfig:
    """Signing secret and lifetimes. Owned by configuration, not by this module."""

    secret_key: str
    algorithm: str = "HS256"
    access_ttl_seconds: int = 15 * 60
    refresh_ttl_seconds: int = 7 * 24 * 3600
    reset_ttl_seconds: int = 60 * 60

    def ttl_for(self, token_type: TokenType) -> int:
        if token_type is TokenType.refresh:
            return self.refresh_ttl_seconds
        if token_type is TokenType.password_reset:
            return self.reset_ttl_seconds
        return self.access_ttl_seconds


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints signed, time-bounded tokens embedding a counter snapshot.

    The issuer trusts its caller: AuthService only calls issue() after the
    password check passed, or after a refresh token verified.
    """

    def __init__(self, config: TokenConfig) -> None:
        self._config = config

    def issue(
        self,
        account_id: int,
        token_version: int,
        token_type: TokenType = TokenType.access,
        now: datetime | None = None,
    ) -> IssuedToken:
        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=self._config.ttl_for(token_type))
        payload = {
            "sub": str(account_id),
            "ver": token_version,
            "typ": token_type.value,
            "iat": issued_at,
            "exp": expires_at,
        }
        value = jwt.encode(payload, self._config.secret_key, algorithm=self._config.algorithm)
        return IssuedToken(
            value=value,
            account_id=account_id,
            token_version=token_version,
            token_type=token_type,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def issue_pair(self, account_id: int, token_version: int) -> TokenPair:
        """Issue an access token and a refresh token bound to the same version."""
        now = datetime.now(timezone.utc)
        return TokenPair(
            access=self.issue(account_id, token_version, TokenType.access, now=now),
            refresh=self.issue(account_id, token_version, TokenType.refresh, now=now),
        )


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TokenVerifier:
    """Checks signature, expiry and counter freshness of presented tokens."""

    def __init__(self, config: TokenConfig, store: AccountStore) -> None:
        self._config = config
        self._store = store

    def decode(self, token: str, expected_type: TokenType = TokenType.access) -> Identity:
        """Run the stateless checks only: structure, signature, expiry, claim shape.

        Does not consult the store, so a decoded Identity may still be revoked.
        """
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenMalformed() from exc

        try:
            claims = jwt.decode(token, self._config.secret_key, algorithms=[self._config.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTClaimsError as exc:
            raise TokenMalformed() from exc
        except JWTError as exc:
            raise TokenTampered() from exc

        return _identity_from_claims(claims, expected_type)

    def verify(self, token: str, expected_type: TokenType = TokenType.access) -> Identity:
        """Full verification, including the store read for counter freshness."""
        identity = self.decode(token, expected_type)
        try:
            current = self._store.get_token_version(identity.account_id)
        except SQLAlchemyError as exc:
            logger.error("Token verification could not read account %s: %s", identity.account_id, exc)
            raise StoreUnavailable() from exc
        _check_fresh(identity, current)
        return identity

    async def verify_with_timeout(
        self,
        token: str,
        timeout: float,
        expected_type: TokenType = TokenType.access,
    ) -> Identity:
        """Async verification bounded by a deadline. A timeout fails closed."""
        identity = self.decode(token, expected_type)
        try:
            current = await asyncio.wait_for(
                run_in_threadpool(self._store.get_token_version, identity.account_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Token verification timed out after %.2fs for account %s", timeout, identity.account_id)
            raise StoreUnavailable() from exc
        except SQLAlchemyError as exc:
            logger.error("Token verification could not read account %s: %s", identity.account_id, exc)
            raise StoreUnavailable() from exc
        _check_fresh(identity, current)
        return identity


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _identity_from_claims(claims: dict, expected_type: TokenType) -> Identity:
    if any(name not in claims for name in _REQUIRED_CLAIMS):
        raise TokenMalformed()
    try:
        account_id = int(claims["sub"])
        token_type = TokenType(claims["typ"])
    except (TypeError, ValueError) as exc:
        raise TokenMalformed() from exc
    version = claims["ver"]
    # bool is an int subclass; a "ver": true claim is not a counter.
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        raise TokenMalformed()
    if token_type is not expected_type:
        raise TokenMalformed(f"Expected token type '{expected_type.value}'.")
    return Identity(
        account_id=account_id,
        token_version=version,
        token_type=token_type,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )


def _check_fresh(identity: Identity, current: int | None) -> None:
    if current is None or current != identity.token_version:
        raise TokenRevoked()
