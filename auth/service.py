"""
auth/service.py -- Credential lifecycle flows: sign-up, sign-in, refresh, sign-out,
password change and password reset.

Pattern: Service layer. AuthService wires the validator, password hasher,
AccountStore, TokenIssuer/TokenVerifier, RevocationController and the reset
notifier together. Routes call one method per endpoint and translate AuthError
into HTTP.

Enumeration safety:
  sign_in() always runs exactly one bcrypt check, against the dummy hash when
  the identifier is unknown, and raises the same InvalidCredentials for an
  unknown identifier and a wrong password. request_password_reset() returns
  quietly for an unknown email.

Counter snapshot:
  sign_in() issues tokens with the token_version read during the lookup. If a
  revocation lands between the lookup and issuance the new tokens are born
  stale and fail verification. That is the safe direction.

Password reset:
  The reset token carries the same ver snapshot as any other token. Using it
  stores the new hash and bumps the counter in one conditional write, so the
  reset kills every earlier access and refresh token AND the reset token
  itself. A second use fails as Revoked.

Deadlines:
  refresh() and reset_password() are async and read the counter through
  TokenVerifier.verify_with_timeout(), so a stuck store fails closed.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from auth.errors import AccountNotFound, InvalidCredentials
from auth.models import Account, IssuedToken, TokenPair, TokenType
from auth.notifications import LoggingResetNotifier, ResetNotifier
from auth.passwords import DEFAULT_ROUNDS, dummy_hash, hash_password, verify_password
from auth.revocation import RevocationController, RevocationReason
from auth.store import AccountStore
from auth.tokens import TokenIssuer, TokenVerifier
from auth.validation import (
    validate_forgot_password,
    validate_password_change,
    validate_password_reset,
    validate_refresh,
    validate_sign_in,
    validate_sign_up,
)

logger = logging.getLogger("quill.auth")


@dataclass(frozen=True)
class SignInResult:
    account: Account
    tokens: TokenPair


class AuthService:
    def __init__(
        self,
        store: AccountStore,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        revocation: RevocationController,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        store_timeout_seconds: float = 2.0,
        notifier: ResetNotifier | None = None,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.verifier = verifier
        self.revocation = revocation
        self.bcrypt_rounds = bcrypt_rounds
        self.store_timeout_seconds = store_timeout_seconds
        self.notifier = notifier or LoggingResetNotifier()

    # ------------------------------------------------------------------
    # Sign-up / sign-in
    # ------------------------------------------------------------------

    def sign_up(self, payload: object) -> Account:
        """Validate, hash and create. Raises ValidationFailed or DuplicateIdentifier."""
        request = validate_sign_up(payload)
        account = Account(
            name=request.name,
            email=request.email,
            phone=request.phone,
            hashed_password=hash_password(request.password, rounds=self.bcrypt_rounds),
            image=request.image,
        )
        return self.store.create_account(account)

    def sign_in(self, payload: object) -> SignInResult:
        """Authenticate by email or phone and issue an access/refresh pair."""
        request = validate_sign_in(payload)
        if request.identifier_field == "email":
            account = self.store.get_by_email(request.identifier)
        else:
            account = self.store.get_by_phone(request.identifier)

        if account is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(request.password, dummy_hash(self.bcrypt_rounds))
            logger.info("Sign-in failed: unknown %s", request.identifier_field)
            raise InvalidCredentials()
        if not verify_password(request.password, account.hashed_password):
            logger.info("Sign-in failed: wrong password for account %s", account.id)
            raise InvalidCredentials()

        self.store.mark_signed_in(account.id)
        tokens = self.issuer.issue_pair(account.id, account.token_version)
        logger.info("Account %s signed in via %s", account.id, request.identifier_field)
        refreshed = self.store.get_by_id(account.id) or account
        return SignInResult(account=refreshed, tokens=tokens)

    async def refresh(self, payload: object) -> IssuedToken:
        """Exchange a fresh refresh token for a new access token at the same version."""
        request = validate_refresh(payload)
        identity = await self.verifier.verify_with_timeout(
            request.refresh_token, self.store_timeout_seconds, TokenType.refresh
        )
        return self.issuer.issue(identity.account_id, identity.token_version, TokenType.access)

    # ------------------------------------------------------------------
    # Revoking flows
    # ------------------------------------------------------------------

    def sign_out(self, account_id: int) -> int:
        """Sign out everywhere: every token issued so far stops verifying."""
        version = self.revocation.revoke_all(account_id, RevocationReason.sign_out_everywhere)
        self.store.mark_signed_out(account_id)
        return version

    def change_password(self, account_id: int, payload: object) -> int:
        """Check the current password, store the new hash and revoke atomically.

        Returns the new token_version. The caller has to sign in again.
        """
        request = validate_password_change(payload)
        account = self.store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        if not verify_password(request.current_password, account.hashed_password):
            raise InvalidCredentials("Current password is incorrect.")
        hashed = hash_password(request.new_password, rounds=self.bcrypt_rounds)
        return self.revocation.change_password(account_id, hashed)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, payload: object) -> None:
        """Issue a reset token for the email's account and hand it to the notifier.

        An unknown email returns normally with nothing sent, so the caller
        cannot tell registered addresses from unregistered ones.
        """
        request = validate_forgot_password(payload)
        account = self.store.get_by_email(request.email)
        if account is None:
            logger.info("Password reset requested for an unknown email")
            return
        token = self.issuer.issue(account.id, account.token_version, TokenType.password_reset)
        self.notifier.send_password_reset(account, token)
        logger.info("Password reset token issued for account %s", account.id)

    async def reset_password(self, payload: object) -> int:
        """Set a new password from a reset token. Returns the new token_version.

        Raises a VerificationFailure for a bad, expired or already used token.
        """
        request = validate_password_reset(payload)
        identity = await self.verifier.verify_with_timeout(
            request.token, self.store_timeout_seconds, TokenType.password_reset
        )
        hashed = await run_in_threadpool(hash_password, request.new_password, rounds=self.bcrypt_rounds)
        version = await run_in_threadpool(
            self.revocation.change_password,
            identity.account_id,
            hashed,
            identity.token_version,
            RevocationReason.password_reset,
        )
        await run_in_threadpool(self.store.mark_signed_out, identity.account_id)
        return version
