"""
auth/revocation.py -- Revocation Controller: the only caller that advances token_version.

revoke_all() bumps the account's counter, which permanently strands every token
issued before the bump. There is no grace period and no list of revoked tokens
to maintain. Repeated calls keep invalidating; nothing ever re-validates an old
token because the counter never moves backwards.

Triggers (RevocationReason):
  sign_out_everywhere -- explicit sign-out
  password_change     -- counter bumped in the same UPDATE as the new hash
  password_reset      -- same write, conditional on the reset token's snapshot
  compromise          -- report_compromise(), the policy hook for detectors

Transient store failures (SQLite "database is locked", dropped connections)
are retried with tenacity. When retries run out the caller gets
StoreUnavailable; the write is never silently dropped.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import RetryError, Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from auth.errors import StoreUnavailable

if TYPE_CHECKING:
    from auth.store import AccountStore

logger = logging.getLogger("quill.auth")

T = TypeVar("T")


class RevocationReason(str, Enum):
    sign_out_everywhere = "sign_out_everywhere"
    password_change = "password_change"
    password_reset = "password_reset"
    compromise = "compromise"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class RevocationController:
    """Advances per-account revocation counters through the AccountStore.

    Usage:
        controller = RevocationController(store)
        new_version = controller.revoke_all(account_id, RevocationReason.sign_out_everywhere)
    """

    def __init__(self, store: AccountStore, max_attempts: int = 3, retry_wait_seconds: float = 0.1) -> None:
        self._store = store
        self._max_attempts = max(1, max_attempts)
        self._retry_wait = retry_wait_seconds

    def _with_retry(self, operation: Callable[[], T]) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=self._retry_wait * 8),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=False,
        )
        try:
            return retrying(operation)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error("Revocation failed after %d attempts: %s", self._max_attempts, last)
            raise StoreUnavailable() from last

    def revoke_all(self, account_id: int, reason: RevocationReason = RevocationReason.sign_out_everywhere) -> int:
        """Invalidate every outstanding token for the account. Returns the new counter.

        Raises AccountNotFound if the account does not exist.
        """
        version = self._with_retry(lambda: self._store.increment_token_version(account_id))
        logger.info("Revoked all tokens for account %s (reason=%s, token_version=%d)", account_id, reason.value, version)
        return version

    def change_password(
        self,
        account_id: int,
        hashed_password: str,
        expected_version: int | None = None,
        reason: RevocationReason = RevocationReason.password_change,
    ) -> int:
        """Store a new password hash and revoke in the same write. Returns the new counter.

        expected_version makes the write conditional on the counter not having
        moved (see AccountStore.update_password); a lost race raises TokenRevoked.
        """
        version = self._with_retry(
            lambda: self._store.update_password(account_id, hashed_password, expected_version=expected_version)
        )
        logger.info(
            "Password changed for account %s (reason=%s, token_version=%d)",
            account_id,
            reason.value,
            version,
        )
        return version

    def report_compromise(self, account_id: int) -> int:
        """Policy hook for credential-compromise detectors: revoke immediately."""
        logger.warning("Credential compromise reported for account %s", account_id)
        return self.revoke_all(account_id, RevocationReason.compromise)

