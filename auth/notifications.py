"""
auth/notifications.py -- Delivery seam for password-reset tokens.

Pattern: Protocol + one concrete adapter, like media/storage.py. AuthService
hands a freshly issued reset token to a ResetNotifier and never learns how it
reaches the account holder. A mail or SMS sender only has to implement
send_password_reset().

LoggingResetNotifier is the default. It records that a reset was issued and
when it expires; the token itself is never logged. Deployments that want
working resets inject a real sender.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import Account, IssuedToken

logger = logging.getLogger("quill.notify")


class ResetNotifier(Protocol):
    def send_password_reset(self, account: Account, token: IssuedToken) -> None: ...


class LoggingResetNotifier:
    def send_password_reset(self, account: Account, token: IssuedToken) -> None:
        logger.info(
            "Password reset issued for account %s (expires %s); no delivery channel configured",
            account.id,
            token.expires_at.isoformat(),
        )
