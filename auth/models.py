"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, token and service modules do the work.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

STATUS_LOGGED_IN = "logged_in"
STATUS_LOGGED_OUT = "logged_out"


class TokenType(str, Enum):
    access = "access"
    refresh = "refresh"
    password_reset = "password_reset"


@dataclass
class Account:
    """A registered identity that can sign in with email or phone.

    token_version is the revocation counter. It starts at 0 and is only ever
    incremented by the store on behalf of the revocation controller; every
    token embeds the value current at issuance and stops verifying as soon as
    the stored value moves past it.

    image is the public URL of the profile picture; image_public_id is the
    object-storage identifier needed to delete it. Both are None when the
    account has no picture, or when the image is an external URL supplied at
    sign-up (image set, image_public_id None).
    """

    name: str
    email: str
    phone: str
    hashed_password: str
    id: int | None = None
    image: str | None = None
    image_public_id: str | None = None
    token_version: int = 0
    status: str = STATUS_LOGGED_OUT
    created_at: str | None = None
    last_login_at: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    """A freshly signed token plus the claims it carries. Never persisted."""

    value: str
    account_id: int
    token_version: int
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken


@dataclass(frozen=True)
class Identity:
    """The result of a successful verification: who the bearer is."""

    account_id: int
    token_version: int
    token_type: TokenType
    expires_at: datetime
