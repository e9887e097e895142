"""
API response models for Quill REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request bodies are NOT modelled here: auth/validation.py validates whole raw
payloads so cross-field rules and field rules report together.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, IssuedToken

# ---------------------------------------------------------------------------
# Accounts and tokens
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    phone: str
    image: Optional[str] = None
    status: str
    token_version: int
    created_at: str = ""
    last_login_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            phone=account.phone,
            image=account.image,
            status=account.status,
            token_version=account.token_version,
            created_at=account.created_at or "",
            last_login_at=account.last_login_at,
        )


class AccessTokenResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_issued(cls, token: IssuedToken) -> "AccessTokenResponse":
        return cls(
            access_token=token.value,
            expires_in=int((token.expires_at - token.issued_at).total_seconds()),
        )


class SignInResponse(BaseModel):
    """Response for POST /api/v1/auth/signin: token pair plus minimal identity."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    detail is a string for framework errors and a list of
    {field, code, message} objects for validation_failed.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
