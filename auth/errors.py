"""
auth/errors.py -- Exception taxonomy for the credential lifecycle.

Every error the auth core raises on purpose is an AuthError. Each subclass
carries a stable machine-readable code and the HTTP status the API layer
should answer with, so api/main.py can translate the whole family with a
single exception handler.

Enumeration safety: InvalidCredentials is raised both for an unknown
identifier and for a wrong password, with the same code and message.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Violation:
    """A single field-level validation failure."""

    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication failed."
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationFailed(AuthError):
    """Raised with the complete list of violations, never a partial one."""

    code = "validation_failed"
    message = "Request validation failed."
    status_code = 422

    def __init__(self, violations: list[Violation]) -> None:
        self.violations = list(violations)
        super().__init__()

    @property
    def fields(self) -> set[str]:
        return {v.field for v in self.violations}

    @property
    def codes(self) -> set[str]:
        return {v.code for v in self.violations}


class DuplicateIdentifier(AuthError):
    code = "duplicate_identifier"
    status_code = 409

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"An account with that {field} already exists.")


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid credentials."
    status_code = 401


class AccountNotFound(AuthError):
    code = "account_not_found"
    message = "Account not found."
    status_code = 404


class VerificationFailure(AuthError):
    """Base for every reason a presented token is refused."""

    code = "invalid_token"
    message = "Invalid token."
    status_code = 401


class TokenMalformed(VerificationFailure):
    code = "token_malformed"
    message = "Token could not be decoded."


class TokenTampered(VerificationFailure):
    code = "token_tampered"
    message = "Token signature is invalid."


class TokenExpired(VerificationFailure):
    code = "token_expired"
    message = "Token has expired."


class TokenRevoked(VerificationFailure):
    code = "token_revoked"
    message = "Token has been revoked."


class StoreUnavailable(AuthError):
    """The account store could not be reached in time. Callers fail closed."""

    code = "unavailable"
    message = "Authentication service is temporarily unavailable."
    status_code = 503
