"""
auth/validation.py -- Credential Validator for sign-up, sign-in, password changes and resets.

Pattern: one validation function per payload kind. Each function receives the
whole raw payload, runs the Pydantic field rules AND the cross-field rules in
the same pass, and either returns a typed request object or raises
ValidationFailed listing every violation it found. There is no partial
success: a payload with one bad field and one missing identifier reports both.

Sign-in identifier rule:
  Exactly one of email / phone must be supplied. This is evaluated as a single
  rule over the payload rather than as "required unless sibling present" on
  each field, which would let both-present slip through. Neither present is
  reported as identifier_missing, both present as identifier_ambiguous.
  Empty and whitespace-only strings count as absent.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

from auth.errors import ValidationFailed, Violation
from auth.passwords import MAX_PASSWORD_BYTES

NAME_PATTERN = r"^[A-Za-z\s]+$"
PHONE_PATTERN = r"^\+?[0-9]{10,15}$"
MIN_PASSWORD_LENGTH = 8

IDENTIFIER_FIELDS = ("email", "phone")

_URL_ADAPTER: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)

# Friendlier messages for the rules users trip over most. Anything not listed
# falls back to Pydantic's own message.
_MESSAGES: dict[tuple[str, str], str] = {
    ("name", "string_pattern_mismatch"): "Name must contain only letters and spaces",
    ("name", "string_too_short"): "Name must be at least 2 characters",
    ("phone", "string_pattern_mismatch"): "Phone number must be 10 to 15 digits",
    ("email", "value_error"): "Email must be a valid email address",
    ("password", "string_too_short"): f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
    ("new_password", "string_too_short"): f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
}

_ModelT = TypeVar("_ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Typed request objects
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Normalized sign-up payload. Produced only by validate_sign_up()."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    email: EmailStr
    phone: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    image: Optional[str] = None

    @field_validator("name", "email", "phone", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)

    @field_validator("image", mode="before")
    @classmethod
    def blank_image(cls, value: Any) -> Any:
        return _blank_to_none(_strip(value))

    @field_validator("image")
    @classmethod
    def image_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        try:
            _URL_ADAPTER.validate_python(value)
        except ValidationError:
            raise ValueError("Image must be a valid URL") from None
        return value


class SignInRequest(BaseModel):
    """Normalized sign-in payload carrying exactly one identifier.

    Produced only by validate_sign_in(), which enforces the exactly-one rule;
    constructing this model directly does not.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    # Only presence is checked here. A password below the sign-up minimum can
    # never match a stored hash, so it fails as InvalidCredentials instead.
    password: str = Field(min_length=1)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_identifier(cls, value: Any) -> Any:
        return _blank_to_none(_strip(value))

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value is not None else None

    @field_validator("password")
    @classmethod
    def password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)

    @property
    def identifier_field(self) -> str:
        return "email" if self.email is not None else "phone"

    @property
    def identifier(self) -> str:
        return self.email if self.email is not None else self.phone  # type: ignore[return-value]


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class PasswordResetRequest(BaseModel):
    """A reset token plus the replacement password.

    confirm_password is optional; when sent it must match new_password.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    token: str = Field(min_length=1)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirm_password: Optional[str] = None

    @field_validator("new_password")
    @classmethod
    def password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Validation entry points
# ---------------------------------------------------------------------------


def _violations_from(exc: ValidationError) -> list[Violation]:
    violations: list[Violation] = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else "body"
        code = err["type"]
        message = _MESSAGES.get((field, code))
        if message is None:
            message = str(err["msg"]).removeprefix("Value error, ")
        violations.append(Violation(field=field, code=code, message=message))
    return violations


def _run(
    model: type[_ModelT],
    payload: Any,
    cross_field: Callable[[Mapping[str, Any]], list[Violation]] | None = None,
) -> _ModelT:
    """Validate payload against model plus cross-field rules in one pass."""
    if not isinstance(payload, Mapping):
        raise ValidationFailed([Violation("body", "invalid_type", "Request body must be a JSON object.")])

    violations: list[Violation] = []
    if cross_field is not None:
        violations.extend(cross_field(payload))

    result: _ModelT | None = None
    try:
        result = model.model_validate(dict(payload))
    except ValidationError as exc:
        violations.extend(_violations_from(exc))

    if violations or result is None:
        raise ValidationFailed(violations)
    return result


def _exactly_one_identifier(payload: Mapping[str, Any]) -> list[Violation]:
    present = [f for f in IDENTIFIER_FIELDS if _blank_to_none(payload.get(f)) is not None]
    if not present:
        return [Violation("identifier", "identifier_missing", "Provide either an email or a phone number.")]
    if len(present) > 1:
        return [
            Violation(
                "identifier",
                "identifier_ambiguous",
                "Provide either an email or a phone number, not both.",
            )
        ]
    return []


def _new_password_differs(payload: Mapping[str, Any]) -> list[Violation]:
    current = payload.get("current_password")
    new = payload.get("new_password")
    if isinstance(current, str) and current and current == new:
        return [Violation("new_password", "password_unchanged", "New password must differ from the current one.")]
    return []


def validate_sign_up(payload: Any) -> SignUpRequest:
    """Validate a sign-up payload. Raises ValidationFailed with every violation."""
    return _run(SignUpRequest, payload)


def validate_sign_in(payload: Any) -> SignInRequest:
    """Validate a sign-in payload, including the exactly-one-identifier rule."""
    return _run(SignInRequest, payload, _exactly_one_identifier)


def validate_password_change(payload: Any) -> PasswordChangeRequest:
    return _run(PasswordChangeRequest, payload, _new_password_differs)


def validate_refresh(payload: Any) -> RefreshRequest:
    return _run(RefreshRequest, payload)


def _confirmation_matches(payload: Mapping[str, Any]) -> list[Violation]:
    confirm = payload.get("confirm_password")
    if confirm is not None and confirm != payload.get("new_password"):
        return [Violation("confirm_password", "password_mismatch", "Passwords do not match.")]
    return []


def validate_forgot_password(payload: Any) -> ForgotPasswordRequest:
    return _run(ForgotPasswordRequest, payload)


def validate_password_reset(payload: Any) -> PasswordResetRequest:
    return _run(PasswordResetRequest, payload, _confirmation_matches)
