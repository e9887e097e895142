"""
api/routes/v1/auth.py -- Credential lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/signup     -- create account; 201
  POST /api/v1/auth/signin     -- email-or-phone + password; token pair + cookie
  POST /api/v1/auth/refresh    -- refresh token -> new access token
  POST /api/v1/auth/signout    -- sign out everywhere (requires auth)
  POST /api/v1/auth/password   -- change password, revokes all tokens (requires auth)
  POST /api/v1/auth/password/forgot -- email a reset link; 202 whether or not the email is known
  POST /api/v1/auth/password/reset  -- reset token + new password; revokes all tokens
  GET  /api/v1/auth/me         -- current account (requires auth)

Security:
  POST /signin and POST /password/forgot are rate-limited per IP
  (LOGIN_RATE_LIMIT, default 5/minute).
  AuthService.sign_in() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a token.
  Request bodies are taken as raw JSON and validated by auth/validation.py so
  the exactly-one-identifier rule reports together with field errors.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import AccessTokenResponse, AccountResponse, MessageResponse, SignInResponse
from auth.dependencies import clear_auth_cookie, get_current_account, set_auth_cookie
from auth.models import Account
from auth.service import AuthService

logger = logging.getLogger("quill.api")

# Auth policy:
# - POST /api/v1/auth/signup:    public
# - POST /api/v1/auth/signin:    public, rate limited
# - POST /api/v1/auth/refresh:   public -- the refresh token is the credential
# - POST /api/v1/auth/password/forgot: public, rate limited
# - POST /api/v1/auth/password/reset:  public -- the reset token is the credential
# - POST /api/v1/auth/signout:   requires auth (get_current_account)
# - POST /api/v1/auth/password:  requires auth (get_current_account)
# - GET  /api/v1/auth/me:        requires auth (get_current_account)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AccountResponse, status_code=201)
def signup(request: Request, payload: Any = Body(...)) -> AccountResponse:
    """Create an account from {name, email, phone, password, image?}.

    409 duplicate_identifier names the field (email or phone) already taken.
    """
    account = _service(request).sign_up(payload)
    return AccountResponse.from_account(account)


@router.post("/auth/signin", response_model=SignInResponse)
@limiter.limit(login_rate_limit)  # must be BELOW @router so the registered endpoint is the limited wrapper
def signin(request: Request, payload: Any = Body(...)) -> JSONResponse:
    """Authenticate with exactly one of email / phone plus password.

    Unknown identifier and wrong password both answer 401 invalid_credentials.
    """
    result = _service(request).sign_in(payload)
    access = result.tokens.access
    body = SignInResponse(
        access_token=access.value,
        refresh_token=result.tokens.refresh.value,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=int((access.expires_at - access.issued_at).total_seconds()),
        account=AccountResponse.from_account(result.account),
    )
    resp = JSONResponse(status_code=200, content=body.model_dump())
    set_auth_cookie(resp, access.value, max_age=body.expires_in, secure=request.app.state.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/refresh", response_model=AccessTokenResponse)
async def refresh(request: Request, payload: Any = Body(...)) -> JSONResponse:
    """Trade a refresh token for a new access token.

    Refresh tokens carry the same counter snapshot as their access token, so
    a sign-out or password change kills them too.
    """
    token = await _service(request).refresh(payload)
    body = AccessTokenResponse.from_issued(token)
    resp = JSONResponse(status_code=200, content=body.model_dump())
    set_auth_cookie(resp, token.value, max_age=body.expires_in, secure=request.app.state.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountResponse)
async def me(current_account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return the account behind the presented token."""
    return AccountResponse.from_account(current_account)


@router.post("/auth/signout", response_model=MessageResponse)
def signout(request: Request, current_account: Account = Depends(get_current_account)) -> JSONResponse:
    """Sign out everywhere: revoke every token issued to this account and clear the cookie."""
    _service(request).sign_out(current_account.id)
    resp = JSONResponse(content={"message": "Signed out on all devices."})
    clear_auth_cookie(resp)
    return resp


@router.post("/auth/password", status_code=204)
def change_password(
    request: Request,
    payload: Any = Body(...),
    current_account: Account = Depends(get_current_account),
) -> Response:
    """Change the password. All existing tokens, including this one, stop working."""
    _service(request).change_password(current_account.id, payload)
    resp = Response(status_code=204)
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/password/forgot", response_model=MessageResponse, status_code=202)
@limiter.limit(login_rate_limit)
def forgot_password(request: Request, payload: Any = Body(...)) -> MessageResponse:
    """Send a reset link to {email}. The answer is the same for unknown emails."""
    _service(request).request_password_reset(payload)
    return MessageResponse(message="If an account exists for that email, a reset link has been sent.")


@router.post("/auth/password/reset", status_code=204)
async def reset_password(request: Request, payload: Any = Body(...)) -> Response:
    """Set a new password from {token, new_password, confirm_password?}.

    Every existing token stops working, the reset token included.
    """
    await _service(request).reset_password(payload)
    resp = Response(status_code=204)
    clear_auth_cookie(resp)
    return resp
