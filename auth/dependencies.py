"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the sign-in response.
  2. Authorization: Bearer <token> header -- API clients.

Every authenticated request goes through TokenVerifier.verify_with_timeout(),
which reads the account's current token_version under the configured store
deadline. Verification failures propagate as AuthError subclasses and are
turned into 401 / 503 responses by the handler in api/main.py.

Layer rule: no imports from api/ or media/.
  auth/dependencies.py may import from fastapi (for Request/HTTPException)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from auth.errors import StoreUnavailable, TokenRevoked
from auth.models import Account, Identity
from auth.store import AccountStore
from auth.tokens import TokenVerifier

logger = logging.getLogger("quill.auth")

COOKIE_NAME = "access_token"


def extract_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


async def get_current_identity(request: Request) -> Identity:
    """Require a fresh access token. Raises HTTP 401 if none was presented."""
    token = extract_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    verifier: TokenVerifier = request.app.state.token_verifier
    return await verifier.verify_with_timeout(token, request.app.state.store_timeout_seconds)


async def get_current_account(request: Request) -> Account:
    """Require authentication and load the account behind the token.

    The account read runs under the same store deadline as the counter read,
    and fails closed the same way.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    identity = await get_current_identity(request)
    store: AccountStore = request.app.state.account_store
    timeout: float = request.app.state.store_timeout_seconds
    try:
        account = await asyncio.wait_for(run_in_threadpool(store.get_by_id, identity.account_id), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Account load timed out after %.2fs for account %s", timeout, identity.account_id)
        raise StoreUnavailable() from exc
    except SQLAlchemyError as exc:
        logger.error("Could not load account %s: %s", identity.account_id, exc)
        raise StoreUnavailable() from exc
    if account is None:
        raise TokenRevoked()
    return account


def set_auth_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age: matches the token lifetime so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME)
