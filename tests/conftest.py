"""
tests/conftest.py -- Shared test fixtures for Quill Auth tests.

This module provides:
  - token_config / issuer: isolated signing secret per test
  - store: AccountStore on a uniquely named shared-memory SQLite database
  - file_store: AccountStore on a real file, for multi-threaded tests
  - service: a fully wired AuthService using the store above
  - ada / account: the reference sign-up payload and its stored Account
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any api/ import: api.main reads
get_settings() at import time to configure middleware.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_components
from auth.models import Account
from auth.passwords import hash_password
from auth.revocation import RevocationController
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenConfig, TokenIssuer, TokenVerifier
from core.config import Settings

TEST_ROUNDS = 4

ADA = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "phone": "+12025550123",
    "password": "longpassword",
}


def _memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret_key=uuid.uuid4().hex + uuid.uuid4().hex)


@pytest.fixture
def issuer(token_config: TokenConfig) -> TokenIssuer:
    return TokenIssuer(token_config)


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore(_memory_url("test_auth"))
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path) -> Generator[AccountStore, None, None]:
    """File-backed store. Threads get real, separate connections."""
    s = AccountStore(f"sqlite:///{tmp_path / 'accounts.db'}")
    yield s
    s.close()


@pytest.fixture
def verifier(token_config: TokenConfig, store: AccountStore) -> TokenVerifier:
    return TokenVerifier(token_config, store)


@pytest.fixture
def service(store: AccountStore, issuer: TokenIssuer, verifier: TokenVerifier) -> AuthService:
    revocation = RevocationController(store, max_attempts=3, retry_wait_seconds=0)
    return AuthService(store, issuer, verifier, revocation, bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: AccountStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and settings into app.state so routes see an
    isolated database and an isolated signing secret.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_components(app, settings, store=store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_settings(tmp_path_factory) -> Settings:
    return Settings(
        secret_key=uuid.uuid4().hex + uuid.uuid4().hex,
        bcrypt_rounds=TEST_ROUNDS,
        media_root=str(tmp_path_factory.mktemp("media")),
        media_base_url="http://testserver/media",
        max_image_bytes=1024,
        revocation_retry_wait_seconds=0,
    )


@pytest.fixture(scope="module")
def api_client(api_settings: Settings) -> Generator[tuple[TestClient, AccountStore], None, None]:
    """Yield (client, store) for API integration tests.

    One TestClient per test module for speed; tests that need a clean account
    sign up with their own identifiers.
    """
    store = AccountStore(_memory_url("test_api"))
    app.router.lifespan_context = _patch_lifespan(api_settings, store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()


@pytest.fixture
def ada() -> dict:
    """Sign-up payload for the reference account. A fresh copy per test."""
    return dict(ADA)


@pytest.fixture
def account(store: AccountStore) -> Account:
    """Ada, stored directly with a real (cheap) bcrypt hash and token_version 0."""
    return store.create_account(
        Account(
            name=ADA["name"],
            email=ADA["email"],
            phone=ADA["phone"],
            hashed_password=hash_password(ADA["password"], rounds=TEST_ROUNDS),
        )
    )
