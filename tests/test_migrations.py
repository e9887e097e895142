"""
tests/test_migrations.py -- Unit tests for auth/migrations.py.

Covers:
  - A pre-counter database gains token_version (0 for existing rows) and image columns
  - upgrade() is idempotent and a no-op on a fresh database
  - downgrade() reverts one migration and reports when there is nothing to revert
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, inspect, text

from auth.migrations import downgrade, upgrade
from auth.store import AccountStore

_LEGACY_SCHEMA = """
CREATE TABLE accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(255) NOT NULL UNIQUE,
    phone VARCHAR(16) NOT NULL UNIQUE,
    hashed_password TEXT NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'logged_out',
    created_at VARCHAR(32) NOT NULL,
    last_login_at VARCHAR(32)
)
"""


@pytest.fixture
def legacy_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text(_LEGACY_SCHEMA))
        conn.execute(
            text(
                "INSERT INTO accounts (name, email, phone, hashed_password, created_at) "
                "VALUES ('Ada Lovelace', 'ada@example.com', '+12025550123', 'x', '2024-01-01T00:00:00+00:00')"
            )
        )
    engine.dispose()
    return url


def _columns(url: str) -> set[str]:
    engine = create_engine(url)
    try:
        return {col["name"] for col in inspect(engine).get_columns("accounts")}
    finally:
        engine.dispose()


def test_upgrade_adds_missing_columns(legacy_url: str) -> None:
    engine = create_engine(legacy_url)
    try:
        assert upgrade(engine) == ["add_token_version", "add_image"]
        assert upgrade(engine) == []
    finally:
        engine.dispose()
    assert {"token_version", "image", "image_public_id"} <= _columns(legacy_url)


def test_existing_rows_start_at_zero(legacy_url: str) -> None:
    store = AccountStore(legacy_url)
    try:
        account = store.get_by_email("ada@example.com")
        assert account.token_version == 0
        assert account.image is None
        assert store.increment_token_version(account.id) == 1
    finally:
        store.close()


def test_fresh_database_needs_nothing(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")
    try:
        assert upgrade(engine) == []
    finally:
        engine.dispose()


def test_downgrade_reverts_one_migration(legacy_url: str) -> None:
    AccountStore(legacy_url).close()
    engine = create_engine(legacy_url)
    try:
        assert downgrade(engine, "add_image") is True
        assert downgrade(engine, "add_image") is False
    finally:
        engine.dispose()
    columns = _columns(legacy_url)
    assert "image" not in columns
    assert "token_version" in columns


def test_downgrade_unknown_name(legacy_url: str) -> None:
    engine = create_engine(legacy_url)
    try:
        with pytest.raises(ValueError):
            downgrade(engine, "add_everything")
    finally:
        engine.dispose()
