"""
tests/test_cli.py -- Tests for the operator command line in main.py.

Covers:
  - migrate / downgrade on a file database
  - show by email and by phone, and the not-found exit code
  - revoke bumps the counter; an unknown account exits 1
"""

from __future__ import annotations

import pytest

import main
from auth.models import Account
from auth.store import AccountStore
from core.config import Settings


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    settings = Settings(secret_key="s" * 64, database_url=url)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return url


@pytest.fixture
def seeded(db_url: str) -> Account:
    store = AccountStore(db_url)
    try:
        return store.create_account(
            Account(name="Ada Lovelace", email="ada@example.com", phone="+12025550123", hashed_password="x")
        )
    finally:
        store.close()


def test_migrate_up_to_date(db_url: str, seeded: Account, capsys) -> None:
    assert main.main(["migrate"]) == 0
    assert "up to date" in capsys.readouterr().out


def test_downgrade_then_migrate(db_url: str, seeded: Account, capsys) -> None:
    assert main.main(["downgrade", "add_image"]) == 0
    assert "Reverted add_image" in capsys.readouterr().out
    assert main.main(["migrate"]) == 0
    assert "add_image" in capsys.readouterr().out


def test_show(db_url: str, seeded: Account, capsys) -> None:
    assert main.main(["show", "ADA@example.com"]) == 0
    assert "Ada Lovelace" in capsys.readouterr().out
    assert main.main(["show", "+12025550123"]) == 0
    assert main.main(["show", "ghost@example.com"]) == 1


def test_revoke(db_url: str, seeded: Account, capsys) -> None:
    assert main.main(["revoke", str(seeded.id)]) == 0
    assert main.main(["revoke", str(seeded.id), "--compromise"]) == 0
    assert "token_version=2" in capsys.readouterr().out

    store = AccountStore(db_url)
    try:
        assert store.get_token_version(seeded.id) == 2
    finally:
        store.close()


def test_revoke_unknown_account(db_url: str) -> None:
    assert main.main(["revoke", "999"]) == 1
