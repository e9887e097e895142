"""
tests/test_account_store.py -- Unit tests for auth/store.py (AccountStore).

Covers:
  - create_account() starts at token_version 0 and logged_out
  - Duplicate email / phone rejected, naming the conflicting field
  - Other integrity failures (NOT NULL) are not reported as duplicates
  - Lookups by id, email, phone and the counter-only read
  - increment_token_version() and update_password() bump atomically
  - update_password(expected_version=...) only applies while the counter holds that value
  - Concurrent increments from many threads never lose an update
  - Sign-in bookkeeping and profile image updates
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from auth.errors import AccountNotFound, DuplicateIdentifier, TokenRevoked
from auth.models import STATUS_LOGGED_IN, STATUS_LOGGED_OUT, Account
from auth.store import AccountStore


def _account(**overrides) -> Account:
    fields = {
        "name": "Grace Hopper",
        "email": "grace@example.com",
        "phone": "+12025550199",
        "hashed_password": "$2b$04$placeholder",
    }
    fields.update(overrides)
    return Account(**fields)


class TestCreate:
    def test_new_account_defaults(self, store: AccountStore) -> None:
        created = store.create_account(_account())
        assert created.id is not None
        assert created.token_version == 0
        assert created.status == STATUS_LOGGED_OUT
        assert created.created_at is not None
        assert created.last_login_at is None

    def test_ignores_caller_supplied_counter(self, store: AccountStore) -> None:
        created = store.create_account(_account(token_version=9))
        assert created.token_version == 0

    def test_duplicate_email(self, store: AccountStore) -> None:
        store.create_account(_account())
        with pytest.raises(DuplicateIdentifier) as exc_info:
            store.create_account(_account(phone="+12025550100"))
        assert exc_info.value.field == "email"

    def test_duplicate_phone(self, store: AccountStore) -> None:
        store.create_account(_account())
        with pytest.raises(DuplicateIdentifier) as exc_info:
            store.create_account(_account(email="other@example.com"))
        assert exc_info.value.field == "phone"

    def test_failed_insert_leaves_no_row(self, store: AccountStore) -> None:
        store.create_account(_account())
        with pytest.raises(DuplicateIdentifier):
            store.create_account(_account(phone="+12025550100"))
        assert store.get_by_phone("+12025550100") is None

    def test_not_null_failure_is_not_a_duplicate(self, store: AccountStore) -> None:
        with pytest.raises(IntegrityError):
            store.create_account(_account(name=None))
        assert store.get_by_email("grace@example.com") is None


class TestLookups:
    def test_by_email_and_phone(self, store: AccountStore) -> None:
        created = store.create_account(_account())
        assert store.get_by_email("grace@example.com").id == created.id
        assert store.get_by_phone("+12025550199").id == created.id
        assert store.get_by_id(created.id).email == "grace@example.com"

    def test_missing(self, store: AccountStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_phone("+10000000000") is None
        assert store.get_token_version(999) is None

    def test_token_version_read(self, store: AccountStore, account: Account) -> None:
        assert store.get_token_version(account.id) == 0

    def test_ping(self, store: AccountStore) -> None:
        assert store.ping() is True


class TestCounter:
    def test_increment_is_strictly_increasing(self, store: AccountStore, account: Account) -> None:
        versions = [store.increment_token_version(account.id) for _ in range(3)]
        assert versions == [1, 2, 3]
        assert store.get_token_version(account.id) == 3

    def test_increment_unknown_account(self, store: AccountStore) -> None:
        with pytest.raises(AccountNotFound):
            store.increment_token_version(999)

    def test_update_password_bumps_counter(self, store: AccountStore, account: Account) -> None:
        version = store.update_password(account.id, "$2b$04$newhash")
        assert version == 1
        stored = store.get_by_id(account.id)
        assert stored.hashed_password == "$2b$04$newhash"
        assert stored.token_version == 1

    def test_update_password_unknown_account(self, store: AccountStore) -> None:
        with pytest.raises(AccountNotFound):
            store.update_password(999, "$2b$04$newhash")

    def test_update_password_at_expected_version(self, store: AccountStore, account: Account) -> None:
        assert store.update_password(account.id, "$2b$04$newhash", expected_version=0) == 1

    def test_update_password_stale_expected_version(self, store: AccountStore, account: Account) -> None:
        store.increment_token_version(account.id)
        with pytest.raises(TokenRevoked):
            store.update_password(account.id, "$2b$04$newhash", expected_version=0)
        stored = store.get_by_id(account.id)
        assert stored.token_version == 1
        assert stored.hashed_password != "$2b$04$newhash"

    def test_update_password_expected_version_unknown_account(self, store: AccountStore) -> None:
        with pytest.raises(AccountNotFound):
            store.update_password(999, "$2b$04$newhash", expected_version=0)

    def test_concurrent_increments_never_lost(self, file_store: AccountStore) -> None:
        created = file_store.create_account(_account())
        workers, per_worker = 8, 5

        def bump(_: int) -> list[int]:
            return [file_store.increment_token_version(created.id) for _ in range(per_worker)]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = [v for batch in pool.map(bump, range(workers)) for v in batch]

        total = workers * per_worker
        assert sorted(results) == list(range(1, total + 1))
        assert file_store.get_token_version(created.id) == total


class TestBookkeeping:
    def test_mark_signed_in_and_out(self, store: AccountStore, account: Account) -> None:
        store.mark_signed_in(account.id)
        signed_in = store.get_by_id(account.id)
        assert signed_in.status == STATUS_LOGGED_IN
        assert signed_in.last_login_at is not None

        store.mark_signed_out(account.id)
        assert store.get_by_id(account.id).status == STATUS_LOGGED_OUT

    def test_bookkeeping_leaves_counter_alone(self, store: AccountStore, account: Account) -> None:
        store.mark_signed_in(account.id)
        store.mark_signed_out(account.id)
        assert store.get_token_version(account.id) == 0

    def test_update_image(self, store: AccountStore, account: Account) -> None:
        assert store.update_image(account.id, "http://cdn/a.png", "profiles/a") is True
        stored = store.get_by_id(account.id)
        assert (stored.image, stored.image_public_id) == ("http://cdn/a.png", "profiles/a")

        assert store.update_image(account.id, None, None) is True
        assert store.get_by_id(account.id).image is None

    def test_update_image_unknown_account(self, store: AccountStore) -> None:
        assert store.update_image(999, "http://cdn/a.png", None) is False
