"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper. Service and
route code never touches SQL directly.

Revocation counter:
  token_version is mutated in exactly two places, both here:
    increment_token_version() -- UPDATE ... SET token_version = token_version + 1
    update_password()         -- same increment, in the same UPDATE as the hash
  The increment is done by the database, never as a Python read-modify-write,
  so two concurrent revocations always yield two distinct, increasing values.
  The new value is read back inside the same transaction, while the write lock
  is still held, so the returned number is the one this call produced.

Security:
  All queries use bound parameters. No f-strings in SQL.

Schema upgrades for databases created before token_version / image existed are
handled by auth/migrations.upgrade(), called from the constructor.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import AccountNotFound, DuplicateIdentifier, TokenRevoked
from auth.migrations import upgrade
from auth.models import STATUS_LOGGED_IN, STATUS_LOGGED_OUT, Account

logger = logging.getLogger("quill.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(16), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default=STATUS_LOGGED_OUT),
    Column("created_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("image", Text),  # public URL, NULL when no picture
    Column("image_public_id", Text),  # object-storage id, NULL for external URLs
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on the counter writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities and their revocation counters.

    Usage:
        store = AccountStore("sqlite:///quill_auth.db")
        account = store.create_account(Account(name="Ada", email=..., phone=..., hashed_password=...))
        store.increment_token_version(account.id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        upgrade(self.engine)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        """Insert a new account with token_version 0 and return the stored record.

        Raises DuplicateIdentifier naming the conflicting field when the email
        or phone is already registered. The UNIQUE constraints are the source
        of truth; a concurrent sign-up with the same identifier loses at INSERT.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    accounts.insert().values(
                        name=account.name,
                        email=account.email,
                        phone=account.phone,
                        hashed_password=account.hashed_password,
                        image=account.image,
                        image_public_id=account.image_public_id,
                        status=STATUS_LOGGED_OUT,
                        token_version=0,
                        created_at=_now_iso(),
                    )
                )
                account_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            field = self._conflicting_field(account)
            if field is None:
                # Not a uniqueness conflict (NOT NULL and the like).
                raise
            raise DuplicateIdentifier(field) from exc

        logger.info("Account %s created", account_id)
        created = self.get_by_id(account_id)
        if created is None:
            raise AccountNotFound("Account vanished after insert.")
        return created

    def _conflicting_field(self, account: Account) -> str | None:
        if account.email is not None and self.get_by_email(account.email) is not None:
            return "email"
        if account.phone is not None and self.get_by_phone(account.phone) is not None:
            return "phone"
        return None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized (lowercase) email."""
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_phone(self, phone: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.phone == phone)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_token_version(self, account_id: int) -> int | None:
        """Return the current counter, or None if the account does not exist.

        This is the one store read every authenticated request pays for.
        """
        with self.engine.connect() as conn:
            return conn.execute(select(accounts.c.token_version).where(accounts.c.id == account_id)).scalar()

    # ------------------------------------------------------------------
    # Counter mutations
    # ------------------------------------------------------------------

    def increment_token_version(self, account_id: int) -> int:
        """Atomically bump the revocation counter and return the new value.

        Raises AccountNotFound if no row matched.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(token_version=accounts.c.token_version + 1)
            )
            if result.rowcount == 0:
                raise AccountNotFound()
            return self._read_version(conn, account_id)

    def update_password(
        self,
        account_id: int,
        hashed_password: str,
        expected_version: int | None = None,
    ) -> int:
        """Replace the password hash and bump the counter in one statement.

        Returns the new token_version. A token captured before the change can
        never verify afterwards, whatever verification it races with.

        With expected_version the write only applies while the counter still
        holds that value (compare-and-set). A password reset passes its token's
        snapshot, so of two racing uses of one reset token exactly one wins and
        the other raises TokenRevoked.
        """
        stmt = accounts.update().where(accounts.c.id == account_id)
        if expected_version is not None:
            stmt = stmt.where(accounts.c.token_version == expected_version)
        with self.engine.begin() as conn:
            result = conn.execute(
                stmt.values(
                    hashed_password=hashed_password,
                    token_version=accounts.c.token_version + 1,
                )
            )
            if result.rowcount == 0:
                exists = conn.execute(select(accounts.c.id).where(accounts.c.id == account_id)).first()
                if exists is None:
                    raise AccountNotFound()
                raise TokenRevoked()
            return self._read_version(conn, account_id)

    @staticmethod
    def _read_version(conn: Connection, account_id: int) -> int:
        return conn.execute(select(accounts.c.token_version).where(accounts.c.id == account_id)).scalar_one()

    # ------------------------------------------------------------------
    # Session bookkeeping and profile
    # ------------------------------------------------------------------

    def mark_signed_in(self, account_id: int) -> None:
        """Stamp last_login_at and flip status after a successful sign-in."""
        with self.engine.begin() as conn:
            conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(status=STATUS_LOGGED_IN, last_login_at=_now_iso())
            )

    def mark_signed_out(self, account_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(accounts.update().where(accounts.c.id == account_id).values(status=STATUS_LOGGED_OUT))

    def update_image(self, account_id: int, image: str | None, image_public_id: str | None) -> bool:
        """Point the account at a new profile image. Returns False if not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(image=image, image_public_id=image_public_id)
            )
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        hashed_password=row.hashed_password,
        image=row.image,
        image_public_id=row.image_public_id,
        token_version=row.token_version,
        status=row.status,
        created_at=row.created_at,
        last_login_at=row.last_login_at,
    )
