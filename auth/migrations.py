"""
auth/migrations.py -- Additive, reversible schema migrations for the accounts table.

Databases created by older releases have an accounts table without the
revocation counter and without profile-image columns. Each Migration adds the
missing columns (up) and can drop them again (down).

The column-existence check uses PRAGMA table_info / the SQLAlchemy inspector
rather than IF NOT EXISTS, because SQLite does not support IF NOT EXISTS in
ALTER TABLE. upgrade() is idempotent -- safe to call on every startup.

DROP COLUMN needs SQLite 3.35+, which every supported Python ships.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger("quill.store")

TABLE = "accounts"


@dataclass(frozen=True)
class Migration:
    name: str
    columns: tuple[str, ...]
    up: Callable[[Connection], None]
    down: Callable[[Connection], None]


def _add_token_version(conn: Connection) -> None:
    conn.execute(text("ALTER TABLE accounts ADD COLUMN token_version INTEGER NOT NULL DEFAULT 0"))


def _drop_token_version(conn: Connection) -> None:
    conn.execute(text("ALTER TABLE accounts DROP COLUMN token_version"))


def _add_image(conn: Connection) -> None:
    conn.execute(text("ALTER TABLE accounts ADD COLUMN image TEXT"))
    conn.execute(text("ALTER TABLE accounts ADD COLUMN image_public_id TEXT"))


def _drop_image(conn: Connection) -> None:
    conn.execute(text("ALTER TABLE accounts DROP COLUMN image_public_id"))
    conn.execute(text("ALTER TABLE accounts DROP COLUMN image"))


MIGRATIONS: tuple[Migration, ...] = (
    Migration("add_token_version", ("token_version",), _add_token_version, _drop_token_version),
    Migration("add_image", ("image", "image_public_id"), _add_image, _drop_image),
)


def _columns(conn: Connection) -> set[str] | None:
    """Return the accounts column names, or None if the table does not exist yet."""
    inspector = inspect(conn)
    if not inspector.has_table(TABLE):
        return None
    return {col["name"] for col in inspector.get_columns(TABLE)}


def _find(name: str) -> Migration:
    for migration in MIGRATIONS:
        if migration.name == name:
            return migration
    raise ValueError(f"Unknown migration: {name!r}")


def upgrade(engine: Engine) -> list[str]:
    """Apply every migration whose columns are missing. Returns the names applied.

    A missing accounts table is left alone: metadata.create_all() builds the
    current schema directly.
    """
    applied: list[str] = []
    with engine.begin() as conn:
        existing = _columns(conn)
        if existing is None:
            return applied
        for migration in MIGRATIONS:
            if not set(migration.columns) <= existing:
                migration.up(conn)
                existing |= set(migration.columns)
                applied.append(migration.name)
    for name in applied:
        logger.info("Applied migration %s", name)
    return applied


def downgrade(engine: Engine, name: str) -> bool:
    """Revert one migration by name. Returns False if its columns were already absent."""
    migration = _find(name)
    with engine.begin() as conn:
        existing = _columns(conn) or set()
        if not set(migration.columns) <= existing:
            return False
        migration.down(conn)
    logger.info("Reverted migration %s", name)
    return True
