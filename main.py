#!/usr/bin/env python3
"""
Quill Auth -- operator command line.

Usage:
  python main.py migrate
  python main.py downgrade add_image
  python main.py show ada@example.com
  python main.py show +12025550123
  python main.py revoke 42
  python main.py revoke 42 --compromise

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the account database (see core/config.py).
  SECRET_KEY    Required unless DEBUG=true, as for the API.
"""

import argparse
import sys

from sqlalchemy import create_engine

from auth.errors import AccountNotFound, StoreUnavailable
from auth.migrations import MIGRATIONS, downgrade, upgrade
from auth.models import Account
from auth.revocation import RevocationController, RevocationReason
from auth.store import AccountStore
from core.config import get_settings


def _print_account(account: Account) -> None:
    print(f"  id:            {account.id}")
    print(f"  name:          {account.name}")
    print(f"  email:         {account.email}")
    print(f"  phone:         {account.phone}")
    print(f"  status:        {account.status}")
    print(f"  token_version: {account.token_version}")
    print(f"  last_login_at: {account.last_login_at or '-'}")


def _lookup(store: AccountStore, identifier: str) -> Account | None:
    if "@" in identifier:
        return store.get_by_email(identifier.strip().lower())
    return store.get_by_phone(identifier.strip())


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Quill Auth -- account store maintenance and emergency revocation.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Apply pending schema migrations.")

    down = sub.add_parser("downgrade", help="Revert one schema migration.")
    down.add_argument("name", choices=[m.name for m in MIGRATIONS])

    show = sub.add_parser("show", help="Show an account by email or phone.")
    show.add_argument("identifier")

    revoke = sub.add_parser("revoke", help="Invalidate every token issued to an account.")
    revoke.add_argument("account_id", type=int)
    revoke.add_argument(
        "--compromise",
        action="store_true",
        help="Record the revocation as a suspected credential compromise.",
    )

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "downgrade":
        # Opening an AccountStore would re-apply the migration, so work on the raw engine.
        engine = create_engine(settings.database_url)
        try:
            reverted = downgrade(engine, args.name)
        finally:
            engine.dispose()
        print(f"  Reverted {args.name}." if reverted else f"  {args.name} was not applied.")
        return 0

    if args.command == "migrate":
        engine = create_engine(settings.database_url)
        try:
            applied = upgrade(engine)
        finally:
            engine.dispose()
        print(f"  Applied: {', '.join(applied)}" if applied else "  Schema is up to date.")
        return 0

    store = AccountStore(settings.database_url)
    try:
        if args.command == "show":
            account = _lookup(store, args.identifier)
            if account is None:
                print(f"  [!] No account matches '{args.identifier}'.")
                return 1
            _print_account(account)
            return 0

        controller = RevocationController(
            store,
            max_attempts=settings.revocation_max_attempts,
            retry_wait_seconds=settings.revocation_retry_wait_seconds,
        )
        try:
            if args.compromise:
                version = controller.report_compromise(args.account_id)
            else:
                version = controller.revoke_all(args.account_id, RevocationReason.sign_out_everywhere)
        except AccountNotFound:
            print(f"  [!] Account {args.account_id} does not exist.")
            return 1
        except StoreUnavailable:
            print("  [!] Account store is unavailable; nothing was revoked.")
            return 2
        print(f"  All tokens for account {args.account_id} revoked (token_version={version}).")
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
