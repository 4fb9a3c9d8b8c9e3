#!/usr/bin/env python3
"""
credgate -- admin command line for the authentication service.

Usage:
  python main.py create-account 9876543210 --role CITIZEN --active
  python main.py create-account 9876543210 --email ops@example.com --role OPERATOR --name "Ops Desk"
  python main.py sweep

Accounts are normally activated by verifying a registration OTP. --active
skips that step, which is what operator accounts and local testing need.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the auth database (default: auth/credgate_auth.db)
  SECRET_KEY    Not used by these commands, but required unless DEBUG=true
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.challenges import ChallengeStore
from auth.models import Account, Role
from auth.passcodes import PasscodeStore
from auth.reclaim import sweep_expired
from auth.store import AccountStore
from auth.tokens import hash_password
from core.contacts import is_mobile, mask_contact


def _read_password(given: Optional[str]) -> Optional[str]:
    """Return the --password value, or prompt twice. Empty input means no password."""
    if given is not None:
        return given or None
    first = getpass.getpass("Password (leave empty for OTP-only login): ")
    if not first:
        return None
    if getpass.getpass("Repeat password: ") != first:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def create_account(args: argparse.Namespace) -> int:
    mobile = args.mobile.strip()
    if not is_mobile(mobile):
        print(f"  [!] '{mobile}' is not a valid mobile number. Expected 10 digits starting with 6-9.")
        return 1

    password = _read_password(args.password)
    account = Account(
        mobile_number=mobile,
        role=Role(args.role),
        email=args.email,
        full_name=args.name,
        hashed_password=hash_password(password) if password else None,
        is_active=args.active,
        is_mobile_verified=args.active,
    )

    store = AccountStore(args.db)
    try:
        account_id = store.create_account(account)
    except IntegrityError:
        print(f"  [!] An account with mobile {mask_contact(mobile)} or that email already exists.")
        return 1
    finally:
        store.close()

    state = "active" if args.active else "inactive (verify with a registration OTP)"
    print(f"  Created {account.role.value} account {account_id} for {mask_contact(mobile)}, {state}.")
    return 0


def sweep(args: argparse.Namespace) -> int:
    challenges = ChallengeStore(args.db)
    passcodes = PasscodeStore(args.db)
    try:
        removed = sweep_expired(challenges, passcodes)
    finally:
        challenges.close()
        passcodes.close()

    for name, count in removed.items():
        if count < 0:
            print(f"  [!] Sweep of {name} failed; see log for details.")
        else:
            print(f"  {name}: {count} expired record(s) removed")
    return 1 if any(count < 0 for count in removed.values()) else 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="credgate",
        description="Administer credgate accounts and stored challenges.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-account 9876543210 --active
  python main.py create-account 9123456789 --role OPERATOR --email ops@example.com --password s3cret --active
  DATABASE_URL=sqlite:////var/lib/credgate/auth.db python main.py sweep
        """,
    )
    parser.add_argument(
        "--db",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-account", help="Register a new account")
    create.add_argument("mobile", metavar="MOBILE", help="10-digit mobile number starting with 6-9")
    create.add_argument("--email", default=None, help="Optional email address for password login")
    create.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.CITIZEN.value,
        help="Account role (default: CITIZEN)",
    )
    create.add_argument("--name", default=None, help="Full name")
    create.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; avoid on shared machines)",
    )
    create.add_argument(
        "--active",
        action="store_true",
        help="Create the account active, skipping mobile verification",
    )
    create.set_defaults(func=create_account)

    sweep_cmd = sub.add_parser("sweep", help="Delete expired CAPTCHA challenges and OTPs once")
    sweep_cmd.set_defaults(func=sweep)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
