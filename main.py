#!/usr/bin/env python3
"""
OTPGate -- operator command line.

Usage:
  python main.py purge
  python main.py create-admin --email admin@example.com --first-name Ada --last-name Admin

Commands:
  purge          Delete expired OTP and reset-password rows now.
  create-admin   Create a verified ADMIN account. Prompts for the password
                 unless --password is given.

Configuration is read from the environment / .env exactly as the API reads
it (see core/config.py), so DATABASE_URL and the keys must be set.
"""

import argparse
import getpass
import logging
import re
import sys
import time

from sqlalchemy.exc import IntegrityError

from api.models import EMAIL_PATTERN, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH
from auth.hashing import SecretHasher
from auth.models import AccountStatus, Credential, Role
from auth.store import CredentialStore
from core.config import Settings, get_settings
from core.database import Database
from verification.maintenance import purge_expired
from verification.store import OtpStore, ResetTokenStore

logger = logging.getLogger("otpgate.cli")


def cmd_purge(settings: Settings) -> int:
    db = Database(settings.database_url)
    try:
        counts = purge_expired(OtpStore(db), ResetTokenStore(db), time.time())
    finally:
        db.close()
    print(f"  Purged {counts['otp_tokens']} expired OTP token(s), {counts['reset_tokens']} expired reset token(s).")
    return 0


def cmd_create_admin(settings: Settings, args: argparse.Namespace) -> int:
    email = args.email.strip()
    if not re.match(EMAIL_PATTERN, email):
        print(f"  [!] '{email}' doesn't look like a valid email address.")
        return 1

    password = args.password or getpass.getpass("  Password: ")
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        print(f"  [!] Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters.")
        return 1

    db = Database(settings.database_url)
    try:
        store = CredentialStore(db)
        admin = Credential(
            email=email,
            first_name=args.first_name,
            last_name=args.last_name,
            password_hash=SecretHasher(rounds=settings.bcrypt_rounds).hash(password),
            role=Role.ADMIN,
            status=AccountStatus.ACTIVE,
            is_verified=True,
        )
        try:
            uid = store.create(admin)
        except IntegrityError:
            print(f"  [!] An account with email '{email}' already exists.")
            return 1
    finally:
        db.close()

    logger.info("Admin account created (id=%d)", uid)
    print(f"  Admin account created (id={uid}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="otpgate",
        description="OTPGate maintenance and account administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py purge
  python main.py create-admin --email admin@example.com --first-name Ada --last-name Admin
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.add_parser("purge", help="Delete expired OTP and reset-password rows")

    admin = sub.add_parser("create-admin", help="Create a verified admin account")
    admin.add_argument("--email", required=True, help="Admin email address (login name)")
    admin.add_argument("--first-name", default="Admin", help="First name (default: Admin)")
    admin.add_argument("--last-name", default="", help="Last name")
    admin.add_argument(
        "--password",
        default=None,
        help="Password. Omit to be prompted; values on the command line end up in shell history.",
    )

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "purge":
        return cmd_purge(settings)
    return cmd_create_admin(settings, args)


if __name__ == "__main__":
    sys.exit(main())
