#!/usr/bin/env python3
"""
Seed an administrator account.

Usage:
    python scripts/create_admin.py --email admin@example.com --name Admin
    python scripts/create_admin.py --email admin@example.com --password 'S3cure!pass'

The password is prompted for when --password is omitted. It must satisfy
the password policy (length, upper, lower, digit, special character).
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings  # noqa: E402
from core.db import DatabaseManager  # noqa: E402
from core.errors import ValidationError  # noqa: E402
from ledger.auth import SecretCipher, UserRepository, create_user, init_database  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def _prompt_password() -> str:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        raise ValidationError("Passwords do not match")
    return password


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create an administrator account")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--name", default="Administrator", help="Display name")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    parser.add_argument(
        "--role", action="append", dest="roles",
        help="Role to grant; repeatable (default: ADMIN)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    db = DatabaseManager(
        db_url=settings.database.database_url,
        db_path=settings.database.sqlite_path,
    )
    try:
        init_database(db)
        users = UserRepository(
            db,
            SecretCipher(
                key=settings.auth.totp_encryption_key.get_secret_value(),
                fallback_secret=settings.auth.jwt_secret.get_secret_value(),
            ),
        )
        password = args.password if args.password is not None else _prompt_password()
        user = create_user(
            users,
            email=args.email,
            password=password,
            name=args.name,
            roles=tuple(args.roles or ("ADMIN",)),
        )
    except ValidationError as e:
        logger.error(str(e))
        return 1
    finally:
        db.close()

    logger.info(f"Created admin {user.email} (id={user.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
