#!/usr/bin/env python3
"""
Create An AlbumHQ Account
=========================
Bootstraps the first admin (or any user) directly in the database.

Usage:
    python scripts/create_user.py USERNAME [--display-name NAME] [--admin]

The password is read interactively.
"""

import argparse
import getpass
import sys

from sqlalchemy import func

from albumhq.auth import get_password_hash
from albumhq.database import SessionLocal, engine, Base
from albumhq import models  # noqa: F401
from albumhq.login_rate_limit import normalize_username
from albumhq.models.user import User, UserRole
from albumhq.schemas.auth import password_policy_errors


def main():
    parser = argparse.ArgumentParser(description="Create an AlbumHQ user")
    parser.add_argument("username", help="Login name (case-insensitive)")
    parser.add_argument("--display-name", default=None, help="Name shown to other family members")
    parser.add_argument("--admin", action="store_true", help="Grant the admin role")
    args = parser.parse_args()

    username = normalize_username(args.username)
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        sys.exit("Passwords do not match")

    errors = password_policy_errors(password)
    if errors:
        sys.exit("\n".join(errors))

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(User).filter(func.lower(User.username) == username).first():
            sys.exit(f"User {username} already exists")

        user = User(
            username=username,
            hashed_password=get_password_hash(password),
            display_name=args.display_name or args.username.strip(),
            role=UserRole.ADMIN if args.admin else UserRole.USER,
        )
        db.add(user)
        db.commit()
        print(f"✓ Created {user.role.lower()} {username}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
