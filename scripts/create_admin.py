"""CLI script to create an operator account."""
from __future__ import annotations

import argparse
import getpass

from app.db.session import SessionLocal
from app.services.auth import AuthService, UsernameAlreadyExistsError


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an operator account")
    parser.add_argument("username")
    parser.add_argument("--email")
    parser.add_argument("--role", default="admin")
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    db = SessionLocal()
    try:
        user = AuthService(db).create_user(
            args.username, password, role=args.role, email=args.email
        )
        print(f"Created {user.role} {user.username} ({user.id})")
    except UsernameAlreadyExistsError as exc:
        print(exc)
    finally:
        db.close()


if __name__ == "__main__":
    main()
