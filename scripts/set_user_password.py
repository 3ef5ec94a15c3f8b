"""Create a login (typically the platform super admin) or reset its password."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``salonflow`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonflow import create_app
from salonflow.extensions import db
from salonflow.models import AuthAccount, User

ROLES = ["super_admin", "salon_admin", "staff", "customer"]


def set_password(email: str, password: str, role: str = "super_admin", name: str | None = None) -> None:
    app = create_app()
    email = email.strip().lower()

    with app.app_context():
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=name or role.replace("_", " ").title(), email=email, role=role)
            db.session.add(user)
            db.session.flush()
            print(f"Created new {role} user: {email}")
        elif user.role != role:
            print(f"Updating user role from '{user.role}' to '{role}'")
            user.role = role

        account = user.auth_account
        if account is None:
            account = AuthAccount(user_id=user.user_id, password_hash="")
            db.session.add(account)

        account.password_hash = generate_password_hash(password)
        account.must_change_password = False
        db.session.commit()

        print(f"Password for {role} user '{email}' has been set.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or update a SalonFlow login.")
    parser.add_argument("email", help="User email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--role", choices=ROLES, default="super_admin", help="User role (default: super_admin)")
    parser.add_argument("--name", help="Display name for a newly created user")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role, args.name)


if __name__ == "__main__":
    main()
