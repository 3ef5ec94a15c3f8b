"""pytest fixtures: app factory, test client, and account/salon helpers."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from werkzeug.security import generate_password_hash  # noqa: E402

from salonflow import create_app  # noqa: E402
from salonflow.auth import build_token  # noqa: E402
from salonflow.config import TestingConfig  # noqa: E402
from salonflow.extensions import db  # noqa: E402
from salonflow.models import (AuthAccount, Salon, Staff, StaffRole, StaffRoleAssignment,  # noqa: E402
                              StaffRolePermission, User)

DEFAULT_PASSWORD = "Secret123!"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role: str = "customer", email: str = "user@example.com", password: str | None = DEFAULT_PASSWORD,
              name: str = "Test User", must_change_password: bool = False) -> int:
        with app.app_context():
            user = User(name=name, email=email, role=role)
            db.session.add(user)
            db.session.flush()
            if password is not None:
                db.session.add(
                    AuthAccount(
                        user_id=user.user_id,
                        password_hash=generate_password_hash(password),
                        must_change_password=must_change_password,
                    )
                )
            db.session.commit()
            return user.user_id

    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user_id: int) -> dict[str, str]:
        with app.app_context():
            return {"Authorization": f"Bearer {build_token(db.session.get(User, user_id))}"}

    return _headers


@pytest.fixture
def salon_owner(app, make_user, auth_headers):
    """A salon admin with one salon."""
    user_id = make_user(role="salon_admin", email="owner@example.com", name="Olivia Owner")
    with app.app_context():
        salon = Salon(owner_id=user_id, name="Glow Studio", owner_name="Olivia Owner", email="owner@example.com")
        db.session.add(salon)
        db.session.commit()
        salon_id = salon.salon_id

    return {"user_id": user_id, "salon_id": salon_id, "headers": auth_headers(user_id)}


@pytest.fixture
def make_staff(app, make_user, auth_headers):
    """Create a staff login with a staff record and, optionally, a role."""

    def _make(salon_id: int, permissions: dict | None = None, email: str = "staff@example.com",
              name: str = "Sam Staff", role_name: str = "Stylist") -> dict[str, object]:
        user_id = make_user(role="staff", email=email, name=name)
        with app.app_context():
            staff = Staff(salon_id=salon_id, user_id=user_id, name=name, email=email)
            db.session.add(staff)
            db.session.flush()

            role_id = None
            if permissions is not None:
                role = StaffRole(salon_id=salon_id, name=role_name)
                role.permission_record = StaffRolePermission(permissions=permissions)
                db.session.add(role)
                db.session.flush()
                staff.role_assignment = StaffRoleAssignment(role=role)
                staff.role_name = role.name
                role_id = role.role_id

            db.session.commit()
            staff_id = staff.staff_id

        return {"user_id": user_id, "staff_id": staff_id, "role_id": role_id, "headers": auth_headers(user_id)}

    return _make
