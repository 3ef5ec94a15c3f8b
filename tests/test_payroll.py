"""Tests for the payroll report."""
from __future__ import annotations

from datetime import datetime, timedelta

from salonflow.extensions import db
from salonflow.models import Appointment, Customer, Staff


def _seed(app, salon_id: int) -> dict[str, int]:
    with app.app_context():
        customer = Customer(salon_id=salon_id, name="Cara Client")
        ava = Staff(salon_id=salon_id, name="Ava", commission_percent=10, base_salary_cents=100000)
        ben = Staff(salon_id=salon_id, name="Ben", commission_percent=0, base_salary_cents=50000)
        db.session.add_all([customer, ava, ben])
        db.session.flush()

        def book(staff, day: int, bill: int, status: str = "past") -> Appointment:
            start = datetime(2026, 4, day, 10, 0)
            return Appointment(
                salon_id=salon_id, customer_id=customer.customer_id, staff_id=staff.staff_id,
                starts_at=start, ends_at=start + timedelta(hours=1), bill_cents=bill, status=status,
            )

        db.session.add_all([
            book(ava, 2, 5000),
            book(ava, 10, 3000),
            book(ava, 11, 9999, status="cancelled"),
            book(ava, 28, 4000),
            book(ben, 5, 2000, status="upcoming"),
        ])
        db.session.commit()
        return {"ava": ava.staff_id, "ben": ben.staff_id}


def test_payroll_for_date_range(app, client, salon_owner) -> None:
    ids = _seed(app, salon_owner["salon_id"])

    response = client.get(
        f"/api/salons/{salon_owner['salon_id']}/payroll?from=2026-04-01&to=2026-04-15",
        headers=salon_owner["headers"],
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["from"] == "2026-04-01"
    rows = {row["staff_id"]: row for row in body["staff"]}
    assert rows[ids["ava"]]["completed_appointments"] == 2
    assert rows[ids["ava"]]["total_sales_cents"] == 8000
    assert rows[ids["ava"]]["commission_cents"] == 800
    assert rows[ids["ava"]]["total_pay_cents"] == 100800
    assert rows[ids["ben"]]["completed_appointments"] == 0
    assert rows[ids["ben"]]["total_pay_cents"] == 50000
    assert body["totals"] == {"total_sales_cents": 8000, "commission_cents": 800, "total_pay_cents": 150800}


def test_payroll_end_date_is_inclusive(app, client, salon_owner) -> None:
    ids = _seed(app, salon_owner["salon_id"])

    response = client.get(
        f"/api/salons/{salon_owner['salon_id']}/payroll?from=2026-04-28&to=2026-04-28",
        headers=salon_owner["headers"],
    )

    rows = {row["staff_id"]: row for row in response.get_json()["staff"]}
    assert rows[ids["ava"]]["total_sales_cents"] == 4000


def test_payroll_defaults_to_last_30_days(client, salon_owner) -> None:
    response = client.get(f"/api/salons/{salon_owner['salon_id']}/payroll", headers=salon_owner["headers"])

    body = response.get_json()
    start = datetime.fromisoformat(body["from"])
    end = datetime.fromisoformat(body["to"])
    # Both ends are inclusive.
    assert (end - start).days + 1 == 30


def test_payroll_default_window_counts_thirty_days_back_from_to(client, salon_owner) -> None:
    response = client.get(
        f"/api/salons/{salon_owner['salon_id']}/payroll?to=2026-04-30", headers=salon_owner["headers"]
    )

    assert response.get_json()["from"] == "2026-04-01"


def test_payroll_invalid_range(client, salon_owner) -> None:
    url = f"/api/salons/{salon_owner['salon_id']}/payroll"

    assert client.get(f"{url}?from=2026-05-01&to=2026-04-01", headers=salon_owner["headers"]).status_code == 400
    assert client.get(f"{url}?from=yesterday", headers=salon_owner["headers"]).status_code == 400


def test_payroll_requires_hr_permission(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"], permissions={"staff": {"read": True}})

    response = client.get(f"/api/salons/{salon_owner['salon_id']}/payroll", headers=staff["headers"])

    assert response.status_code == 403
    assert response.get_json()["message"] == "You do not have read access to Human Resources"
