"""Tests for staff management and role assignment."""
from __future__ import annotations

import io
from unittest.mock import patch

from salonflow.extensions import db
from salonflow.models import Salon, StaffCategory, StaffCategoryAssignment, StaffRole, StaffRoleAssignment, User


def _create_role(app, salon_id: int, name: str = "Receptionist") -> int:
    with app.app_context():
        role = StaffRole(salon_id=salon_id, name=name)
        db.session.add(role)
        db.session.commit()
        return role.role_id


def test_create_and_list_staff(client, salon_owner) -> None:
    salon_id = salon_owner["salon_id"]
    headers = salon_owner["headers"]

    created = client.post(
        f"/api/salons/{salon_id}/staff",
        json={"name": "Ava Stylist", "email": "AVA@example.com", "commission_percent": 10, "base_salary_cents": 200000},
        headers=headers,
    )
    client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ben Barber"}, headers=headers)

    assert created.status_code == 201
    assert created.get_json()["staff"]["email"] == "ava@example.com"

    response = client.get(f"/api/salons/{salon_id}/staff", headers=headers)
    assert [s["name"] for s in response.get_json()["staff"]] == ["Ava Stylist", "Ben Barber"]

    searched = client.get(f"/api/salons/{salon_id}/staff?search=ben", headers=headers)
    assert [s["name"] for s in searched.get_json()["staff"]] == ["Ben Barber"]


def test_create_staff_validation(client, salon_owner) -> None:
    url = f"/api/salons/{salon_owner['salon_id']}/staff"

    assert client.post(url, json={}, headers=salon_owner["headers"]).status_code == 400
    assert client.post(url, json={"name": "X", "commission_percent": 150}, headers=salon_owner["headers"]).status_code == 400


def test_update_and_delete_staff(client, salon_owner) -> None:
    salon_id = salon_owner["salon_id"]
    headers = salon_owner["headers"]
    staff_id = client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ava"}, headers=headers).get_json()["staff"]["id"]

    updated = client.put(f"/api/salons/{salon_id}/staff/{staff_id}", json={"department": "Hair"}, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()["staff"]["department"] == "Hair"

    deleted = client.delete(f"/api/salons/{salon_id}/staff/{staff_id}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/salons/{salon_id}/staff/{staff_id}", headers=headers).status_code == 404


def test_staff_read_permission_required(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"], permissions={"clients": {"read": True}})

    response = client.get(f"/api/salons/{salon_owner['salon_id']}/staff", headers=staff["headers"])

    assert response.status_code == 403
    assert response.get_json()["message"] == "You do not have read access to Staff"


def test_staff_with_permission_can_list(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"], permissions={"staff": {"read": True}})

    response = client.get(f"/api/salons/{salon_owner['salon_id']}/staff", headers=staff["headers"])

    assert response.status_code == 200


def test_staff_of_other_salon_forbidden(app, client, salon_owner, make_user, make_staff) -> None:
    other_owner = make_user(role="salon_admin", email="other@example.com")
    with app.app_context():
        other = Salon(owner_id=other_owner, name="Other")
        db.session.add(other)
        db.session.commit()
        other_id = other.salon_id
    staff = make_staff(other_id, permissions={"staff": {"read": True}})

    response = client.get(f"/api/salons/{salon_owner['salon_id']}/staff", headers=staff["headers"])

    assert response.status_code == 403
    assert response.get_json()["message"] == "You do not have access to this salon"


def test_assign_and_remove_role(app, client, salon_owner, make_staff) -> None:
    salon_id = salon_owner["salon_id"]
    staff = make_staff(salon_id)
    role_id = _create_role(app, salon_id)

    assigned = client.put(
        f"/api/salons/{salon_id}/staff/{staff['staff_id']}/role",
        json={"role_id": role_id},
        headers=salon_owner["headers"],
    )
    assert assigned.status_code == 200
    assert assigned.get_json()["staff"]["role"] == "Receptionist"
    assert assigned.get_json()["staff"]["role_id"] == role_id

    filtered = client.get(f"/api/salons/{salon_id}/staff?role=Receptionist", headers=salon_owner["headers"])
    assert len(filtered.get_json()["staff"]) == 1

    removed = client.delete(f"/api/salons/{salon_id}/staff/{staff['staff_id']}/role", headers=salon_owner["headers"])
    assert removed.status_code == 200
    assert removed.get_json()["staff"]["role"] is None
    with app.app_context():
        assert db.session.get(StaffRoleAssignment, staff["staff_id"]) is None


def test_reassigning_role_replaces_previous(app, client, salon_owner, make_staff) -> None:
    salon_id = salon_owner["salon_id"]
    staff = make_staff(salon_id, permissions={"clients": {"read": True}})
    new_role = _create_role(app, salon_id, "Manager")

    response = client.put(
        f"/api/salons/{salon_id}/staff/{staff['staff_id']}/role",
        json={"role_id": new_role},
        headers=salon_owner["headers"],
    )

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(StaffRoleAssignment, staff["staff_id"]).role_id == new_role


def test_assign_role_from_other_salon_not_found(app, client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"])

    response = client.put(
        f"/api/salons/{salon_owner['salon_id']}/staff/{staff['staff_id']}/role",
        json={"role_id": 4242},
        headers=salon_owner["headers"],
    )

    assert response.status_code == 404


def test_staff_permissions_include_dependency_warnings(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"], permissions={"appointments": {"read": True}, "clients": {"read": True}})

    response = client.get(
        f"/api/salons/{salon_owner['salon_id']}/staff/{staff['staff_id']}/permissions",
        headers=salon_owner["headers"],
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["role"]["name"] == "Stylist"
    assert body["module_access"]["appointments"] is True
    assert list(body["dependency_warnings"]) == ["appointments"]
    assert body["dependency_warnings"]["appointments"][0].endswith("Missing permissions for: Services")


def test_avatar_upload(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"])

    with patch("salonflow.storage.boto3") as mock_boto3:
        response = client.post(
            f"/api/salons/{salon_owner['salon_id']}/staff/{staff['staff_id']}/avatar",
            data={"image": (io.BytesIO(b"fake image bytes"), "me.png")},
            content_type="multipart/form-data",
            headers=salon_owner["headers"],
        )

    assert response.status_code == 200
    avatar_url = response.get_json()["staff"]["avatar_url"]
    assert avatar_url.startswith("https://salonflow-test.s3.amazonaws.com/salons/")
    assert avatar_url.endswith(".png")
    mock_boto3.client.return_value.upload_fileobj.assert_called_once()


def test_avatar_upload_rejects_non_images(client, salon_owner, make_staff) -> None:
    staff = make_staff(salon_owner["salon_id"])

    response = client.post(
        f"/api/salons/{salon_owner['salon_id']}/staff/{staff['staff_id']}/avatar",
        data={"image": (io.BytesIO(b"text"), "notes.txt")},
        content_type="multipart/form-data",
        headers=salon_owner["headers"],
    )

    assert response.status_code == 400


def _create_category(app, name: str) -> int:
    with app.app_context():
        category = StaffCategory(name=name)
        db.session.add(category)
        db.session.commit()
        return category.category_id


def _other_salon(app, make_user) -> int:
    owner_id = make_user(role="salon_admin", email="other-owner@example.com")
    with app.app_context():
        salon = Salon(owner_id=owner_id, name="Other Studio")
        db.session.add(salon)
        db.session.commit()
        return salon.salon_id


def test_link_staff_to_customer_login_promotes_to_staff(app, client, salon_owner, make_user) -> None:
    user_id = make_user(role="customer", email="cust@example.com")

    response = client.post(
        f"/api/salons/{salon_owner['salon_id']}/staff",
        json={"name": "Cody", "user_id": user_id},
        headers=salon_owner["headers"],
    )

    assert response.status_code == 201
    assert response.get_json()["staff"]["user_id"] == user_id
    with app.app_context():
        assert db.session.get(User, user_id).role == "staff"


def test_link_staff_rejects_member_of_other_salon(app, client, salon_owner, make_user, make_staff) -> None:
    other_staff = make_staff(_other_salon(app, make_user), email="elsewhere@example.com")

    response = client.post(
        f"/api/salons/{salon_owner['salon_id']}/staff",
        json={"name": "Elle", "user_id": other_staff["user_id"]},
        headers=salon_owner["headers"],
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "user_id is already linked to staff in another salon"


def test_link_staff_rejects_admin_and_duplicate_logins(client, salon_owner, make_staff) -> None:
    url = f"/api/salons/{salon_owner['salon_id']}/staff"
    existing = make_staff(salon_owner["salon_id"])

    admin = client.post(url, json={"name": "Olivia", "user_id": salon_owner["user_id"]}, headers=salon_owner["headers"])
    duplicate = client.post(url, json={"name": "Sam 2", "user_id": existing["user_id"]}, headers=salon_owner["headers"])
    unchanged = client.put(
        f"{url}/{existing['staff_id']}", json={"user_id": existing["user_id"]}, headers=salon_owner["headers"]
    )

    assert admin.status_code == 400
    assert admin.get_json()["message"] == "user_id belongs to an administrator account"
    assert duplicate.status_code == 400
    assert duplicate.get_json()["message"] == "user_id is already linked to another staff member"
    assert unchanged.status_code == 200


def test_staff_categories_assign_filter_and_remove(app, client, salon_owner) -> None:
    salon_id = salon_owner["salon_id"]
    headers = salon_owner["headers"]
    hair = _create_category(app, "Hair")
    nails = _create_category(app, "Nails")
    ava = client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ava"}, headers=headers).get_json()["staff"]["id"]
    client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ben"}, headers=headers)

    assigned = client.post(f"/api/salons/{salon_id}/staff/{ava}/categories", json={"category_id": hair}, headers=headers)
    assert assigned.status_code == 201
    assert assigned.get_json()["staff"]["categories"] == [{"id": hair, "name": "Hair"}]

    categories = client.get(f"/api/salons/{salon_id}/staff/categories", headers=headers).get_json()["categories"]
    assert [(c["name"], c["staff_count"]) for c in categories] == [("Hair", 1), ("Nails", 0)]

    filtered = client.get(f"/api/salons/{salon_id}/staff?category_id={hair}", headers=headers).get_json()["staff"]
    assert [s["name"] for s in filtered] == ["Ava"]
    assert client.get(f"/api/salons/{salon_id}/staff?category_id={nails}", headers=headers).get_json()["staff"] == []

    removed = client.delete(f"/api/salons/{salon_id}/staff/{ava}/categories/{hair}", headers=headers)
    assert removed.status_code == 200
    assert removed.get_json()["staff"]["categories"] == []
    with app.app_context():
        assert StaffCategoryAssignment.query.count() == 0


def test_staff_category_errors(app, client, salon_owner) -> None:
    salon_id = salon_owner["salon_id"]
    headers = salon_owner["headers"]
    hair = _create_category(app, "Hair")
    ava = client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ava"}, headers=headers).get_json()["staff"]["id"]
    url = f"/api/salons/{salon_id}/staff/{ava}/categories"

    assert client.post(url, json={}, headers=headers).status_code == 400
    assert client.post(url, json={"category_id": 999}, headers=headers).status_code == 404
    assert client.post(url, json={"category_id": hair}, headers=headers).status_code == 201
    assert client.post(url, json={"category_id": hair}, headers=headers).status_code == 409
    assert client.delete(f"{url}/999", headers=headers).status_code == 404
    assert client.post(
        f"/api/salons/{salon_id}/staff/999/categories", json={"category_id": hair}, headers=headers
    ).status_code == 404


def test_staff_category_changes_require_staff_update(app, client, salon_owner, make_staff) -> None:
    salon_id = salon_owner["salon_id"]
    hair = _create_category(app, "Hair")
    reader = make_staff(salon_id, permissions={"staff": {"read": True}})

    listed = client.get(f"/api/salons/{salon_id}/staff/categories", headers=reader["headers"])
    assigned = client.post(
        f"/api/salons/{salon_id}/staff/{reader['staff_id']}/categories",
        json={"category_id": hair},
        headers=reader["headers"],
    )

    assert listed.status_code == 200
    assert assigned.status_code == 403


def test_deleting_staff_drops_category_assignments(app, client, salon_owner) -> None:
    salon_id = salon_owner["salon_id"]
    headers = salon_owner["headers"]
    hair = _create_category(app, "Hair")
    ava = client.post(f"/api/salons/{salon_id}/staff", json={"name": "Ava"}, headers=headers).get_json()["staff"]["id"]
    client.post(f"/api/salons/{salon_id}/staff/{ava}/categories", json={"category_id": hair}, headers=headers)

    assert client.delete(f"/api/salons/{salon_id}/staff/{ava}", headers=headers).status_code == 200
    with app.app_context():
        assert StaffCategoryAssignment.query.count() == 0
        assert db.session.get(StaffCategory, hair) is not None


def test_create_staff_category_super_admin_only(client, salon_owner, make_user, auth_headers) -> None:
    admin_headers = auth_headers(make_user(role="super_admin", email="root@example.com"))

    created = client.post("/api/staff-categories", json={"name": "Hair"}, headers=admin_headers)
    duplicate = client.post("/api/staff-categories", json={"name": "hair"}, headers=admin_headers)
    denied = client.post("/api/staff-categories", json={"name": "Nails"}, headers=salon_owner["headers"])

    assert created.status_code == 201
    assert created.get_json()["category"]["name"] == "Hair"
    assert duplicate.status_code == 409
    assert denied.status_code == 403
