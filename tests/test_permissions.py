"""Unit tests for the module permission table and dependency checks."""
from __future__ import annotations

from itertools import combinations

import pytest

from salonflow.permissions import (ACTIONS, MODULE_DEPENDENCIES, MODULE_KEYS, InvalidPermissions,
                                   check_all_dependencies, check_module_dependencies,
                                   get_module_dependencies, get_module_name, has_module_access,
                                   has_permission, module_access_map, normalize_permissions)


def _all_action_subsets():
    for size in range(len(ACTIONS) + 1):
        yield from combinations(ACTIONS, size)


def test_module_names() -> None:
    assert get_module_name("hr") == "Human Resources"
    assert get_module_name("rolesPermissions") == "Roles & Permissions"
    assert get_module_name("unknownModule") == "unknownModule"


def test_every_dependency_entry_is_returned() -> None:
    appointments = get_module_dependencies("appointments")
    assert [dep.depends_on for dep in appointments] == [("clients",), ("services",)]
    assert get_module_dependencies("dashboard") == []


def test_appointments_without_clients_or_services_warns_twice() -> None:
    check = check_module_dependencies("appointments", {"appointments": {"read": True}})

    assert check.has_warning
    assert len(check.warnings) == 2
    assert check.warnings[0].endswith("Missing permissions for: Clients")
    assert check.warnings[1].endswith("Missing permissions for: Services")
    assert check.missing == ["clients", "services"]


def test_billing_lists_only_missing_dependencies() -> None:
    permissions = {"billing": {"create": True}, "clients": {"read": True}}

    check = check_module_dependencies("billing", permissions)

    assert check.warnings == [
        "Billing requires access to clients and appointments to generate invoices. Without these "
        "permissions, staff cannot create bills for clients or appointments. Missing permissions for: Appointments"
    ]


def test_delete_only_dependency_counts_as_missing() -> None:
    permissions = {"engage": {"read": True}, "clients": {"delete": True}}

    assert check_module_dependencies("engage", permissions).missing == ["clients"]


def test_ungranted_module_never_warns() -> None:
    permissions = {"appointments": {action: False for action in ACTIONS}}

    assert not check_module_dependencies("appointments", permissions).has_warning
    assert not check_module_dependencies("appointments", None).has_warning


def test_satisfied_dependencies_produce_no_warning() -> None:
    permissions = {
        "schedule": {"read": True},
        "clients": {"update": True},
        "services": {"create": True},
    }

    assert check_module_dependencies("schedule", permissions).warnings == []


def test_check_all_dependencies_in_table_order() -> None:
    permissions = {
        "engage": {"read": True},
        "billing": {"read": True},
        "appointments": {"read": True},
        "schedule": {"read": True},
    }

    warnings = check_all_dependencies(permissions)

    assert list(warnings) == ["appointments", "schedule", "billing", "engage"]
    assert len(warnings["appointments"]) == 2
    assert len(warnings["engage"]) == 1


def test_check_all_dependencies_empty_when_satisfied() -> None:
    permissions = {
        "appointments": {"read": True},
        "clients": {"read": True},
        "services": {"read": True},
    }
    assert check_all_dependencies(permissions) == {}


DEPENDENCY_EDGES = [(dependency, required) for dependency in MODULE_DEPENDENCIES for required in dependency.depends_on]


@pytest.mark.parametrize("dependency, required", DEPENDENCY_EDGES, ids=lambda v: v if isinstance(v, str) else v.module)
@pytest.mark.parametrize("granted", list(_all_action_subsets()), ids=lambda g: "+".join(g) or "none")
def test_warning_iff_dependency_unusable(dependency, required, granted) -> None:
    permissions = {dependency.module: {"read": True}, required: {action: True for action in granted}}
    for other in dependency.depends_on:
        if other != required:
            permissions[other] = {"read": True}

    check = check_module_dependencies(dependency.module, permissions)

    usable = any(action in granted for action in ("read", "create", "update"))
    assert (required in check.missing) is (not usable)
    assert any(dependency.reason in warning for warning in check.warnings) is (not usable)


def test_normalize_fills_missing_actions() -> None:
    assert normalize_permissions({"clients": {"read": True}}) == {
        "clients": {"read": True, "create": False, "update": False, "delete": False}
    }
    assert normalize_permissions(None) == {}
    assert normalize_permissions({"clients": None})["clients"]["read"] is False


@pytest.mark.parametrize(
    "raw",
    [
        ["clients"],
        {"unknown": {"read": True}},
        {"clients": {"approve": True}},
        {"clients": {"read": "yes"}},
        {"clients": True},
    ],
)
def test_normalize_rejects_invalid_payloads(raw) -> None:
    with pytest.raises(InvalidPermissions):
        normalize_permissions(raw)


def test_admins_pass_every_check() -> None:
    for role in ("super_admin", "salon_admin"):
        assert has_permission("inventory", "delete", role, {})
        assert has_module_access("hr", role, None)
        assert all(module_access_map(role, None).values())


def test_staff_permission_checks() -> None:
    permissions = {"clients": {"read": True, "delete": False}}

    assert has_permission("clients", "read", "staff", permissions)
    assert not has_permission("clients", "delete", "staff", permissions)
    assert not has_permission("services", "read", "staff", permissions)
    assert has_module_access("clients", "staff", permissions)
    assert not has_module_access("services", "staff", permissions)


def test_no_role_has_no_access() -> None:
    assert not has_permission("clients", "read", None, {"clients": {"read": True}})
    assert not any(module_access_map(None, {"clients": {"read": True}}).values())


def test_unknown_action_raises() -> None:
    with pytest.raises(ValueError):
        has_permission("clients", "approve", "staff", {})


def test_module_access_map_covers_every_module() -> None:
    access = module_access_map("staff", {"deals": {"update": True}})
    assert set(access) == set(MODULE_KEYS)
    assert [key for key, allowed in access.items() if allowed] == ["deals"]
