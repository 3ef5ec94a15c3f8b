"""Module permission table and access checks for staff roles.

A permission set maps a module key (``"clients"``, ``"appointments"`` ...) to
CRUD flags, e.g. ``{"clients": {"read": True, "create": False, ...}}``.
Admins (super admins and salon owners) bypass every check; staff members get
exactly what their assigned role grants.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

ACTIONS = ("read", "create", "update", "delete")

# Actions that count as "usable" access for a dependency. Delete-only access
# does not let a staff member pick a client or a service.
DEPENDENCY_ACTIONS = ("read", "create", "update")

ADMIN_ROLES = frozenset({"super_admin", "salon_admin"})

MODULE_NAMES: dict[str, str] = {
    "dashboard": "Dashboard",
    "schedule": "Schedule",
    "clients": "Clients",
    "services": "Services",
    "deals": "Deals",
    "promotions": "Promotions",
    "inventory": "Inventory",
    "procurement": "Procurement",
    "engage": "Engage",
    "hr": "Human Resources",
    "roles": "Roles",
    "billing": "Billing",
    "appointments": "Appointments",
    "staff": "Staff",
    "branches": "Branches",
    "settings": "Settings",
    "reports": "Reports",
    "onboardRequests": "Onboarding Requests",
    "rolesPermissions": "Roles & Permissions",
}

MODULE_KEYS = tuple(MODULE_NAMES)


class InvalidPermissions(ValueError):
    """Raised when a permission payload cannot be stored."""


@dataclass(frozen=True)
class ModuleDependency:
    module: str
    depends_on: tuple[str, ...]
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {
            "module": self.module,
            "module_name": get_module_name(self.module),
            "depends_on": list(self.depends_on),
            "reason": self.reason,
        }


@dataclass
class DependencyCheck:
    module: str
    warnings: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def has_warning(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> dict[str, object]:
        return {
            "module": self.module,
            "has_warning": self.has_warning,
            "warnings": list(self.warnings),
            "missing": list(self.missing),
        }


MODULE_DEPENDENCIES: tuple[ModuleDependency, ...] = (
    ModuleDependency(
        "appointments",
        ("clients",),
        "Appointments require selecting clients to book appointments. Without client permissions, "
        "staff cannot create or manage appointments.",
    ),
    ModuleDependency(
        "schedule",
        ("clients",),
        "Schedule management requires client access to view and manage appointments. Without client "
        "permissions, staff cannot see client information in the schedule.",
    ),
    ModuleDependency(
        "appointments",
        ("services",),
        "Appointments require selecting services to book. Without service permissions, staff cannot "
        "add services to appointments.",
    ),
    ModuleDependency(
        "schedule",
        ("services",),
        "Schedule management requires service access to view and manage service bookings. Without "
        "service permissions, staff cannot see service details in the schedule.",
    ),
    ModuleDependency(
        "billing",
        ("clients", "appointments"),
        "Billing requires access to clients and appointments to generate invoices. Without these "
        "permissions, staff cannot create bills for clients or appointments.",
    ),
    ModuleDependency(
        "engage",
        ("clients",),
        "Engage features require client access to send messages and campaigns. Without client "
        "permissions, staff cannot select clients for engagement activities.",
    ),
)


def get_module_name(module_key: str) -> str:
    return MODULE_NAMES.get(module_key, module_key)


def get_module_dependencies(module_key: str) -> list[ModuleDependency]:
    """Return every dependency entry declared for ``module_key``."""
    return [dep for dep in MODULE_DEPENDENCIES if dep.module == module_key]


def _flags(permissions: Mapping[str, Mapping[str, object]] | None, module_key: str) -> Mapping[str, object]:
    if not permissions:
        return {}
    return permissions.get(module_key) or {}


def _any_granted(flags: Mapping[str, object], actions: tuple[str, ...]) -> bool:
    return any(flags.get(action) is True for action in actions)


def check_module_dependencies(
    module_key: str,
    permissions: Mapping[str, Mapping[str, object]] | None,
) -> DependencyCheck:
    """Report dependencies of ``module_key`` the permission set leaves unusable.

    Nothing is reported for a module the permission set does not grant at all.
    Each declared dependency entry contributes its own warning, listing the
    modules that have none of read/create/update granted.
    """
    result = DependencyCheck(module=module_key)
    if not _any_granted(_flags(permissions, module_key), ACTIONS):
        return result

    for dependency in get_module_dependencies(module_key):
        missing = [
            required
            for required in dependency.depends_on
            if not _any_granted(_flags(permissions, required), DEPENDENCY_ACTIONS)
        ]
        if not missing:
            continue
        names = ", ".join(get_module_name(required) for required in missing)
        result.warnings.append(f"{dependency.reason} Missing permissions for: {names}")
        result.missing.extend(m for m in missing if m not in result.missing)

    return result


def check_all_dependencies(permissions: Mapping[str, Mapping[str, object]] | None) -> dict[str, list[str]]:
    """Map each module with unmet dependencies to its warnings, in table order."""
    warnings: dict[str, list[str]] = {}
    for dependency in MODULE_DEPENDENCIES:
        if dependency.module in warnings:
            continue
        check = check_module_dependencies(dependency.module, permissions)
        if check.has_warning:
            warnings[dependency.module] = check.warnings
    return warnings


def normalize_permissions(raw: object) -> dict[str, dict[str, bool]]:
    """Validate a permission payload and fill in missing actions with ``False``."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise InvalidPermissions("permissions must be an object keyed by module")

    normalized: dict[str, dict[str, bool]] = {}
    for module_key, flags in raw.items():
        if module_key not in MODULE_NAMES:
            raise InvalidPermissions(f"unknown module: {module_key}")
        if flags is None:
            flags = {}
        if not isinstance(flags, Mapping):
            raise InvalidPermissions(f"permissions for {module_key} must be an object")

        unknown = set(flags) - set(ACTIONS)
        if unknown:
            raise InvalidPermissions(f"unknown actions for {module_key}: {', '.join(sorted(unknown))}")

        entry: dict[str, bool] = {}
        for action in ACTIONS:
            value = flags.get(action, False)
            if not isinstance(value, bool):
                raise InvalidPermissions(f"{module_key}.{action} must be a boolean")
            entry[action] = value
        normalized[module_key] = entry

    return normalized


def is_admin(role: str | None) -> bool:
    return role in ADMIN_ROLES


def has_module_access(
    module_key: str,
    role: str | None,
    permissions: Mapping[str, Mapping[str, object]] | None,
) -> bool:
    """Admins see every module; staff see modules with any granted action."""
    if role is None:
        return False
    if is_admin(role):
        return True
    return _any_granted(_flags(permissions, module_key), ACTIONS)


def has_permission(
    module_key: str,
    action: str,
    role: str | None,
    permissions: Mapping[str, Mapping[str, object]] | None,
) -> bool:
    if action not in ACTIONS:
        raise ValueError(f"unknown action: {action}")
    if role is None:
        return False
    if is_admin(role):
        return True
    return _flags(permissions, module_key).get(action) is True


def module_access_map(role: str | None, permissions: Mapping[str, Mapping[str, object]] | None) -> dict[str, bool]:
    return {key: has_module_access(key, role, permissions) for key in MODULE_KEYS}
