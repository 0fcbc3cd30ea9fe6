# roles.py
"""Canonical staff roles and case-insensitive role checks"""
from enum import Enum


class Role(str, Enum):
    SUPPORT_WORKER = "SupportWorker"
    TEAM_LEADER = "TeamLeader"
    COORDINATOR = "Coordinator"
    ADMIN = "Admin"
    CONSOLE_MANAGER = "ConsoleManager"


UNKNOWN_ROLE = "Unknown"

# lowercased spelling -> canonical role
_ALIASES = {
    "supportworker": Role.SUPPORT_WORKER,
    "staff": Role.SUPPORT_WORKER,
    "teamleader": Role.TEAM_LEADER,
    "coordinator": Role.COORDINATOR,
    "admin": Role.ADMIN,
    "consolemanager": Role.CONSOLE_MANAGER,
}

ROLE_HIERARCHY = {
    Role.SUPPORT_WORKER: 1,
    Role.TEAM_LEADER: 2,
    Role.COORDINATOR: 3,
    Role.ADMIN: 4,
    Role.CONSOLE_MANAGER: 5,
}

DISPLAY_NAMES = {
    Role.SUPPORT_WORKER: "Support Worker",
    Role.TEAM_LEADER: "Team Leader",
    Role.COORDINATOR: "Coordinator",
    Role.ADMIN: "Administrator",
    Role.CONSOLE_MANAGER: "Console Manager",
}

BILLING_VIEW_ROLES = (Role.ADMIN, Role.TEAM_LEADER, Role.COORDINATOR, Role.CONSOLE_MANAGER)


def normalize_role(role):
    """Map any spelling of a role to its canonical Role, or None if unrecognized"""
    if isinstance(role, Role):
        return role
    if not role:
        return None
    return _ALIASES.get(str(role).strip().lower())


def role_bucket(role):
    """Billing bucket name for a raw role string"""
    normalized = normalize_role(role)
    return normalized.value if normalized else UNKNOWN_ROLE


def has_role(user_role, target_role):
    return normalize_role(user_role) == normalize_role(target_role)


def has_any_role(user_role, target_roles):
    normalized = normalize_role(user_role)
    if normalized is None:
        return False
    return normalized in {normalize_role(r) for r in target_roles}


def has_minimum_role(user_role, minimum_role):
    normalized = normalize_role(user_role)
    minimum = normalize_role(minimum_role)
    if normalized is None or minimum is None:
        return False
    return ROLE_HIERARCHY[normalized] >= ROLE_HIERARCHY[minimum]


def can_view_billing(user_role):
    return has_any_role(user_role, BILLING_VIEW_ROLES)


def is_admin_level(user_role):
    return has_any_role(user_role, (Role.ADMIN, Role.CONSOLE_MANAGER))


def role_display_name(role):
    normalized = normalize_role(role)
    if normalized is None:
        return UNKNOWN_ROLE
    return DISPLAY_NAMES[normalized]
