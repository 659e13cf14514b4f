"""
Canonical permissions matrix for the academy platform.

IMPORTANT: This is the single source of truth for all permissions.
All permission checks MUST reference these constants.
UI permission gating is UX only - server-side enforcement is security.

Role Hierarchy (expressed only through explicit permission sets):
- Learner roles: STUDENT
- Teaching roles: INSTRUCTOR
- Admin family: ADMIN, SUPER_ADMIN, CONTENT_ADMIN, SUPPORT_ADMIN, FINANCE_ADMIN
- Platform owner: OWNER (every declared permission)
"""

from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union


class Role(str, Enum):
    """
    User roles stored on the profile.

    Every user has exactly one role at a time.
    """
    STUDENT = "student"
    INSTRUCTOR = "instructor"

    # Admin family
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    CONTENT_ADMIN = "content_admin"
    SUPPORT_ADMIN = "support_admin"
    FINANCE_ADMIN = "finance_admin"

    OWNER = "owner"


class Permission(str, Enum):
    """
    All permissions in the system.

    Permissions are opaque constants. They are never derived from one
    another at runtime.
    """
    # Learner permissions
    VIEW_COURSES = "view_courses"
    VIEW_SIGNALS = "view_signals"
    VIEW_LIVE_CLASSES = "view_live_classes"
    VIEW_PROFILE = "view_profile"
    UPDATE_PROFILE = "update_profile"

    # Content and community management
    MANAGE_USERS = "manage_users"
    MANAGE_COURSES = "manage_courses"
    MANAGE_CONTENT = "manage_content"
    MANAGE_LESSONS = "manage_lessons"
    MANAGE_LIVE_TRAININGS = "manage_live_trainings"
    MANAGE_SIGNALS = "manage_signals"
    MANAGE_GROUPS = "manage_groups"
    MANAGE_CHAT = "manage_chat"
    MANAGE_RESOURCES = "manage_resources"
    MANAGE_SUBSCRIPTIONS = "manage_subscriptions"

    # Reporting and finance
    VIEW_ANALYTICS = "view_analytics"
    VIEW_FINANCE = "view_finance"
    MANAGE_FINANCE = "manage_finance"

    # Platform administration
    ROLE_ADMIN = "role_admin"
    BILLING_ADMIN = "billing_admin"
    SYSTEM_SETTINGS = "system_settings"
    ALL_ADMIN = "all_admin"

    # Paid content is always reachable by holders of this permission
    BYPASS_PAYWALL = "bypass_paywall"


STUDENT_PERMISSIONS: FrozenSet[Permission] = frozenset([
    Permission.VIEW_COURSES,
    Permission.VIEW_SIGNALS,
    Permission.VIEW_LIVE_CLASSES,
    Permission.VIEW_PROFILE,
    Permission.UPDATE_PROFILE,
])

ADMIN_PERMISSIONS: FrozenSet[Permission] = STUDENT_PERMISSIONS | frozenset([
    Permission.MANAGE_USERS,
    Permission.MANAGE_COURSES,
    Permission.MANAGE_CONTENT,
    Permission.MANAGE_LESSONS,
    Permission.MANAGE_LIVE_TRAININGS,
    Permission.MANAGE_SIGNALS,
    Permission.MANAGE_GROUPS,
    Permission.MANAGE_CHAT,
    Permission.VIEW_ANALYTICS,
    Permission.MANAGE_RESOURCES,
    Permission.MANAGE_SUBSCRIPTIONS,
    Permission.BYPASS_PAYWALL,
])


# Permission matrix: Role -> Set of Permissions
# This is the canonical source of truth for RBAC
ROLE_PERMISSIONS: dict[Role, FrozenSet[Permission]] = {
    Role.STUDENT: STUDENT_PERMISSIONS,

    Role.INSTRUCTOR: STUDENT_PERMISSIONS | frozenset([
        Permission.MANAGE_COURSES,
        Permission.MANAGE_LESSONS,
        Permission.MANAGE_LIVE_TRAININGS,
        Permission.MANAGE_SIGNALS,
        Permission.MANAGE_RESOURCES,
        Permission.BYPASS_PAYWALL,
    ]),

    Role.ADMIN: ADMIN_PERMISSIONS,

    Role.SUPER_ADMIN: ADMIN_PERMISSIONS | frozenset([
        Permission.ROLE_ADMIN,
        Permission.VIEW_FINANCE,
    ]),

    Role.CONTENT_ADMIN: STUDENT_PERMISSIONS | frozenset([
        Permission.MANAGE_COURSES,
        Permission.MANAGE_CONTENT,
        Permission.MANAGE_LESSONS,
        Permission.MANAGE_RESOURCES,
        Permission.BYPASS_PAYWALL,
    ]),

    Role.SUPPORT_ADMIN: STUDENT_PERMISSIONS | frozenset([
        Permission.MANAGE_CHAT,
        Permission.MANAGE_GROUPS,
        Permission.BYPASS_PAYWALL,
    ]),

    Role.FINANCE_ADMIN: STUDENT_PERMISSIONS | frozenset([
        Permission.VIEW_FINANCE,
        Permission.VIEW_ANALYTICS,
        Permission.BYPASS_PAYWALL,
    ]),

    # Owner is every declared constant, not a union of other roles,
    # so it stays a superset when other sets are edited.
    Role.OWNER: frozenset(Permission),
}


ADMIN_FAMILY_ROLES: FrozenSet[Role] = frozenset([
    Role.ADMIN,
    Role.SUPER_ADMIN,
    Role.CONTENT_ADMIN,
    Role.SUPPORT_ADMIN,
    Role.FINANCE_ADMIN,
])

# Roles whose areas stay reachable with an incomplete profile
ADMIN_AREA_ROLES: FrozenSet[Role] = ADMIN_FAMILY_ROLES | frozenset([Role.OWNER])

# Which roles each actor may hand out. OWNER is never assignable.
ASSIGNABLE_ROLES: dict[Role, FrozenSet[Role]] = {
    Role.OWNER: frozenset(r for r in Role if r != Role.OWNER),
    Role.SUPER_ADMIN: frozenset([
        Role.STUDENT,
        Role.ADMIN,
        Role.CONTENT_ADMIN,
        Role.SUPPORT_ADMIN,
        Role.FINANCE_ADMIN,
    ]),
    Role.ADMIN: frozenset([
        Role.STUDENT,
        Role.CONTENT_ADMIN,
        Role.SUPPORT_ADMIN,
    ]),
}

OWNER_LANDING_PAGE = "/owner/dashboard"
ADMIN_LANDING_PAGE = "/admin/overview"
INSTRUCTOR_LANDING_PAGE = "/instructor/overview"
STUDENT_LANDING_PAGE = "/student/dashboard"

RoleLike = Union[Role, str, None]


def parse_role(value: RoleLike) -> Optional[Role]:
    """
    Resolve a role value case-insensitively.

    Returns None for unknown, empty or non-string input. Never raises.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def permissions_for(role: RoleLike) -> FrozenSet[Permission]:
    """
    Get all permissions for a role.

    Unknown roles resolve to an empty set (fail-closed).
    """
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(parsed, frozenset())


def has_permission(role: RoleLike, permission: Permission) -> bool:
    """Check if a role has a specific permission."""
    return permission in permissions_for(role)


def has_any(role: RoleLike, permissions: Iterable[Permission]) -> bool:
    """Check if a role has at least one of the permissions."""
    granted = permissions_for(role)
    return any(p in granted for p in permissions)


def has_all(role: RoleLike, permissions: Iterable[Permission]) -> bool:
    """Check if a role has every one of the permissions."""
    granted = permissions_for(role)
    return all(p in granted for p in permissions)


def is_privileged(role: RoleLike) -> bool:
    """Privileged roles are never stopped by a paywall."""
    return has_permission(role, Permission.BYPASS_PAYWALL)


def is_admin_area_role(role: RoleLike) -> bool:
    return parse_role(role) in ADMIN_AREA_ROLES


def is_admin_area_permission(permission: Permission) -> bool:
    """True when only admin-area roles hold the permission."""
    return all(
        role in ADMIN_AREA_ROLES
        for role, permissions in ROLE_PERMISSIONS.items()
        if permission in permissions
    )


def landing_page_for(role: RoleLike) -> str:
    """
    Default landing page for a role.

    owner -> owner dashboard, admin family -> admin overview,
    instructor -> instructor overview, anything else -> student dashboard.
    """
    parsed = parse_role(role)
    if parsed == Role.OWNER:
        return OWNER_LANDING_PAGE
    if parsed in ADMIN_FAMILY_ROLES:
        return ADMIN_LANDING_PAGE
    if parsed == Role.INSTRUCTOR:
        return INSTRUCTOR_LANDING_PAGE
    return STUDENT_LANDING_PAGE


def can_assign_role(
    actor_role: RoleLike,
    target_current_role: RoleLike,
    new_role: RoleLike,
) -> bool:
    """
    Check whether an actor may move a target user to a new role.

    The owner role can neither be granted nor taken away.
    """
    actor = parse_role(actor_role)
    new = parse_role(new_role)
    if actor is None or new is None:
        return False
    if new == Role.OWNER or parse_role(target_current_role) == Role.OWNER:
        return False
    return new in ASSIGNABLE_ROLES.get(actor, frozenset())
