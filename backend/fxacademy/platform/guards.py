"""
Route and API guard decisions.

evaluate_access() turns (caller, requirement) into one of:

- ALLOW
- REDIRECT(target): login, onboarding, or the caller's own landing page
- DENY: missing permission, or missing entitlement (with a paywall offer)

Decisions are plain values. They are never raised, so a routing
decision cannot be mistaken for a crash. The same evaluator backs the
API (authoritative) and the UI access endpoint (cosmetic only).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import quote

from fxacademy.constants.permissions import (
    ADMIN_AREA_ROLES,
    Permission,
    Role,
    has_any,
    is_admin_area_permission,
    is_admin_area_role,
    landing_page_for,
    parse_role,
)
from fxacademy.entitlements.models import EntitlementDecision, ProtectedResource, ResourceScope
from fxacademy.platform.request_context import RequestContext

LOGIN_PATH = "/login"
ONBOARDING_PATH = "/onboarding"
CHECKOUT_PATH = "/payments/checkout"


class GuardOutcome(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    DENY = "deny"


class GuardReason:
    """Machine-readable reasons attached to decisions."""
    AUTHENTICATION_REQUIRED = "authentication_required"
    ONBOARDING_REQUIRED = "onboarding_required"
    ROLE_MISMATCH = "role_mismatch"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    PAYMENT_REQUIRED = "payment_required"


@dataclass(frozen=True)
class PaywallOffer:
    """Resumable payment action shown instead of a hard block."""
    scope: ResourceScope
    resource_id: Optional[str] = None
    title: Optional[str] = None
    price_minor: Optional[int] = None
    currency: Optional[str] = None
    checkout_path: str = CHECKOUT_PATH

    @classmethod
    def for_resource(cls, resource: ProtectedResource) -> "PaywallOffer":
        return cls(
            scope=resource.scope,
            resource_id=resource.resource_id,
            title=resource.title,
            price_minor=resource.price_minor,
            currency=resource.currency,
        )

    @property
    def checkout_body(self) -> dict:
        if self.scope == ResourceScope.COURSE:
            return {"course_id": self.resource_id}
        return {"plan_id": self.resource_id}

    def to_dict(self) -> dict:
        return {
            "scope": self.scope.value,
            "resource_id": self.resource_id,
            "title": self.title,
            "price_minor": self.price_minor,
            "currency": self.currency,
            "checkout": {"method": "POST", "path": self.checkout_path, "body": self.checkout_body},
        }


@dataclass(frozen=True)
class RouteRequirement:
    """
    What a route needs from its caller.

    required_roles: caller's role must be one of these (empty = any)
    required_permissions: caller needs at least one of these (empty = none)
    require_entitlement: caller must be entitled to the route's resource
    """
    required_roles: Tuple[Role, ...] = ()
    required_permissions: Tuple[Permission, ...] = ()
    require_entitlement: bool = False

    @property
    def is_admin_area(self) -> bool:
        """Admin and owner areas, named by role or by admin-only permissions."""
        if any(is_admin_area_role(role) for role in self.required_roles):
            return True
        return bool(self.required_permissions) and all(
            is_admin_area_permission(p) for p in self.required_permissions
        )


AUTHENTICATED = RouteRequirement()


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    target: Optional[str] = None
    reason: Optional[str] = None
    paywall: Optional[PaywallOffer] = field(default=None)

    @property
    def allowed(self) -> bool:
        return self.outcome == GuardOutcome.ALLOW

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(GuardOutcome.ALLOW)

    @classmethod
    def redirect(cls, target: str, reason: str) -> "GuardDecision":
        return cls(GuardOutcome.REDIRECT, target=target, reason=reason)

    @classmethod
    def deny(cls, reason: str, target: Optional[str] = None, paywall: Optional[PaywallOffer] = None) -> "GuardDecision":
        return cls(GuardOutcome.DENY, target=target, reason=reason, paywall=paywall)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "target": self.target,
            "reason": self.reason,
            "paywall": self.paywall.to_dict() if self.paywall else None,
        }


def safe_next_path(path: Optional[str]) -> Optional[str]:
    """Only same-site absolute paths are kept as post-login destinations."""
    if not path or not path.startswith("/") or path.startswith("//") or "\\" in path:
        return None
    return path


def login_redirect(target_path: Optional[str]) -> str:
    """Login URL that returns the caller to target_path afterwards."""
    next_path = safe_next_path(target_path)
    if next_path is None or next_path == LOGIN_PATH:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?next={quote(next_path, safe='/')}"


def post_login_redirect(context: RequestContext, next_path: Optional[str] = None) -> str:
    """Where to send a caller right after login or onboarding."""
    if not context.is_onboarded and not is_admin_area_role(context.role):
        return ONBOARDING_PATH
    return safe_next_path(next_path) or landing_page_for(context.role)


def evaluate_access(
    context: Optional[RequestContext],
    requirement: RouteRequirement = AUTHENTICATED,
    target_path: str = "/",
    entitlement: Optional[EntitlementDecision] = None,
) -> GuardDecision:
    """
    Decide whether a caller may reach a route.

    Args:
        context: Caller context, None when unauthenticated
        requirement: Route requirement
        target_path: Path being accessed (kept for post-login return)
        entitlement: Entitlement decision for the route's resource, when
            the route requires one

    Returns:
        GuardDecision
    """
    if context is None:
        return GuardDecision.redirect(login_redirect(target_path), GuardReason.AUTHENTICATION_REQUIRED)

    # Admin areas stay reachable with an incomplete profile
    if (
        not context.is_onboarded
        and not requirement.is_admin_area
        and target_path != ONBOARDING_PATH
    ):
        return GuardDecision.redirect(ONBOARDING_PATH, GuardReason.ONBOARDING_REQUIRED)

    if requirement.required_roles and parse_role(context.role) not in requirement.required_roles:
        return GuardDecision.redirect(landing_page_for(context.role), GuardReason.ROLE_MISMATCH)

    if requirement.required_permissions and not has_any(context.role, requirement.required_permissions):
        return GuardDecision.deny(GuardReason.INSUFFICIENT_PERMISSION, target=landing_page_for(context.role))

    if requirement.require_entitlement and (entitlement is None or not entitlement.entitled):
        paywall = PaywallOffer.for_resource(entitlement.resource) if entitlement else None
        return GuardDecision.deny(GuardReason.PAYMENT_REQUIRED, paywall=paywall)

    return GuardDecision.allow()


# Frontend areas, most specific prefix first. Paths not listed are public.
UI_ROUTES: Tuple[Tuple[str, RouteRequirement], ...] = (
    ("/admin/admin-users", RouteRequirement(required_roles=(Role.OWNER, Role.SUPER_ADMIN))),
    ("/owner", RouteRequirement(required_roles=(Role.OWNER,))),
    ("/admin", RouteRequirement(required_roles=tuple(sorted(ADMIN_AREA_ROLES, key=lambda r: r.value)))),
    ("/instructor", RouteRequirement(required_roles=(Role.INSTRUCTOR,))),
    ("/student", AUTHENTICATED),
    ("/billing", AUTHENTICATED),
    ("/onboarding", AUTHENTICATED),
)


def requirement_for_path(path: str) -> Optional[RouteRequirement]:
    """Requirement guarding a frontend path, or None when it is public."""
    for prefix, requirement in UI_ROUTES:
        if path == prefix or path.startswith(prefix + "/"):
            return requirement
    return None
