"""
Value types for entitlement evaluation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fxacademy.constants.permissions import Permission


class ResourceScope(str, Enum):
    """Which entitlement track protects a resource."""
    COURSE = "course"
    PLATFORM = "platform"


class EntitlementReason(str, Enum):
    """Machine-readable reason for an entitlement decision."""
    PRIVILEGED_BYPASS = "privileged_bypass"
    COURSE_PAYMENT = "course_payment"
    PLATFORM_SUBSCRIPTION = "platform_subscription"
    NO_COURSE_PAYMENT = "no_course_payment"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    SUBSCRIPTION_EXPIRED = "subscription_expired"


@dataclass(frozen=True)
class ProtectedResource:
    """
    A piece of paid content.

    required_admin_permission is the permission that skips the paywall.
    price_minor/currency describe the checkout offered when access is
    missing.
    """
    scope: ResourceScope
    resource_id: Optional[str] = None
    required_admin_permission: Permission = Permission.BYPASS_PAYWALL
    title: Optional[str] = None
    price_minor: Optional[int] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class EntitlementDecision:
    """Result of an entitlement check."""
    entitled: bool
    reason: EntitlementReason
    resource: ProtectedResource

    def to_dict(self) -> dict:
        return {
            "entitled": self.entitled,
            "reason": self.reason.value,
            "scope": self.resource.scope.value,
            "resource_id": self.resource.resource_id,
        }
