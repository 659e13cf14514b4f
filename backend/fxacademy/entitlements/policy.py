"""
Entitlement policy evaluation.

Pure decision logic: callers look up the facts (course entitlement row,
effective subscription status) and this module decides.
"""

from typing import Union

from fxacademy.constants.permissions import RoleLike, has_permission
from fxacademy.entitlements.models import (
    EntitlementDecision,
    EntitlementReason,
    ProtectedResource,
    ResourceScope,
)
from fxacademy.models.subscription import SubscriptionStatus
from fxacademy.services.subscription_state import is_entitled_status, parse_status


def evaluate_entitlement(
    role: RoleLike,
    resource: ProtectedResource,
    has_course_entitlement: bool = False,
    platform_status: Union[SubscriptionStatus, str, None] = None,
) -> EntitlementDecision:
    """
    Decide whether a caller may access a resource.

    Order:
    1. Holders of resource.required_admin_permission are always entitled.
    2. Course resources need a course entitlement. A platform
       subscription does not count.
    3. Platform resources need an entitled subscription status. Course
       purchases do not count.

    Args:
        role: Caller's role
        resource: Resource being accessed
        has_course_entitlement: Whether an active course entitlement exists
        platform_status: Effective (derived) subscription status

    Returns:
        EntitlementDecision
    """
    if has_permission(role, resource.required_admin_permission):
        return EntitlementDecision(True, EntitlementReason.PRIVILEGED_BYPASS, resource)

    if resource.scope == ResourceScope.COURSE:
        if has_course_entitlement:
            return EntitlementDecision(True, EntitlementReason.COURSE_PAYMENT, resource)
        return EntitlementDecision(False, EntitlementReason.NO_COURSE_PAYMENT, resource)

    if is_entitled_status(platform_status):
        return EntitlementDecision(True, EntitlementReason.PLATFORM_SUBSCRIPTION, resource)

    reason = EntitlementReason.SUBSCRIPTION_INACTIVE
    if parse_status(platform_status) == SubscriptionStatus.EXPIRED:
        reason = EntitlementReason.SUBSCRIPTION_EXPIRED
    return EntitlementDecision(False, reason, resource)
