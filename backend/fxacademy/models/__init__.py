"""
Database models for profiles, billing, subscriptions and entitlements.

Importing this package registers every table on Base.metadata.
"""

from fxacademy.models.base import TimestampMixin, generate_uuid
from fxacademy.models.profile import Profile
from fxacademy.models.plan import Plan, PlanInterval
from fxacademy.models.course import Course, CourseLevel
from fxacademy.models.subscription import Subscription, SubscriptionStatus
from fxacademy.models.payment import (
    Payment,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentPurpose,
    PaymentStatus,
)
from fxacademy.models.entitlement import CourseEntitlement, EntitlementStatus
from fxacademy.models.payment_event import PaymentEvent
from fxacademy.models.audit import RoleAudit, SubscriptionAudit

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    "Profile",
    "Plan",
    "PlanInterval",
    "Course",
    "CourseLevel",
    "Subscription",
    "SubscriptionStatus",
    "Payment",
    "PaymentIntent",
    "PaymentIntentStatus",
    "PaymentPurpose",
    "PaymentStatus",
    "CourseEntitlement",
    "EntitlementStatus",
    "PaymentEvent",
    "RoleAudit",
    "SubscriptionAudit",
]
