"""
Content entitlement evaluation.

Two independent tracks:
- course: a completed course payment unlocks that course only
- platform: an entitled subscription status unlocks platform content

Privileged roles bypass both.
"""

from fxacademy.entitlements.models import (
    EntitlementDecision,
    EntitlementReason,
    ProtectedResource,
    ResourceScope,
)
from fxacademy.entitlements.policy import evaluate_entitlement

__all__ = [
    "EntitlementDecision",
    "EntitlementReason",
    "ProtectedResource",
    "ResourceScope",
    "evaluate_entitlement",
]
