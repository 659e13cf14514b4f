"""
Entitlement service.

Looks up the facts for a caller (course entitlement rows, effective
subscription status) and delegates the decision to the pure policy.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from fxacademy.entitlements.models import EntitlementDecision, ProtectedResource, ResourceScope
from fxacademy.entitlements.policy import evaluate_entitlement
from fxacademy.models.base import as_utc, utcnow
from fxacademy.models.course import Course
from fxacademy.models.entitlement import CourseEntitlement, EntitlementStatus
from fxacademy.models.plan import Plan
from fxacademy.platform.request_context import RequestContext
from fxacademy.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


def course_resource(course: Course) -> ProtectedResource:
    return ProtectedResource(
        scope=ResourceScope.COURSE,
        resource_id=course.id,
        title=course.title,
        price_minor=course.price_minor,
        currency=course.currency,
    )


def platform_resource(plan: Optional[Plan] = None) -> ProtectedResource:
    """Platform content, offered through plan when access is missing."""
    if plan is None:
        return ProtectedResource(scope=ResourceScope.PLATFORM)
    return ProtectedResource(
        scope=ResourceScope.PLATFORM,
        resource_id=plan.id,
        title=plan.name,
        price_minor=plan.price_minor,
        currency=plan.currency,
    )


class EntitlementService:
    """Evaluates content access for a request context."""

    def __init__(self, db_session: Session, subscription_service: Optional[SubscriptionService] = None):
        self.db = db_session
        self.subscriptions = subscription_service or SubscriptionService(db_session)

    def _active_course_entitlements(self, user_id: str, now: datetime) -> Dict[str, CourseEntitlement]:
        rows = self.db.query(CourseEntitlement).filter(
            CourseEntitlement.user_id == user_id,
            CourseEntitlement.status == EntitlementStatus.ACTIVE,
        ).all()
        return {
            row.course_id: row
            for row in rows
            if row.expires_at is None or as_utc(row.expires_at) > now
        }

    def has_course_entitlement(self, user_id: str, course_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return course_id in self._active_course_entitlements(user_id, now)

    def is_entitled(
        self,
        context: RequestContext,
        resource: ProtectedResource,
        now: Optional[datetime] = None,
    ) -> EntitlementDecision:
        """
        Decide access to one resource.

        Only the track matching resource.scope is consulted.
        """
        now = now or utcnow()
        has_course = False
        platform_status = None

        if resource.scope == ResourceScope.COURSE and resource.resource_id:
            has_course = self.has_course_entitlement(context.user_id, resource.resource_id, now)
        elif resource.scope == ResourceScope.PLATFORM:
            platform_status = self.subscriptions.get_effective(context.user_id, now).status

        decision = evaluate_entitlement(
            context.role,
            resource,
            has_course_entitlement=has_course,
            platform_status=platform_status,
        )
        if not decision.entitled:
            logger.info(
                "Entitlement denied",
                extra={
                    "user_id": context.user_id,
                    "scope": resource.scope.value,
                    "resource_id": resource.resource_id,
                    "reason": decision.reason.value,
                },
            )
        return decision

    def evaluate_courses(
        self,
        context: RequestContext,
        courses: List[Course],
        now: Optional[datetime] = None,
    ) -> Dict[str, EntitlementDecision]:
        """Decide access for a list of courses with a single lookup."""
        now = now or utcnow()
        owned = self._active_course_entitlements(context.user_id, now)
        return {
            course.id: evaluate_entitlement(
                context.role,
                course_resource(course),
                has_course_entitlement=course.id in owned,
            )
            for course in courses
        }

    def list_course_entitlements(self, user_id: str, now: Optional[datetime] = None) -> List[CourseEntitlement]:
        now = now or utcnow()
        return list(self._active_course_entitlements(user_id, now).values())
