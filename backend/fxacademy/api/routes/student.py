"""
Student area API routes.

Course content is gated per course. Platform content is gated by the
subscription. A missing entitlement answers 402 with a paywall offer
the client can resume checkout from.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from fxacademy.api.dependencies import get_catalog_service, get_entitlement_service
from fxacademy.entitlements.service import EntitlementService, course_resource, platform_resource
from fxacademy.models.course import Course
from fxacademy.platform.errors import NotFoundError, success_body
from fxacademy.platform.guards import RouteRequirement, evaluate_access
from fxacademy.platform.rbac import decision_response, require_authenticated
from fxacademy.platform.request_context import RequestContext, get_request_context
from fxacademy.services.billing_service import access_days_for_level
from fxacademy.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/student", tags=["student"])

ENTITLED_CONTENT = RouteRequirement(require_entitlement=True)


def course_to_dict(course: Course) -> dict:
    return {
        "id": course.id,
        "slug": course.slug,
        "title": course.title,
        "description": course.description,
        "level": course.level,
        "price_minor": course.price_minor,
        "currency": course.currency,
        "access_days": access_days_for_level(course.level),
    }


@router.get("/courses")
@require_authenticated
async def list_courses(
    request: Request,
    context: Optional[RequestContext] = Depends(get_request_context),
    catalog: CatalogService = Depends(get_catalog_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """Course catalogue with the caller's access to each course."""
    courses = catalog.list_courses()
    decisions = entitlements.evaluate_courses(context, courses)
    return success_body({
        "courses": [
            {
                **course_to_dict(course),
                "is_entitled": decisions[course.id].entitled,
                "access_reason": decisions[course.id].reason.value,
            }
            for course in courses
        ],
    })


@router.get("/courses/{course_id}")
async def get_course(
    request: Request,
    course_id: str,
    context: Optional[RequestContext] = Depends(get_request_context),
    catalog: CatalogService = Depends(get_catalog_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """Course detail, or a paywall offer for that course."""
    path = request.url.path
    # Login and onboarding come before the catalogue lookup
    decision = evaluate_access(context, target_path=path)
    if not decision.allowed:
        return decision_response(decision)

    course = catalog.get_course(course_id)
    if course is None:
        raise NotFoundError(f"Course not found: {course_id}")

    entitlement = entitlements.is_entitled(context, course_resource(course))
    decision = evaluate_access(context, ENTITLED_CONTENT, target_path=path, entitlement=entitlement)
    if not decision.allowed:
        return decision_response(decision)

    return success_body({**course_to_dict(course), "access": entitlement.to_dict()})


@router.get("/access")
@require_authenticated
async def get_platform_access(
    request: Request,
    context: Optional[RequestContext] = Depends(get_request_context),
    catalog: CatalogService = Depends(get_catalog_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """
    Platform subscription access for the caller.

    Not entitled still answers 200; the paywall offer points at the
    cheapest active plan.
    """
    resource = platform_resource(catalog.cheapest_plan())
    entitlement = entitlements.is_entitled(context, resource)
    decision = evaluate_access(
        context,
        ENTITLED_CONTENT,
        target_path=request.url.path,
        entitlement=entitlement,
    )
    subscription = entitlements.subscriptions.get_effective(context.user_id)
    return success_body({
        "access": entitlement.to_dict(),
        "subscription": subscription.to_dict(),
        "paywall": decision.paywall.to_dict() if decision.paywall else None,
    })
