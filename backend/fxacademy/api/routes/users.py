"""
Current-user API routes.

GET /users/me/access answers "may I show this page?" for the frontend.
Its answer is cosmetic: every API route enforces the same guard
server-side.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from fxacademy.api.dependencies import get_profile_service, get_subscription_service
from fxacademy.platform.errors import NotFoundError, success_body
from fxacademy.platform.guards import evaluate_access, post_login_redirect, requirement_for_path
from fxacademy.platform.rbac import require_login
from fxacademy.platform.request_context import RequestContext, get_request_context
from fxacademy.services.profile_service import ProfileNotFoundError, ProfileService, profile_to_dict
from fxacademy.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class UpdateProfileRequest(BaseModel):
    """Personal fields. Role and email cannot be changed here."""
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    country_code: Optional[str] = Field(None, max_length=8)
    phone: Optional[str] = Field(None, max_length=32)


@router.get("/me")
@require_login
async def get_me(
    request: Request,
    context: Optional[RequestContext] = Depends(get_request_context),
    profiles: ProfileService = Depends(get_profile_service),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    """Profile, role, permissions and subscription of the caller."""
    profile = profiles.get_profile(context.user_id)
    return success_body({
        "user_id": context.user_id,
        "email": context.email,
        "role": context.role,
        "permissions": sorted(p.value for p in context.permissions),
        "landing_page": context.landing_page,
        "is_onboarded": context.is_onboarded,
        "redirect": post_login_redirect(context),
        "profile": profile_to_dict(profile) if profile else None,
        "subscription": subscriptions.get_effective(context.user_id).to_dict(),
    })


@router.patch("/me")
@require_login
async def update_me(
    request: Request,
    body: UpdateProfileRequest,
    context: Optional[RequestContext] = Depends(get_request_context),
    profiles: ProfileService = Depends(get_profile_service),
):
    try:
        profile = profiles.update_own_profile(context, body.model_dump(exclude_unset=True))
    except ProfileNotFoundError as e:
        raise NotFoundError(str(e), code="profile_not_found")
    return success_body(profile_to_dict(profile))


@router.get("/me/access")
async def check_access(
    path: str = Query(..., description="Frontend path to check"),
    context: Optional[RequestContext] = Depends(get_request_context),
):
    """Guard decision for a frontend route."""
    requirement = requirement_for_path(path)
    if requirement is None:
        return success_body({"path": path, "outcome": "allow", "target": None, "reason": None, "paywall": None})

    decision = evaluate_access(context, requirement, target_path=path)
    return success_body({"path": path, **decision.to_dict()})
