"""
Admin API routes.

Subscription overrides require manage_subscriptions. Every override is
written to the subscription audit trail.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from fxacademy.api.dependencies import get_subscription_service
from fxacademy.constants.permissions import Permission
from fxacademy.platform.errors import AuthorizationError, NotFoundError, ValidationError, success_body
from fxacademy.platform.rbac import require_permission
from fxacademy.platform.request_context import RequestContext, get_request_context
from fxacademy.services.subscription_service import (
    InvalidOverrideError,
    OverrideNotPermittedError,
    OverrideTargetNotFoundError,
    SubscriptionService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class SubscriptionOverrideRequest(BaseModel):
    """Either a plain active/inactive override or a fixed-length trial."""
    active: Optional[bool] = Field(None, description="Force access on or off")
    trial_days: Optional[int] = Field(None, description="Grant a 1, 7 or 30 day trial")
    reason: Optional[str] = Field(None, max_length=500)


@router.post("/subscription/override/{user_id}")
@require_permission(Permission.MANAGE_SUBSCRIPTIONS)
async def override_subscription(
    request: Request,
    user_id: str,
    body: SubscriptionOverrideRequest,
    context: Optional[RequestContext] = Depends(get_request_context),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    """Override a student's subscription or grant a trial."""
    try:
        view = subscriptions.override(
            context,
            user_id,
            active=body.active,
            trial_days=body.trial_days,
            reason=body.reason,
        )
    except OverrideNotPermittedError as e:
        raise AuthorizationError(str(e))
    except OverrideTargetNotFoundError as e:
        raise NotFoundError(str(e))
    except InvalidOverrideError as e:
        raise ValidationError(str(e), code="invalid_override")

    return success_body(view.to_dict())
