"""
Billing API routes for plans, checkout and payment verification.

Checkout and verification require an authenticated, onboarded caller.
Plan listings are public.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from fxacademy.api.dependencies import get_billing_service, get_catalog_service, get_subscription_service
from fxacademy.models.plan import Plan
from fxacademy.platform.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
    error_body,
    success_body,
)
from fxacademy.platform.rbac import require_authenticated
from fxacademy.platform.request_context import RequestContext, get_request_context
from fxacademy.services.billing_service import (
    AlreadyEntitledError,
    BillingService,
    CourseNotFoundError,
    Failed,
    FailureReason,
    InvalidCheckoutError,
    PaymentGatewayError,
    PlanNotFoundError,
    outcome_to_dict,
    payment_to_dict,
)
from fxacademy.services.catalog_service import CatalogService
from fxacademy.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

billing_router = APIRouter(prefix="/billing", tags=["billing"])
payments_router = APIRouter(prefix="/payments", tags=["payments"])

# Failures caused by the payment itself rather than the request
_PAYMENT_FAILURES = (FailureReason.PAYMENT_NOT_SUCCESSFUL, FailureReason.AMOUNT_MISMATCH)


class CheckoutRequest(BaseModel):
    """Exactly one of plan_id or course_id."""
    plan_id: Optional[str] = Field(None, description="Platform plan to subscribe to")
    course_id: Optional[str] = Field(None, description="Course to buy")

    @model_validator(mode="after")
    def check_target(self):
        if bool(self.plan_id) == bool(self.course_id):
            raise ValueError("Provide exactly one of plan_id or course_id")
        return self


def plan_to_dict(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price_minor": plan.price_minor,
        "currency": plan.currency,
        "interval": plan.interval,
        "duration_days": plan.duration_days,
    }


def _list_plans(catalog: CatalogService) -> dict:
    return success_body({"plans": [plan_to_dict(p) for p in catalog.list_plans()]})


@billing_router.get("/plans")
async def list_billing_plans(catalog: CatalogService = Depends(get_catalog_service)):
    """List active plans."""
    return _list_plans(catalog)


@payments_router.get("/plans")
async def list_payment_plans(catalog: CatalogService = Depends(get_catalog_service)):
    return _list_plans(catalog)


@payments_router.post("/checkout", status_code=201)
@require_authenticated
async def create_checkout(
    request: Request,
    checkout_request: CheckoutRequest,
    context: Optional[RequestContext] = Depends(get_request_context),
    billing_service: BillingService = Depends(get_billing_service),
):
    """
    Start a Paystack checkout for a plan or a course.

    Returns:
        authorization_url to redirect the payer to, and the reference
        to verify afterwards
    """
    logger.info("Creating checkout", extra={
        "user_id": context.user_id,
        "plan_id": checkout_request.plan_id,
        "course_id": checkout_request.course_id,
    })

    try:
        if checkout_request.plan_id:
            result = await billing_service.checkout_plan(context, checkout_request.plan_id)
        else:
            result = await billing_service.checkout_course(context, checkout_request.course_id)
    except (PlanNotFoundError, CourseNotFoundError) as e:
        raise NotFoundError(str(e))
    except AlreadyEntitledError as e:
        raise ConflictError(str(e), code="already_entitled")
    except InvalidCheckoutError as e:
        raise ValidationError(str(e), code="invalid_checkout")
    except PaymentGatewayError as e:
        raise ExternalServiceError(f"Payment gateway error: {e}", code="payment_gateway_error")

    return success_body(result.to_dict())


@billing_router.get("/verify")
@require_authenticated
async def verify_payment(
    request: Request,
    reference: str = Query(..., min_length=1),
    context: Optional[RequestContext] = Depends(get_request_context),
    billing_service: BillingService = Depends(get_billing_service),
):
    """
    Verify a payment reference after the Paystack redirect.

    Safe to retry: a reference that already completed answers
    already_completed without re-applying anything.
    """
    outcome = await billing_service.verify(reference, requester_id=context.user_id)
    if isinstance(outcome, Failed):
        if outcome.reason == FailureReason.REFERENCE_USER_MISMATCH:
            status_code = status.HTTP_403_FORBIDDEN
        elif outcome.reason in _PAYMENT_FAILURES:
            status_code = status.HTTP_402_PAYMENT_REQUIRED
        elif outcome.reason == FailureReason.GATEWAY_ERROR:
            status_code = status.HTTP_502_BAD_GATEWAY
        else:
            status_code = status.HTTP_400_BAD_REQUEST
        return JSONResponse(
            status_code=status_code,
            content=error_body(
                outcome.reason,
                outcome.message or "Payment verification failed",
                reference=outcome.reference,
                retryable=outcome.retryable,
            ),
        )
    return success_body(outcome_to_dict(outcome))


@billing_router.get("/subscription")
@require_authenticated
async def get_subscription(
    request: Request,
    context: Optional[RequestContext] = Depends(get_request_context),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    """Effective subscription status for the caller."""
    return success_body(subscriptions.get_effective(context.user_id).to_dict())


@billing_router.get("/history")
@require_authenticated
async def get_payment_history(
    request: Request,
    context: Optional[RequestContext] = Depends(get_request_context),
    billing_service: BillingService = Depends(get_billing_service),
):
    payments = billing_service.payment_history(context.user_id)
    return success_body({"payments": [payment_to_dict(p) for p in payments]})
