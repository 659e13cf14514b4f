"""
Billing service for plan and course payments through Paystack.

Orchestrates:
- Checkout initialization (payment intent + pending subscription)
- Idempotent verification (payment row, subscription or course entitlement)
- Payment history

CRITICAL: Verification is keyed on the gateway reference. The payments
table has a UNIQUE constraint on reference and the payment row is
inserted before any side effect, so concurrent verify calls (double
clicks, client retry racing the webhook) apply side effects once. The
losers observe the winner's row and report AlreadyCompleted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fxacademy.config.settings import Settings
from fxacademy.entitlements.service import EntitlementService, course_resource
from fxacademy.integrations.paystack.client import PaystackAPIError, PaystackClient
from fxacademy.models.base import as_utc, utcnow
from fxacademy.models.course import Course, CourseLevel
from fxacademy.models.entitlement import CourseEntitlement, EntitlementStatus
from fxacademy.models.payment import (
    Payment,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentPurpose,
    PaymentStatus,
)
from fxacademy.models.plan import Plan
from fxacademy.platform.request_context import RequestContext
from fxacademy.services.catalog_service import CatalogService
from fxacademy.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

# Course access length by level (days)
COURSE_ACCESS_DAYS = {
    CourseLevel.BEGINNER: 30,
    CourseLevel.INTERMEDIATE: 60,
    CourseLevel.ADVANCED: 90,
}
DEFAULT_COURSE_ACCESS_DAYS = 365


def access_days_for_level(level: Optional[str]) -> int:
    """Days of access granted by one course purchase."""
    return COURSE_ACCESS_DAYS.get((level or "").strip().lower(), DEFAULT_COURSE_ACCESS_DAYS)


class FailureReason:
    """Machine-readable verification failure reasons."""
    UNKNOWN_REFERENCE = "unknown_reference"
    REFERENCE_USER_MISMATCH = "reference_user_mismatch"
    GATEWAY_ERROR = "gateway_error"
    PAYMENT_NOT_SUCCESSFUL = "payment_not_successful"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass(frozen=True)
class AlreadyCompleted:
    """The reference was verified before; nothing was re-applied."""
    payment: Payment
    kind: ClassVar[str] = "already_completed"


@dataclass(frozen=True)
class NewlyCompleted:
    """This call recorded the payment and applied its side effects."""
    payment: Payment
    kind: ClassVar[str] = "newly_completed"


@dataclass(frozen=True)
class Failed:
    """Verification did not complete. Retry with a new checkout if retryable."""
    reference: str
    reason: str
    message: Optional[str] = None
    retryable: bool = True
    kind: ClassVar[str] = "failed"


VerifyOutcome = Union[AlreadyCompleted, NewlyCompleted, Failed]


@dataclass
class CheckoutResult:
    """Result of initializing a checkout."""
    authorization_url: str
    reference: str
    purpose: str
    amount_minor: int
    currency: str
    plan_id: Optional[str] = None
    course_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "authorization_url": self.authorization_url,
            "reference": self.reference,
            "purpose": self.purpose,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "plan_id": self.plan_id,
            "course_id": self.course_id,
        }


class BillingServiceError(Exception):
    """Base exception for billing service errors."""
    pass


class PlanNotFoundError(BillingServiceError):
    """Requested plan does not exist or is inactive."""
    pass


class CourseNotFoundError(BillingServiceError):
    """Requested course does not exist or is unpublished."""
    pass


class AlreadyEntitledError(BillingServiceError):
    """Caller already has access; no checkout needed."""
    pass


class InvalidCheckoutError(BillingServiceError):
    """Checkout request cannot be fulfilled."""
    pass


class PaymentGatewayError(BillingServiceError):
    """The gateway rejected or failed the initialize call."""
    pass


def payment_to_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "reference": payment.reference,
        "purpose": payment.purpose,
        "plan_id": payment.plan_id,
        "course_id": payment.course_id,
        "amount_minor": payment.amount_minor,
        "currency": payment.currency,
        "status": payment.status,
        "paid_at": as_utc(payment.paid_at).isoformat() if payment.paid_at else None,
    }


def outcome_to_dict(outcome: VerifyOutcome) -> dict:
    if isinstance(outcome, Failed):
        return {
            "outcome": outcome.kind,
            "status": PaymentIntentStatus.FAILED,
            "reference": outcome.reference,
            "reason": outcome.reason,
            "message": outcome.message,
            "retryable": outcome.retryable,
        }
    return {
        "outcome": outcome.kind,
        "status": outcome.payment.status,
        "reference": outcome.payment.reference,
        "payment": payment_to_dict(outcome.payment),
    }


class BillingService:
    """
    Service for checkout and payment verification.

    The gateway client is injected so tests can replace it.
    """

    def __init__(
        self,
        db_session: Session,
        gateway: PaystackClient,
        settings: Settings,
        subscription_service: Optional[SubscriptionService] = None,
    ):
        self.db = db_session
        self.gateway = gateway
        self.settings = settings
        self.subscriptions = subscription_service or SubscriptionService(
            db_session,
            renewal_window=timedelta(days=settings.renewal_window_days),
        )
        self.entitlements = EntitlementService(db_session, self.subscriptions)
        self.catalog = CatalogService(db_session)

    def _get_plan(self, plan_id: str) -> Plan:
        """Get plan by ID."""
        plan = self.db.query(Plan).filter(
            Plan.id == plan_id,
            Plan.is_active == True  # noqa: E712
        ).first()

        if not plan:
            raise PlanNotFoundError(f"Plan not found or inactive: {plan_id}")

        return plan

    def _get_course(self, course_id: str) -> Course:
        course = self.db.query(Course).filter(
            Course.id == course_id,
            Course.is_published == True  # noqa: E712
        ).first()

        if not course:
            raise CourseNotFoundError(f"Course not found: {course_id}")

        return course

    def _get_payment(self, reference: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.reference == reference).first()

    def _get_intent(self, reference: str) -> Optional[PaymentIntent]:
        return self.db.query(PaymentIntent).filter(PaymentIntent.reference == reference).first()

    def list_plans(self) -> List[Plan]:
        return self.catalog.list_plans()

    def list_courses(self) -> List[Course]:
        return self.catalog.list_courses()

    async def _initialize(
        self,
        context: RequestContext,
        amount_minor: int,
        currency: str,
        metadata: dict,
    ):
        if not context.email:
            raise InvalidCheckoutError("An email address is required to check out")
        if amount_minor <= 0:
            raise InvalidCheckoutError("Nothing to pay for a free item")
        try:
            return await self.gateway.initialize_transaction(
                email=context.email,
                amount_minor=amount_minor,
                currency=currency,
                metadata=metadata,
                callback_url=self.settings.payment_callback_url,
            )
        except PaystackAPIError as e:
            logger.error(
                "Checkout initialization failed",
                extra={"user_id": context.user_id, "status_code": e.status_code, "error": e.message},
            )
            raise PaymentGatewayError(e.message) from e

    async def checkout_plan(self, context: RequestContext, plan_id: str) -> CheckoutResult:
        """
        Start a platform plan checkout.

        Records a pending payment intent and moves the subscription to
        pending (an entitled subscription keeps its status).
        """
        plan = self._get_plan(plan_id)
        currency = (plan.currency or self.settings.payment_currency).upper()

        initialized = await self._initialize(
            context,
            plan.price_minor,
            currency,
            {"user_id": context.user_id, "purpose": PaymentPurpose.PLAN, "plan_id": plan.id},
        )

        self.db.add(PaymentIntent(
            reference=initialized.reference,
            user_id=context.user_id,
            purpose=PaymentPurpose.PLAN,
            plan_id=plan.id,
            amount_minor=plan.price_minor,
            currency=currency,
            status=PaymentIntentStatus.PENDING,
            authorization_url=initialized.authorization_url,
        ))
        self.subscriptions.mark_pending(context.user_id, plan.id)
        self.db.commit()

        logger.info(
            "Plan checkout initialized",
            extra={"user_id": context.user_id, "plan_id": plan.id, "reference": initialized.reference},
        )
        return CheckoutResult(
            authorization_url=initialized.authorization_url,
            reference=initialized.reference,
            purpose=PaymentPurpose.PLAN,
            amount_minor=plan.price_minor,
            currency=currency,
            plan_id=plan.id,
        )

    async def checkout_course(self, context: RequestContext, course_id: str) -> CheckoutResult:
        """
        Start a course checkout.

        Raises:
            AlreadyEntitledError: Caller can already open the course
        """
        course = self._get_course(course_id)
        decision = self.entitlements.is_entitled(context, course_resource(course))
        if decision.entitled:
            raise AlreadyEntitledError(f"Already entitled to course {course_id} ({decision.reason.value})")

        currency = (course.currency or self.settings.payment_currency).upper()
        initialized = await self._initialize(
            context,
            course.price_minor,
            currency,
            {"user_id": context.user_id, "purpose": PaymentPurpose.COURSE, "course_id": course.id},
        )

        self.db.add(PaymentIntent(
            reference=initialized.reference,
            user_id=context.user_id,
            purpose=PaymentPurpose.COURSE,
            course_id=course.id,
            amount_minor=course.price_minor,
            currency=currency,
            status=PaymentIntentStatus.PENDING,
            authorization_url=initialized.authorization_url,
        ))
        self.db.commit()

        logger.info(
            "Course checkout initialized",
            extra={"user_id": context.user_id, "course_id": course.id, "reference": initialized.reference},
        )
        return CheckoutResult(
            authorization_url=initialized.authorization_url,
            reference=initialized.reference,
            purpose=PaymentPurpose.COURSE,
            amount_minor=course.price_minor,
            currency=currency,
            course_id=course.id,
        )

    def _has_newer_plan_checkout(self, intent: PaymentIntent) -> bool:
        """Another plan checkout for the user is still pending; its status must stand."""
        return self.db.query(PaymentIntent).filter(
            PaymentIntent.user_id == intent.user_id,
            PaymentIntent.purpose == PaymentPurpose.PLAN,
            PaymentIntent.status == PaymentIntentStatus.PENDING,
            PaymentIntent.reference != intent.reference,
        ).first() is not None

    def _fail(self, intent: PaymentIntent, reason: str, message: Optional[str]) -> Failed:
        """Record a failed verification. No partial state is left active."""
        intent.status = PaymentIntentStatus.FAILED
        intent.failure_reason = message or reason
        if intent.purpose == PaymentPurpose.PLAN and not self._has_newer_plan_checkout(intent):
            self.subscriptions.mark_payment_failed(intent.user_id)
        self.db.commit()

        logger.warning(
            "Payment verification failed",
            extra={"reference": intent.reference, "user_id": intent.user_id, "reason": reason, "detail": message},
        )
        return Failed(reference=intent.reference, reason=reason, message=message)

    def _grant_course(self, intent: PaymentIntent, now: datetime) -> CourseEntitlement:
        course = self.db.get(Course, intent.course_id)
        days = access_days_for_level(course.level if course else None)

        entitlement = self.db.query(CourseEntitlement).filter(
            CourseEntitlement.user_id == intent.user_id,
            CourseEntitlement.course_id == intent.course_id,
        ).first()

        period_start = now
        if entitlement is None:
            entitlement = CourseEntitlement(user_id=intent.user_id, course_id=intent.course_id)
            self.db.add(entitlement)
        else:
            current_expiry = as_utc(entitlement.expires_at)
            if entitlement.status == EntitlementStatus.ACTIVE and current_expiry and current_expiry > now:
                period_start = current_expiry

        entitlement.status = EntitlementStatus.ACTIVE
        entitlement.activated_at = now
        entitlement.expires_at = period_start + timedelta(days=days)
        entitlement.source_reference = intent.reference
        return entitlement

    def _apply_side_effects(self, intent: PaymentIntent, now: datetime) -> None:
        if intent.purpose == PaymentPurpose.PLAN:
            plan = self.db.get(Plan, intent.plan_id)
            if plan is None:
                raise PlanNotFoundError(f"Plan not found for paid intent: {intent.plan_id}")
            self.subscriptions.activate_from_payment(intent.user_id, plan, intent.reference, now)
        elif intent.purpose == PaymentPurpose.COURSE:
            self._grant_course(intent, now)
        intent.status = PaymentIntentStatus.COMPLETED
        intent.failure_reason = None

    async def verify(
        self,
        reference: str,
        requester_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VerifyOutcome:
        """
        Verify a payment reference. Safe to call any number of times.

        Args:
            reference: Gateway reference from checkout
            requester_id: Caller's user id; None for webhook deliveries
            now: Evaluation time

        Returns:
            AlreadyCompleted, NewlyCompleted or Failed
        """
        now = now or utcnow()

        prior = self._get_payment(reference)
        if prior is not None:
            if requester_id is not None and prior.user_id != requester_id:
                logger.warning(
                    "Verification attempted for another user's completed reference",
                    extra={"reference": reference, "user_id": requester_id},
                )
                return Failed(
                    reference=reference,
                    reason=FailureReason.REFERENCE_USER_MISMATCH,
                    message="Transaction does not belong to this user",
                    retryable=False,
                )
            logger.info("Payment already verified", extra={"reference": reference})
            return AlreadyCompleted(prior)

        intent = self._get_intent(reference)
        if intent is None:
            logger.warning("Verification for unknown reference", extra={"reference": reference})
            return Failed(reference=reference, reason=FailureReason.UNKNOWN_REFERENCE, retryable=False)

        if requester_id is not None and intent.user_id != requester_id:
            logger.warning(
                "Verification attempted for another user's reference",
                extra={"reference": reference, "user_id": requester_id},
            )
            return Failed(
                reference=reference,
                reason=FailureReason.REFERENCE_USER_MISMATCH,
                message="Transaction does not belong to this user",
                retryable=False,
            )

        try:
            transaction = await self.gateway.verify_transaction(reference)
        except PaystackAPIError as e:
            return self._fail(intent, FailureReason.GATEWAY_ERROR, e.message)

        if not transaction.is_successful:
            return self._fail(
                intent,
                FailureReason.PAYMENT_NOT_SUCCESSFUL,
                transaction.gateway_response or transaction.status or None,
            )

        if (
            transaction.amount_minor != intent.amount_minor
            or transaction.currency != (intent.currency or "").upper()
        ):
            return self._fail(
                intent,
                FailureReason.AMOUNT_MISMATCH,
                f"Expected {intent.amount_minor} {intent.currency}, "
                f"gateway reported {transaction.amount_minor} {transaction.currency}",
            )

        payment = Payment(
            reference=reference,
            user_id=intent.user_id,
            purpose=intent.purpose,
            plan_id=intent.plan_id,
            course_id=intent.course_id,
            amount_minor=transaction.amount_minor,
            currency=transaction.currency,
            status=PaymentStatus.COMPLETED,
            paid_at=transaction.paid_at or now,
            gateway_response=(transaction.gateway_response or None),
            gateway_payload=transaction.raw or None,
        )
        self.db.add(payment)
        try:
            # Insert-or-no-op: the unique reference decides the winner
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            prior = self._get_payment(reference)
            if prior is None:
                raise
            logger.info("Concurrent verification already recorded payment", extra={"reference": reference})
            return AlreadyCompleted(prior)

        self._apply_side_effects(intent, now)
        self.db.commit()

        logger.info(
            "Payment verified",
            extra={
                "reference": reference,
                "user_id": intent.user_id,
                "purpose": intent.purpose,
                "amount_minor": payment.amount_minor,
                "currency": payment.currency,
            },
        )
        return NewlyCompleted(payment)

    def payment_history(self, user_id: str) -> List[Payment]:
        return self.db.query(Payment).filter(
            Payment.user_id == user_id
        ).order_by(Payment.created_at.desc()).all()
