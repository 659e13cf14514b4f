"""
Integration tests for BillingService against a real SQLite database.

Tests cover:
- Plan and course checkout
- Idempotent verification (sequential and racing)
- Failure handling leaves no partial access
- Course access length by level
- Course and platform tracks stay independent
"""

from datetime import datetime, timedelta, timezone

import pytest

from fxacademy.entitlements.service import EntitlementService, course_resource, platform_resource
from fxacademy.models.base import as_utc, utcnow
from fxacademy.models.entitlement import CourseEntitlement
from fxacademy.models.payment import Payment, PaymentIntent, PaymentIntentStatus, PaymentPurpose
from fxacademy.models.plan import Plan
from fxacademy.models.profile import Profile
from fxacademy.models.subscription import Subscription, SubscriptionStatus
from fxacademy.integrations.paystack.client import PaystackAPIError
from fxacademy.services.billing_service import (
    AlreadyCompleted,
    AlreadyEntitledError,
    BillingService,
    Failed,
    FailureReason,
    InvalidCheckoutError,
    NewlyCompleted,
    PaymentGatewayError,
    PlanNotFoundError,
)
from fxacademy.tests.helpers import FakeGateway, context_for

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def billing(db_session, gateway, settings):
    return BillingService(db_session, gateway, settings)


@pytest.fixture
def student(make_context):
    return make_context("student")


def payment_count(db_session, reference):
    return db_session.query(Payment).filter(Payment.reference == reference).count()


class TestCheckout:

    @pytest.mark.asyncio
    async def test_plan_checkout_records_intent_and_pending(self, billing, gateway, db_session, student, make_plan):
        plan = make_plan()

        result = await billing.checkout_plan(student, plan.id)

        intent = db_session.query(PaymentIntent).filter(PaymentIntent.reference == result.reference).one()
        assert intent.status == PaymentIntentStatus.PENDING
        assert intent.amount_minor == 1500
        assert intent.purpose == PaymentPurpose.PLAN
        assert billing.subscriptions.get_effective(student.user_id).status == SubscriptionStatus.PENDING

        sent = gateway.initialized[0]
        assert sent["email"] == student.email
        assert sent["metadata"]["plan_id"] == plan.id
        assert sent["callback_url"] == "https://academy.test/payment/callback"
        assert result.authorization_url.endswith(result.reference)

    @pytest.mark.asyncio
    async def test_unknown_plan(self, billing, student):
        with pytest.raises(PlanNotFoundError):
            await billing.checkout_plan(student, "platinum")

    @pytest.mark.asyncio
    async def test_gateway_failure_leaves_nothing_behind(self, billing, gateway, db_session, student, make_plan):
        plan = make_plan()
        gateway.initialize_error = PaystackAPIError("Service unavailable", status_code=503)

        with pytest.raises(PaymentGatewayError):
            await billing.checkout_plan(student, plan.id)

        assert db_session.query(PaymentIntent).count() == 0
        assert billing.subscriptions.get_effective(student.user_id).status == SubscriptionStatus.INACTIVE

    @pytest.mark.asyncio
    async def test_free_item_cannot_be_checked_out(self, billing, student, make_course):
        course = make_course(price_minor=0)
        with pytest.raises(InvalidCheckoutError):
            await billing.checkout_course(student, course.id)

    @pytest.mark.asyncio
    async def test_staff_already_entitled_to_courses(self, billing, make_context, make_course):
        course = make_course()
        instructor = make_context("instructor")
        with pytest.raises(AlreadyEntitledError):
            await billing.checkout_course(instructor, course.id)

    @pytest.mark.asyncio
    async def test_renewal_checkout_keeps_active_status(self, billing, gateway, db_session, student, make_plan, make_intent):
        plan = make_plan()
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)
        await billing.verify(intent.reference, requester_id=student.user_id)

        await billing.checkout_plan(student, plan.id)

        assert billing.subscriptions.get_effective(student.user_id).status == SubscriptionStatus.ACTIVE


class TestVerifyIdempotency:

    @pytest.mark.asyncio
    async def test_second_verify_is_already_completed(self, billing, gateway, db_session, student, make_plan, make_intent):
        plan = make_plan()
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)

        first = await billing.verify(intent.reference, requester_id=student.user_id, now=NOW)
        second = await billing.verify(intent.reference, requester_id=student.user_id, now=NOW)

        assert isinstance(first, NewlyCompleted)
        assert isinstance(second, AlreadyCompleted)
        assert second.payment.id == first.payment.id
        assert payment_count(db_session, intent.reference) == 1
        # The second call never reaches the gateway
        assert gateway.verify_calls == [intent.reference]

    @pytest.mark.asyncio
    async def test_plan_payment_activates_subscription(self, billing, gateway, db_session, student, make_plan, make_intent):
        plan = make_plan(duration_days=30)
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)

        await billing.verify(intent.reference, requester_id=student.user_id, now=NOW)

        view = billing.subscriptions.get_effective(student.user_id, NOW)
        assert view.status == SubscriptionStatus.ACTIVE
        assert view.expires_at == NOW + timedelta(days=30)
        db_session.refresh(intent)
        assert intent.status == PaymentIntentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_renewal_extends_from_current_expiry(self, billing, gateway, student, make_plan, make_intent):
        plan = make_plan(duration_days=30)
        first = make_intent(student.user_id, plan=plan)
        second = make_intent(student.user_id, plan=plan)
        gateway.succeed(first.reference, plan.price_minor)
        gateway.succeed(second.reference, plan.price_minor)

        await billing.verify(first.reference, requester_id=student.user_id, now=NOW)
        await billing.verify(second.reference, requester_id=student.user_id, now=NOW + timedelta(days=10))

        view = billing.subscriptions.get_effective(student.user_id, NOW + timedelta(days=10))
        assert view.expires_at == NOW + timedelta(days=60)

    @pytest.mark.asyncio
    async def test_one_time_plan_has_no_end(self, billing, gateway, student, make_plan, make_intent):
        plan = make_plan(plan_id="one_time", price_minor=5000, duration_days=None)
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)

        await billing.verify(intent.reference, requester_id=student.user_id, now=NOW)

        view = billing.subscriptions.get_effective(student.user_id, NOW + timedelta(days=3650))
        assert view.status == SubscriptionStatus.ACTIVE
        assert view.expires_at is None

    @pytest.mark.asyncio
    async def test_racing_verify_loses_to_unique_reference(self, file_db_factory, settings):
        """A concurrent verifier inserts the payment while this call waits on the gateway."""
        setup = file_db_factory()
        setup.add(Profile(id="user-race", email="race@academy.test", role="student",
                          first_name="Yaw", last_name="Asante", country="Ghana"))
        setup.add(Plan(id="monthly", name="Monthly", price_minor=1500, currency="USD",
                       interval="monthly", duration_days=30, is_active=True))
        setup.add(PaymentIntent(reference="ref_race", user_id="user-race", purpose=PaymentPurpose.PLAN,
                                plan_id="monthly", amount_minor=1500, currency="USD",
                                status=PaymentIntentStatus.PENDING))
        setup.commit()
        setup.close()

        def concurrent_winner(reference):
            other = file_db_factory()
            other.add(Payment(reference=reference, user_id="user-race", purpose=PaymentPurpose.PLAN,
                              plan_id="monthly", amount_minor=1500, currency="USD", paid_at=NOW))
            other.commit()
            other.close()

        gateway = FakeGateway()
        gateway.succeed("ref_race", 1500)
        gateway.on_verify = concurrent_winner

        session = file_db_factory()
        try:
            outcome = await BillingService(session, gateway, settings).verify("ref_race", requester_id="user-race")
            assert isinstance(outcome, AlreadyCompleted)
            assert session.query(Payment).filter(Payment.reference == "ref_race").count() == 1
        finally:
            session.close()


class TestVerifyFailures:

    @pytest.mark.asyncio
    async def test_unknown_reference(self, billing, gateway, student):
        outcome = await billing.verify("ref_nope", requester_id=student.user_id)
        assert isinstance(outcome, Failed)
        assert outcome.reason == FailureReason.UNKNOWN_REFERENCE
        assert gateway.verify_calls == []

    @pytest.mark.asyncio
    async def test_other_users_reference(self, billing, gateway, make_context, make_plan, make_intent):
        owner_of_ref = make_context("student")
        intruder = make_context("student")
        intent = make_intent(owner_of_ref.user_id, plan=make_plan())

        outcome = await billing.verify(intent.reference, requester_id=intruder.user_id)

        assert outcome.reason == FailureReason.REFERENCE_USER_MISMATCH
        assert outcome.retryable is False
        assert gateway.verify_calls == []

    @pytest.mark.asyncio
    async def test_other_users_completed_reference(self, billing, gateway, db_session, make_context, make_plan, make_intent):
        payer = make_context("student")
        intruder = make_context("student")
        plan = make_plan()
        intent = make_intent(payer.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)
        await billing.verify(intent.reference, requester_id=payer.user_id)

        outcome = await billing.verify(intent.reference, requester_id=intruder.user_id)

        assert isinstance(outcome, Failed)
        assert outcome.reason == FailureReason.REFERENCE_USER_MISMATCH
        assert outcome.retryable is False
        assert payment_count(db_session, intent.reference) == 1

    @pytest.mark.asyncio
    async def test_stale_failure_keeps_newer_checkout_pending(self, billing, gateway, db_session, student, make_plan, make_intent):
        plan = make_plan()
        stale = make_intent(student.user_id, plan=plan)
        make_intent(student.user_id, plan=plan)
        billing.subscriptions.mark_pending(student.user_id, plan.id)
        db_session.commit()
        gateway.fail(stale.reference, plan.price_minor)

        outcome = await billing.verify(stale.reference, requester_id=student.user_id)

        assert outcome.reason == FailureReason.PAYMENT_NOT_SUCCESSFUL
        assert billing.subscriptions.get_effective(student.user_id).status == SubscriptionStatus.PENDING

    @pytest.mark.asyncio
    async def test_declined_payment_resets_pending(self, billing, gateway, db_session, student, make_plan):
        plan = make_plan()
        checkout = await billing.checkout_plan(student, plan.id)
        gateway.fail(checkout.reference, plan.price_minor)

        outcome = await billing.verify(checkout.reference, requester_id=student.user_id)

        assert outcome.reason == FailureReason.PAYMENT_NOT_SUCCESSFUL
        assert billing.subscriptions.get_effective(student.user_id).status == SubscriptionStatus.INACTIVE
        intent = db_session.query(PaymentIntent).filter(PaymentIntent.reference == checkout.reference).one()
        assert intent.status == PaymentIntentStatus.FAILED
        assert payment_count(db_session, checkout.reference) == 0

    @pytest.mark.asyncio
    async def test_amount_mismatch_grants_nothing(self, billing, gateway, db_session, student, make_course, make_intent):
        course = make_course()
        intent = make_intent(student.user_id, course=course)
        gateway.succeed(intent.reference, 100)

        outcome = await billing.verify(intent.reference, requester_id=student.user_id)

        assert outcome.reason == FailureReason.AMOUNT_MISMATCH
        assert payment_count(db_session, intent.reference) == 0
        assert db_session.query(CourseEntitlement).count() == 0

    @pytest.mark.asyncio
    async def test_currency_mismatch_grants_nothing(self, billing, gateway, student, make_plan, make_intent):
        plan = make_plan()
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor, currency="NGN")

        outcome = await billing.verify(intent.reference, requester_id=student.user_id)
        assert outcome.reason == FailureReason.AMOUNT_MISMATCH

    @pytest.mark.asyncio
    async def test_gateway_error_is_retryable(self, billing, gateway, db_session, student, make_plan, make_intent):
        plan = make_plan()
        intent = make_intent(student.user_id, plan=plan)
        gateway.error(intent.reference)

        outcome = await billing.verify(intent.reference, requester_id=student.user_id)
        assert outcome.reason == FailureReason.GATEWAY_ERROR
        assert outcome.retryable is True

        # Paystack recovers; the same reference can still complete
        gateway.succeed(intent.reference, plan.price_minor)
        retry = await billing.verify(intent.reference, requester_id=student.user_id)
        assert isinstance(retry, NewlyCompleted)

    @pytest.mark.asyncio
    async def test_webhook_verification_skips_owner_check(self, billing, gateway, student, make_plan, make_intent):
        plan = make_plan()
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)

        outcome = await billing.verify(intent.reference)
        assert isinstance(outcome, NewlyCompleted)


class TestCourseEntitlements:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level,days", [
        ("beginner", 30),
        ("intermediate", 60),
        ("advanced", 90),
        (None, 365),
    ])
    async def test_access_length_by_level(self, billing, gateway, db_session, student, make_course, make_intent, level, days):
        course = make_course(level=level)
        intent = make_intent(student.user_id, course=course)
        gateway.succeed(intent.reference, course.price_minor)

        await billing.verify(intent.reference, requester_id=student.user_id, now=NOW)

        row = db_session.query(CourseEntitlement).filter(CourseEntitlement.course_id == course.id).one()
        assert as_utc(row.expires_at) == NOW + timedelta(days=days)
        assert row.source_reference == intent.reference

    @pytest.mark.asyncio
    async def test_course_purchase_does_not_open_platform(self, billing, gateway, db_session, student, make_course, make_intent):
        course = make_course()
        intent = make_intent(student.user_id, course=course)
        gateway.succeed(intent.reference, course.price_minor)
        await billing.verify(intent.reference, requester_id=student.user_id)

        entitlements = EntitlementService(db_session)
        assert entitlements.is_entitled(student, course_resource(course)).entitled
        assert not entitlements.is_entitled(student, platform_resource()).entitled
        assert db_session.query(Subscription).count() == 0

    @pytest.mark.asyncio
    async def test_subscription_does_not_open_courses(self, billing, gateway, db_session, student, make_plan, make_course, make_intent):
        plan = make_plan()
        course = make_course()
        intent = make_intent(student.user_id, plan=plan)
        gateway.succeed(intent.reference, plan.price_minor)
        await billing.verify(intent.reference, requester_id=student.user_id)

        entitlements = EntitlementService(db_session)
        assert entitlements.is_entitled(student, platform_resource(plan)).entitled
        assert not entitlements.is_entitled(student, course_resource(course)).entitled

    @pytest.mark.asyncio
    async def test_expired_course_access_can_be_bought_again(self, billing, gateway, db_session, make_profile, make_course, make_intent):
        profile = make_profile()
        student = context_for(profile)
        course = make_course(level="beginner")
        intent = make_intent(student.user_id, course=course)
        gateway.succeed(intent.reference, course.price_minor)
        await billing.verify(intent.reference, requester_id=student.user_id, now=utcnow() - timedelta(days=45))

        entitlements = EntitlementService(db_session)
        assert not entitlements.is_entitled(student, course_resource(course)).entitled

        result = await billing.checkout_course(student, course.id)
        assert result.course_id == course.id
