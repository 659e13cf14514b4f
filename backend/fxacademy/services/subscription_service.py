"""
Subscription service for the platform-wide plan.

Orchestrates:
- Lazy status reads (derive_effective_status, never written back)
- Checkout / payment / failure transitions
- Admin overrides and trial grants with an append-only audit trail

Overrides change the authoritative status only. Payment rows are never
touched, and the next verified payment replaces the override.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from fxacademy.constants.permissions import Permission, Role, parse_role
from fxacademy.models.audit import SubscriptionAudit
from fxacademy.models.base import as_utc, utcnow
from fxacademy.models.plan import Plan
from fxacademy.models.profile import Profile
from fxacademy.models.subscription import Subscription, SubscriptionStatus
from fxacademy.platform.request_context import RequestContext
from fxacademy.services.subscription_state import (
    DEFAULT_RENEWAL_WINDOW,
    ENTITLED_STATUSES,
    TransitionTrigger,
    can_transition,
    derive_effective_status,
)

logger = logging.getLogger(__name__)

# Trial lengths an admin may grant
ALLOWED_TRIAL_DAYS = (1, 7, 30)


@dataclass
class SubscriptionView:
    """Read-only view of a user's subscription at a point in time."""
    user_id: str
    stored_status: str
    status: SubscriptionStatus
    plan_id: Optional[str] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_trial: bool = False
    trial_ends_at: Optional[datetime] = None
    override_by: Optional[str] = None
    override_reason: Optional[str] = None
    cancel_at_period_end: bool = False

    @property
    def is_entitled(self) -> bool:
        return self.status in ENTITLED_STATUSES

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "status": self.status.value,
            "stored_status": self.stored_status,
            "is_entitled": self.is_entitled,
            "plan_id": self.plan_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_trial": self.is_trial,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "override": (
                {"by": self.override_by, "reason": self.override_reason}
                if self.override_by else None
            ),
            "cancel_at_period_end": self.cancel_at_period_end,
        }


class SubscriptionServiceError(Exception):
    """Base exception for subscription service errors."""
    pass


class InvalidOverrideError(SubscriptionServiceError):
    """Override request is malformed."""
    pass


class OverrideTargetNotFoundError(SubscriptionServiceError):
    """Target user has no profile."""
    pass


class OverrideNotPermittedError(SubscriptionServiceError):
    """Actor may not override this subscription."""
    pass


class SubscriptionService:
    """
    Service for reading and transitioning platform subscriptions.

    Transition helpers (mark_pending, activate_from_payment,
    mark_payment_failed) do not commit: they run inside the caller's
    transaction. override() commits.
    """

    def __init__(
        self,
        db_session: Session,
        renewal_window: timedelta = DEFAULT_RENEWAL_WINDOW,
    ):
        self.db = db_session
        self.renewal_window = renewal_window

    def _get(self, user_id: str) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).first()

    def _get_or_create(self, user_id: str) -> Subscription:
        subscription = self._get(user_id)
        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                status=SubscriptionStatus.INACTIVE.value,
                is_trial=False,
                cancel_at_period_end=False,
            )
            self.db.add(subscription)
        return subscription

    def _effective(self, subscription: Optional[Subscription], now: datetime) -> SubscriptionStatus:
        if subscription is None:
            return SubscriptionStatus.INACTIVE
        return derive_effective_status(
            subscription.status,
            subscription.expires_at,
            now,
            self.renewal_window,
        )

    def get_effective(self, user_id: str, now: Optional[datetime] = None) -> SubscriptionView:
        """
        Current subscription view with the derived status.

        A stale active row past expires_at reads as expired. Nothing is
        written.
        """
        now = now or utcnow()
        subscription = self._get(user_id)
        if subscription is None:
            return SubscriptionView(
                user_id=user_id,
                stored_status=SubscriptionStatus.INACTIVE.value,
                status=SubscriptionStatus.INACTIVE,
            )
        return SubscriptionView(
            user_id=user_id,
            stored_status=subscription.status,
            status=self._effective(subscription, now),
            plan_id=subscription.plan_id,
            started_at=as_utc(subscription.started_at),
            expires_at=as_utc(subscription.expires_at),
            is_trial=bool(subscription.is_trial),
            trial_ends_at=as_utc(subscription.trial_ends_at),
            override_by=subscription.override_by,
            override_reason=subscription.override_reason,
            cancel_at_period_end=bool(subscription.cancel_at_period_end),
        )

    def mark_pending(
        self,
        user_id: str,
        plan_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Record a plan checkout.

        An entitled subscription keeps its status while the renewal is
        in flight.
        """
        now = now or utcnow()
        subscription = self._get_or_create(user_id)
        current = self._effective(subscription, now)
        if not can_transition(current, SubscriptionStatus.PENDING, TransitionTrigger.CHECKOUT):
            logger.info(
                "Checkout started on entitled subscription; status kept",
                extra={"user_id": user_id, "status": current.value},
            )
            return subscription

        subscription.status = SubscriptionStatus.PENDING.value
        subscription.plan_id = plan_id
        logger.info(
            "Subscription pending",
            extra={"user_id": user_id, "plan_id": plan_id, "from_status": current.value},
        )
        return subscription

    def activate_from_payment(
        self,
        user_id: str,
        plan: Plan,
        reference: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Activate after a verified plan payment.

        Renewals extend from the current expiry when it is still in the
        future. Any override or trial annotation is cleared.
        """
        now = now or utcnow()
        subscription = self._get_or_create(user_id)
        current = self._effective(subscription, now)

        if plan.duration_days is None:
            expires_at = None
        else:
            period_start = now
            current_expiry = as_utc(subscription.expires_at)
            if current in ENTITLED_STATUSES and current_expiry and current_expiry > now:
                period_start = current_expiry
            expires_at = period_start + timedelta(days=plan.duration_days)

        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.plan_id = plan.id
        subscription.started_at = now
        subscription.expires_at = expires_at
        subscription.is_trial = False
        subscription.trial_ends_at = None
        subscription.override_by = None
        subscription.override_reason = None
        subscription.override_at = None
        subscription.cancel_at_period_end = False
        subscription.last_payment_reference = reference

        logger.info(
            "Subscription activated from payment",
            extra={
                "user_id": user_id,
                "plan_id": plan.id,
                "reference": reference,
                "from_status": current.value,
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )
        return subscription

    def mark_payment_failed(self, user_id: str) -> Optional[Subscription]:
        """pending -> inactive. Any other status is left alone."""
        subscription = self._get(user_id)
        if subscription is None:
            return None
        if not can_transition(
            subscription.status, SubscriptionStatus.INACTIVE, TransitionTrigger.PAYMENT_FAILED
        ):
            return subscription
        subscription.status = SubscriptionStatus.INACTIVE.value
        logger.info("Pending subscription reset after failed payment", extra={"user_id": user_id})
        return subscription

    def mark_cancel_at_period_end(self, user_id: str) -> bool:
        """Stop renewing; access continues until expires_at."""
        subscription = self._get(user_id)
        if subscription is None:
            return False
        subscription.cancel_at_period_end = True
        return True

    def override(
        self,
        actor: RequestContext,
        target_user_id: str,
        active: Optional[bool] = None,
        trial_days: Optional[int] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SubscriptionView:
        """
        Force a student's subscription status, or grant a trial.

        Args:
            actor: Admin performing the override
            target_user_id: Student whose subscription changes
            active: True/False for a plain override (ignored for trials)
            trial_days: 1, 7 or 30 to grant a fixed-length trial
            reason: Free-text annotation stored with the override

        Raises:
            OverrideNotPermittedError: Actor lacks manage_subscriptions
            InvalidOverrideError: Bad trial length or missing active flag
            OverrideTargetNotFoundError: No such user
        """
        now = now or utcnow()

        if not actor.has_permission(Permission.MANAGE_SUBSCRIPTIONS):
            logger.warning(
                "Subscription override denied",
                extra={"actor_id": actor.user_id, "role": actor.role, "target_id": target_user_id},
            )
            raise OverrideNotPermittedError("You do not have permission to override subscriptions")

        if trial_days is not None:
            if trial_days not in ALLOWED_TRIAL_DAYS:
                raise InvalidOverrideError(
                    f"trial_days must be one of {', '.join(str(d) for d in ALLOWED_TRIAL_DAYS)}"
                )
        elif not isinstance(active, bool):
            raise InvalidOverrideError("active must be true or false when trial_days is not given")

        target = self.db.get(Profile, target_user_id)
        if target is None:
            raise OverrideTargetNotFoundError(f"User not found: {target_user_id}")
        if parse_role(target.role) != Role.STUDENT:
            raise InvalidOverrideError("Subscription overrides apply to students only")

        subscription = self._get_or_create(target_user_id)
        old_status = self._effective(subscription, now)

        trial_ends_at = None
        if trial_days is not None:
            trial_ends_at = now + timedelta(days=trial_days)
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.started_at = now
            subscription.expires_at = trial_ends_at
            subscription.is_trial = True
            subscription.trial_ends_at = trial_ends_at
        elif active:
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.started_at = now
            subscription.expires_at = None
            subscription.is_trial = False
            subscription.trial_ends_at = None
        else:
            subscription.status = SubscriptionStatus.INACTIVE.value
            subscription.expires_at = None
            subscription.is_trial = False
            subscription.trial_ends_at = None

        subscription.override_by = actor.user_id
        subscription.override_reason = reason
        subscription.override_at = now
        subscription.cancel_at_period_end = False

        self.db.add(SubscriptionAudit(
            actor_id=actor.user_id,
            target_id=target_user_id,
            old_status=old_status.value,
            new_status=subscription.status,
            reason=reason,
            trial_days=trial_days,
            trial_ends_at=trial_ends_at,
        ))
        self.db.commit()

        logger.info(
            "Subscription overridden",
            extra={
                "actor_id": actor.user_id,
                "target_id": target_user_id,
                "old_status": old_status.value,
                "new_status": subscription.status,
                "trial_days": trial_days,
            },
        )
        return self.get_effective(target_user_id, now)
