"""
Subscription lifecycle rules.

The stored status column is only half the truth. Expiry and the renewal
window are derived at read time by derive_effective_status(); nothing in
the system sweeps subscriptions in the background, and reading a status
never writes it back.

States:
    inactive -> pending -> active -> needs_renewal -> expired
    expired/inactive/needs_renewal -> active (new payment, override, trial)
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from fxacademy.models.subscription import SubscriptionStatus

DEFAULT_RENEWAL_WINDOW = timedelta(days=3)

# Statuses that grant platform-wide access
ENTITLED_STATUSES = frozenset([
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.NEEDS_RENEWAL,
])


class TransitionTrigger:
    """What caused a status change."""
    CHECKOUT = "checkout"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_FAILED = "payment_failed"
    OVERRIDE = "override"
    TRIAL = "trial"


_ANY = frozenset(SubscriptionStatus)

# (trigger) -> (allowed from-states, allowed to-states)
VALID_TRANSITIONS = {
    TransitionTrigger.CHECKOUT: (
        frozenset([
            SubscriptionStatus.INACTIVE,
            SubscriptionStatus.PENDING,
            SubscriptionStatus.EXPIRED,
            SubscriptionStatus.NEEDS_RENEWAL,
        ]),
        frozenset([SubscriptionStatus.PENDING]),
    ),
    TransitionTrigger.PAYMENT_VERIFIED: (
        _ANY,
        frozenset([SubscriptionStatus.ACTIVE]),
    ),
    TransitionTrigger.PAYMENT_FAILED: (
        frozenset([SubscriptionStatus.PENDING]),
        frozenset([SubscriptionStatus.INACTIVE]),
    ),
    TransitionTrigger.OVERRIDE: (
        _ANY,
        frozenset([SubscriptionStatus.ACTIVE, SubscriptionStatus.INACTIVE]),
    ),
    TransitionTrigger.TRIAL: (
        _ANY,
        frozenset([SubscriptionStatus.ACTIVE]),
    ),
}


def parse_status(value: Union[SubscriptionStatus, str, None]) -> SubscriptionStatus:
    """Unknown or missing stored values read as inactive."""
    if isinstance(value, SubscriptionStatus):
        return value
    if not isinstance(value, str):
        return SubscriptionStatus.INACTIVE
    try:
        return SubscriptionStatus(value.strip().lower())
    except ValueError:
        return SubscriptionStatus.INACTIVE


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def derive_effective_status(
    stored_status: Union[SubscriptionStatus, str, None],
    expires_at: Optional[datetime],
    now: datetime,
    renewal_window: timedelta = DEFAULT_RENEWAL_WINDOW,
) -> SubscriptionStatus:
    """
    Compute the status a subscription actually has at `now`.

    Pure function: no I/O, no mutation.

    Args:
        stored_status: Value of the status column
        expires_at: End of paid/granted access, None for no end date
        now: Evaluation time
        renewal_window: How long before expiry an active subscription
            starts reporting needs_renewal

    Returns:
        Effective SubscriptionStatus
    """
    status = parse_status(stored_status)
    if status not in ENTITLED_STATUSES:
        return status

    expires_at = _as_utc(expires_at)
    now = _as_utc(now)
    if expires_at is None:
        return SubscriptionStatus.ACTIVE
    if expires_at <= now:
        return SubscriptionStatus.EXPIRED
    if expires_at - now <= renewal_window:
        return SubscriptionStatus.NEEDS_RENEWAL
    return SubscriptionStatus.ACTIVE


def is_entitled_status(status: Union[SubscriptionStatus, str, None]) -> bool:
    return parse_status(status) in ENTITLED_STATUSES


def can_transition(
    current: Union[SubscriptionStatus, str, None],
    target: Union[SubscriptionStatus, str],
    trigger: str,
) -> bool:
    """
    Check whether a trigger may move a subscription between statuses.

    `current` should be the effective status, not the stored one.
    """
    rule = VALID_TRANSITIONS.get(trigger)
    if rule is None:
        return False
    allowed_from, allowed_to = rule
    return parse_status(current) in allowed_from and parse_status(target) in allowed_to
