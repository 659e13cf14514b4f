"""
Subscription model for the platform-wide plan.

CRITICAL: One subscription row per user. The stored status is not the
whole truth: expiry and renewal are derived lazily at read time by
fxacademy.services.subscription_state.
"""

from enum import Enum

from sqlalchemy import Column, String, Boolean, DateTime, Text, Enum as SAEnum, Index

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin, generate_uuid


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    INACTIVE = "inactive"            # Never paid, or payment failed
    PENDING = "pending"              # Checkout initialized, awaiting gateway
    ACTIVE = "active"                # Payment verified or admin grant
    NEEDS_RENEWAL = "needs_renewal"  # Active, inside the renewal window
    EXPIRED = "expired"              # Past expires_at with no renewal


class Subscription(Base, TimestampMixin):
    """
    Tracks the platform subscription for each user.

    The override_* columns annotate a manual status change by an admin.
    They are cleared by the next payment event.
    """

    __tablename__ = "subscriptions"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="One subscription per user"
    )
    plan_id = Column(
        String(64),
        nullable=True,
        comment="Plan of the last checkout or payment"
    )

    status = Column(
        SAEnum(
            *[s.value for s in SubscriptionStatus],
            name="subscription_status"
        ),
        nullable=False,
        default=SubscriptionStatus.INACTIVE.value,
        comment="Stored status; read through derive_effective_status"
    )

    started_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL means no expiry"
    )

    is_trial = Column(Boolean, nullable=False, default=False)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    override_by = Column(
        String(255),
        nullable=True,
        comment="Admin user id that forced the current status"
    )
    override_reason = Column(Text, nullable=True)
    override_at = Column(DateTime(timezone=True), nullable=True)

    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    last_payment_reference = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_subscriptions_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(user_id={self.user_id}, status={self.status})>"

    @property
    def is_overridden(self) -> bool:
        return self.override_by is not None
