"""
Payment intents and completed payments.

CRITICAL: payments.reference is UNIQUE. Verification inserts the payment
row and relies on this constraint, so a reference is applied at most
once no matter how many verify calls race. Payment rows are never
mutated after insert.
"""

from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, Index

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin, generate_uuid


class PaymentPurpose:
    """What a payment buys."""
    PLAN = "plan"
    COURSE = "course"


class PaymentIntentStatus:
    """Payment intent status values."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStatus:
    """Payment status values."""
    COMPLETED = "completed"


class PaymentIntent(Base, TimestampMixin):
    """A checkout that was initialized with the gateway."""

    __tablename__ = "payment_intents"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    reference = Column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="Gateway transaction reference"
    )
    user_id = Column(String(255), nullable=False, index=True)
    purpose = Column(String(20), nullable=False)
    plan_id = Column(String(64), nullable=True)
    course_id = Column(String(36), nullable=True)

    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(
        String(20),
        nullable=False,
        default=PaymentIntentStatus.PENDING,
        index=True
    )
    authorization_url = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentIntent(reference={self.reference}, status={self.status})>"


class Payment(Base, TimestampMixin):
    """A completed, verified gateway transaction. Append-only."""

    __tablename__ = "payments"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    reference = Column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="Idempotency key for verification"
    )
    user_id = Column(String(255), nullable=False, index=True)
    purpose = Column(String(20), nullable=False)
    plan_id = Column(String(64), nullable=True)
    course_id = Column(String(36), nullable=True)

    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    gateway_response = Column(String(255), nullable=True)
    gateway_payload = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_payments_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Payment(reference={self.reference}, status={self.status})>"
