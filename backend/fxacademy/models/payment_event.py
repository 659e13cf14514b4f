"""
PaymentEvent model for tracking processed gateway webhooks.

Used for idempotency - ensures webhooks are processed exactly once.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, func

from fxacademy.db_base import Base


class PaymentEvent(Base):
    """
    Tracks processed payment gateway webhook events for deduplication.

    The gateway may deliver webhooks multiple times. This table ensures
    each unique event is processed exactly once.
    """

    __tablename__ = "payment_events"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key (UUID)"
    )

    event_key = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="<event>:<reference or gateway id>"
    )

    event_type = Column(
        String(100),
        nullable=False,
        index=True,
        comment="Webhook event name (e.g., charge.success)"
    )

    reference = Column(String(100), nullable=True, index=True)

    payload_hash = Column(
        String(64),
        nullable=True,
        comment="SHA-256 hash of payload for debugging"
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the webhook was processed"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="When the record was created"
    )

    def __repr__(self) -> str:
        return f"<PaymentEvent(event_key={self.event_key})>"
