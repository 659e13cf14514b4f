"""
Plan model for platform-wide subscription plans.

Prices are integer minor units with an ISO 4217 currency code.
"""

from sqlalchemy import Column, String, Integer, Boolean, Text

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin


class PlanInterval:
    """Plan billing interval values."""
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


class Plan(Base, TimestampMixin):
    """Platform subscription plan."""

    __tablename__ = "plans"

    id = Column(
        String(64),
        primary_key=True,
        comment="Stable plan key, e.g. 'pro_monthly'"
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    price_minor = Column(
        Integer,
        nullable=False,
        comment="Price in currency minor units (cents)"
    )
    currency = Column(
        String(3),
        nullable=False,
        default="USD",
        comment="ISO 4217 currency code"
    )
    interval = Column(
        String(20),
        nullable=False,
        default=PlanInterval.MONTHLY,
    )
    duration_days = Column(
        Integer,
        nullable=True,
        comment="Access length granted per payment; NULL means no expiry"
    )
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, price_minor={self.price_minor} {self.currency})>"
