"""
Course entitlement model.

One row per (user, course). Created from a completed course payment.
"""

from sqlalchemy import Column, String, DateTime, UniqueConstraint

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin, generate_uuid


class EntitlementStatus:
    ACTIVE = "active"
    REVOKED = "revoked"


class CourseEntitlement(Base, TimestampMixin):
    """Grants a user access to one course until expires_at."""

    __tablename__ = "course_entitlements"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(String(255), nullable=False, index=True)
    course_id = Column(String(36), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=EntitlementStatus.ACTIVE)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL means lifetime access"
    )
    source_reference = Column(
        String(100),
        nullable=True,
        comment="Payment reference that granted this entitlement"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_entitlements_user_course"),
    )

    def __repr__(self) -> str:
        return f"<CourseEntitlement(user_id={self.user_id}, course_id={self.course_id})>"
