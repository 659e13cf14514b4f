"""
Audit trail for role changes and subscription overrides.

CRITICAL: These tables are APPEND-ONLY. Never update or delete rows.
"""

from sqlalchemy import Column, String, Integer, DateTime, Text

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin, generate_uuid


class RoleAudit(Base, TimestampMixin):
    """One row per role change."""

    __tablename__ = "role_audit"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    actor_id = Column(String(255), nullable=True, comment="NULL for scripts")
    target_id = Column(String(255), nullable=False, index=True)
    old_role = Column(String(32), nullable=True)
    new_role = Column(String(32), nullable=False)
    reason = Column(Text, nullable=True)


class SubscriptionAudit(Base, TimestampMixin):
    """One row per manual subscription override or trial grant."""

    __tablename__ = "subscription_audit"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    actor_id = Column(String(255), nullable=False)
    target_id = Column(String(255), nullable=False, index=True)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    trial_days = Column(Integer, nullable=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
