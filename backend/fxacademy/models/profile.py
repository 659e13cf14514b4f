"""
Profile model: a user's durable identity record.

The id is the identity provider's user id (JWT `sub`).
Profiles are never hard-deleted.
"""

from sqlalchemy import Column, String, Index

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin
from fxacademy.constants.permissions import Role


class Profile(Base, TimestampMixin):
    """
    User profile.

    Personal fields are self-mutable. Role is only changed through the
    role-assignment service, which writes a role_audit row.
    """

    __tablename__ = "profiles"

    id = Column(
        String(255),
        primary_key=True,
        comment="Identity provider user id"
    )
    email = Column(
        String(320),
        nullable=False,
        unique=True,
        index=True,
        comment="Login email (lowercased)"
    )
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    country_code = Column(String(8), nullable=True)
    phone = Column(String(40), nullable=True)

    role = Column(
        String(32),
        nullable=False,
        default=Role.STUDENT.value,
        index=True,
        comment="Exactly one role per user"
    )

    __table_args__ = (
        Index("ix_profiles_role_email", "role", "email"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, role={self.role})>"

    @property
    def is_onboarded(self) -> bool:
        """Onboarding is complete once first name, last name and country are set."""
        return all(
            (value or "").strip()
            for value in (self.first_name, self.last_name, self.country)
        )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
