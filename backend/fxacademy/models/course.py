"""
Course model.

Courses carry their own price and are entitled independently of the
platform subscription.
"""

from sqlalchemy import Column, String, Integer, Boolean, Text

from fxacademy.db_base import Base
from fxacademy.models.base import TimestampMixin, generate_uuid


class CourseLevel:
    """Course level values."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Course(Base, TimestampMixin):
    """A paid course."""

    __tablename__ = "courses"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    slug = Column(String(255), nullable=True, unique=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    level = Column(
        String(20),
        nullable=True,
        comment="beginner | intermediate | advanced; drives access length"
    )
    price_minor = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Price in currency minor units (cents)"
    )
    currency = Column(String(3), nullable=False, default="USD")
    is_published = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, title={self.title})>"
