"""
Plan and course catalogue.

Reads for the public listings and upserts for the seed script. Upserts
are keyed on the catalogue id, so seeding twice changes nothing.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from fxacademy.config.catalog import CourseEntry, PlanEntry
from fxacademy.models.course import Course
from fxacademy.models.plan import Plan

logger = logging.getLogger(__name__)


class CatalogService:
    """Catalogue reads and idempotent upserts."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list_plans(self) -> List[Plan]:
        return self.db.query(Plan).filter(
            Plan.is_active == True  # noqa: E712
        ).order_by(Plan.price_minor).all()

    def list_courses(self) -> List[Course]:
        return self.db.query(Course).filter(
            Course.is_published == True  # noqa: E712
        ).order_by(Course.title).all()

    def get_course(self, course_id: str) -> Optional[Course]:
        course = self.db.get(Course, course_id)
        if course is None or not course.is_published:
            return None
        return course

    def cheapest_plan(self) -> Optional[Plan]:
        """Plan offered on the platform paywall."""
        plans = self.list_plans()
        return plans[0] if plans else None

    def upsert_plan(self, entry: PlanEntry) -> Tuple[Plan, bool]:
        """Create or update a plan. Returns (plan, created)."""
        plan = self.db.get(Plan, entry.id)
        created = plan is None
        if created:
            plan = Plan(id=entry.id)
            self.db.add(plan)
        plan.name = entry.name
        plan.description = entry.description
        plan.price_minor = entry.price_minor
        plan.currency = entry.currency
        plan.interval = entry.interval
        plan.duration_days = entry.duration_days
        plan.is_active = entry.is_active
        return plan, created

    def upsert_course(self, entry: CourseEntry) -> Tuple[Course, bool]:
        """Create or update a course. Returns (course, created)."""
        course = self.db.get(Course, entry.id)
        created = course is None
        if created:
            course = Course(id=entry.id)
            self.db.add(course)
        course.slug = entry.slug
        course.title = entry.title
        course.description = entry.description
        course.level = entry.level
        course.price_minor = entry.price_minor
        course.currency = entry.currency
        course.is_published = entry.is_published
        return course, created
