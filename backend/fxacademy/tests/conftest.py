"""
Root test configuration and fixtures.

Provides database fixtures and factories used by unit and integration
tests:

- db_engine / db_session: fresh in-memory SQLite database per test
- file_db_factory: file-backed SQLite for two-connection tests
- make_profile / make_context: callers in any role
- make_plan / make_course / make_intent: catalogue and checkout rows
- gateway: scripted Paystack replacement (see helpers.FakeGateway)
"""

import os
import uuid
from pathlib import Path
from typing import Generator, Optional

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any application module reads it
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-123")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")

from fxacademy.db_base import Base  # noqa: E402
import fxacademy.models  # noqa: E402,F401
from fxacademy.config.settings import Settings  # noqa: E402
from fxacademy.constants.permissions import Role  # noqa: E402
from fxacademy.models.course import Course, CourseLevel  # noqa: E402
from fxacademy.models.payment import (  # noqa: E402
    PaymentIntent,
    PaymentIntentStatus,
    PaymentPurpose,
)
from fxacademy.models.plan import Plan, PlanInterval  # noqa: E402
from fxacademy.models.profile import Profile  # noqa: E402
from fxacademy.platform.request_context import RequestContext  # noqa: E402
from fxacademy.tests.helpers import JWT_SECRET, PAYSTACK_SECRET, FakeGateway, context_for  # noqa: E402


def _create_engine(url: str = "sqlite:///:memory:"):
    if url == "sqlite:///:memory:":
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, connect_args={"check_same_thread": False})


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with every table created."""
    engine = _create_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_db_factory(tmp_path):
    """
    File-backed SQLite database for tests that need two real connections.

    Returns a sessionmaker.
    """
    engine = _create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        supabase_url="https://project.supabase.test",
        supabase_anon_key="anon-test-key",
        supabase_jwt_secret=JWT_SECRET,
        paystack_secret_key=PAYSTACK_SECRET,
        payment_currency="USD",
        frontend_url="https://academy.test",
        owner_emails=frozenset(["founder@example.com"]),
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_profile(db_session):
    """
    Factory creating a committed profile.

    Usage:
        student = make_profile(role=Role.STUDENT)
        admin = make_profile(role="admin", onboarded=False)
    """
    def _make(
        role="student",
        email: Optional[str] = None,
        onboarded: bool = True,
        user_id: Optional[str] = None,
    ) -> Profile:
        user_id = user_id or str(uuid.uuid4())
        role_value = role.value if isinstance(role, Role) else role
        profile = Profile(
            id=user_id,
            email=email or f"{user_id[:8]}@academy.test",
            role=role_value,
            first_name="Ama" if onboarded else None,
            last_name="Mensah" if onboarded else None,
            country="Ghana" if onboarded else None,
        )
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_context(make_profile):
    """Factory returning the RequestContext of a freshly created profile."""
    def _make(role="student", onboarded: bool = True, email: Optional[str] = None) -> RequestContext:
        return context_for(make_profile(role=role, onboarded=onboarded, email=email))
    return _make


@pytest.fixture
def make_plan(db_session):
    def _make(
        plan_id: str = "monthly",
        price_minor: int = 1500,
        duration_days: Optional[int] = 30,
        currency: str = "USD",
    ) -> Plan:
        plan = Plan(
            id=plan_id,
            name=f"Plan {plan_id}",
            price_minor=price_minor,
            currency=currency,
            interval=PlanInterval.MONTHLY if duration_days else PlanInterval.ONE_TIME,
            duration_days=duration_days,
            is_active=True,
        )
        db_session.add(plan)
        db_session.commit()
        return plan
    return _make


@pytest.fixture
def make_course(db_session):
    def _make(
        level: Optional[str] = CourseLevel.BEGINNER,
        price_minor: int = 2500,
        title: str = "Forex Foundations",
    ) -> Course:
        course = Course(
            id=str(uuid.uuid4()),
            title=title,
            level=level,
            price_minor=price_minor,
            currency="USD",
            is_published=True,
        )
        db_session.add(course)
        db_session.commit()
        return course
    return _make


@pytest.fixture
def make_intent(db_session):
    """Factory for a pending payment intent, as left by a checkout."""
    def _make(
        user_id: str,
        plan: Optional[Plan] = None,
        course: Optional[Course] = None,
        reference: Optional[str] = None,
    ) -> PaymentIntent:
        target = plan or course
        intent = PaymentIntent(
            reference=reference or f"ref_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            purpose=PaymentPurpose.PLAN if plan is not None else PaymentPurpose.COURSE,
            plan_id=plan.id if plan is not None else None,
            course_id=course.id if course is not None else None,
            amount_minor=target.price_minor,
            currency=target.currency,
            status=PaymentIntentStatus.PENDING,
        )
        db_session.add(intent)
        db_session.commit()
        return intent
    return _make


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# =============================================================================
# Config fixtures
# =============================================================================


@pytest.fixture
def make_yaml_config(tmp_path):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("catalog.yml", {"plans": [...]})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = tmp_path / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
