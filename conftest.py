"""
Shared pytest fixtures for the License Eligibility Engine tests
Tests run against an in-memory SQLite database and fake collaborators
"""

import os
import sys
import uuid
from datetime import date
from types import SimpleNamespace

# Settings are read lazily, so this must happen before anything calls get_settings()
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Add the project root to sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest
from dateutil.relativedelta import relativedelta

from app.core.database import create_tables, get_engine, get_session_factory
from app.models.base import Base
from app.models.enums import ApplicationStatus
from app.models.transaction import DEFAULT_FEE_STRUCTURE
from app.schemas.fee import FeeStructure
from app.services.category_rules import get_registry

AS_OF = date(2026, 6, 15)


def born_years_ago(years: int, as_of: date = AS_OF, days: int = 0) -> date:
    """Birth date for someone exactly `years` old on as_of, shifted by `days`"""
    return as_of - relativedelta(years=years) + relativedelta(days=days)


def held(category, status=ApplicationStatus.COMPLETED):
    """Application record as returned by the applications-by-person lookup"""
    return SimpleNamespace(id=uuid.uuid4(), license_category=category, status=status)


class FakeApplicationsLookup:
    """Awaitable lookup that records its calls and returns canned applications"""

    def __init__(self, applications=None, error=None):
        self.applications = list(applications or [])
        self.error = error
        self.calls = []

    async def __call__(self, person_id, categories, statuses):
        self.calls.append((person_id, list(categories), list(statuses)))
        if self.error is not None:
            raise self.error
        return list(self.applications)


def default_fee_schedule():
    """Default fee schedule as calculator input"""
    return [
        FeeStructure(
            fee_type=fee_type.value,
            display_name=data["display_name"],
            description=data["description"],
            amount=data["amount"],
            applies_to_categories=data.get("applies_to_categories", []),
        )
        for fee_type, data in DEFAULT_FEE_STRUCTURE.items()
    ]


@pytest.fixture
def registry():
    return get_registry()


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory connection"""
    engine = get_engine()
    create_tables(engine)
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)
