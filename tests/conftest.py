"""Shared fixtures: a file-backed SQLite database per test plus seeded directory rows."""

import os
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4
from zoneinfo import ZoneInfo

# Must be set before anything imports tourbook.config.settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("STORE_RETRY_MAX_WAIT_SECONDS", "0.1")
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

import pytest
from celery.result import _set_task_join_will_block
from sqlalchemy.orm import sessionmaker

from tourbook.config.database import build_engine
from tourbook.models import Appointment, AppointmentStatus, Base, Profile, Property, Provider
from tourbook.schemas.availability import RecurringWindow
from tourbook.services.availability.rule_store import RuleStore

NY = ZoneInfo("America/New_York")

# A Monday before the 2026 DST switch, and a fixed "now" a few days earlier
MONDAY = date(2026, 3, 2)
NOW = datetime(2026, 2, 25, 12, 0, tzinfo=timezone.utc)

MONDAY_NINE_TO_FIVE = RecurringWindow(day_of_week=1, start_time=time(9), end_time=time(17), title="Office hours")


def local(day: date, hour: int, minute: int = 0) -> datetime:
    """Wall-clock time in the seeded provider's timezone"""
    return datetime.combine(day, time(hour, minute), tzinfo=NY)


def hhmm(slots) -> list:
    return [s.start.strftime("%H:%M") for s in slots]


@pytest.fixture(autouse=True)
def _reset_celery_join_flag():
    """Eager tasks run from worker threads can leave celery's process-global join guard set"""
    _set_task_join_will_block(False)
    yield


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tourbook.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    """A provider in New York, two buyers, an admin and a listing owned by another agent"""
    provider = Profile(id=uuid4(), role="agent", full_name="Avery Agent", email="avery@example.com")
    listing_agent = Profile(id=uuid4(), role="agent", full_name="Lee Lister", email="lee@example.com")
    buyer = Profile(id=uuid4(), role="buyer", full_name="Blair Buyer", email="blair@example.com")
    other_buyer = Profile(id=uuid4(), role="buyer", full_name="Casey Buyer", email="casey@example.com")
    admin = Profile(id=uuid4(), role="admin", full_name="Ada Admin", email="ada@example.com")
    db.add_all([provider, listing_agent, buyer, other_buyer, admin])
    db.flush()

    db.add(Provider(id=provider.id, timezone="America/New_York", buffer_before_minutes=15, buffer_after_minutes=15))
    db.add(Provider(id=listing_agent.id, timezone="America/New_York"))
    prop = Property(
        id=uuid4(),
        listing_agent_id=listing_agent.id,
        address="12 Elm St",
        city="Springfield",
        state="IL",
        zip_code="62701",
    )
    db.add(prop)
    db.commit()

    return SimpleNamespace(
        provider_id=provider.id,
        listing_agent_id=listing_agent.id,
        buyer_id=buyer.id,
        other_buyer_id=other_buyer.id,
        admin_id=admin.id,
        property_id=prop.id,
    )


@pytest.fixture
def monday_hours(db, seed):
    """Monday 09:00-17:00 office hours with 15 minute buffers"""
    RuleStore.replace_rules(db, seed.provider_id, [MONDAY_NINE_TO_FIVE], 15, 15)
    return seed


@pytest.fixture
def add_appointment(db, seed):
    """Insert an appointment row directly, bypassing booking validation"""

    def _add(start: datetime, minutes: int = 60, status: AppointmentStatus = AppointmentStatus.CONFIRMED,
             provider_id=None, buyer_id=None) -> Appointment:
        appointment = Appointment(
            property_id=seed.property_id,
            buyer_id=buyer_id or seed.buyer_id,
            provider_id=provider_id or seed.provider_id,
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=minutes),
            status=status.value,
            created_at=NOW,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _add
