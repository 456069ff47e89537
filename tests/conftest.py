import itertools
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from realtyflow import db_models  # noqa: F401  (registers tables on Base)
from realtyflow.availability import AvailabilityOracle
from realtyflow.booking import BookingOrchestrator
from realtyflow.calendar_provider import CalendarProvider, EventRef
from realtyflow.database import Base, get_db
from realtyflow.db_models import DBAgent, DBProperty
from realtyflow.errors import ProviderUnavailable

# Monday 2030-01-07, 08:00 in New York (EST, UTC-5): one hour before a
# default working day starts.
NOW = datetime(2030, 1, 7, 13, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _safe_test_config(monkeypatch):
    """Force deterministic, offline-safe config for tests.

    The repo loads .env on import; these overrides keep SMTP/Twilio on the
    "not configured" path and pin the booking policy unless a test opts in.
    """
    from realtyflow.config import Config, config

    overrides = {
        "ENVIRONMENT": "test",
        "SMTP_HOST": "",
        "SMTP_USER": "",
        "TWILIO_ACCOUNT_SID": "",
        "TWILIO_AUTH_TOKEN": "",
        "TWILIO_PHONE_NUMBER": "",
        "GOOGLE_CLIENT_ID": "client-id",
        "GOOGLE_CLIENT_SECRET": "client-secret",
        "DEFAULT_TIMEZONE": "America/New_York",
        "BOOKING_LOOKAHEAD_DAYS": 7,
        "CALENDAR_FAIL_OPEN": True,
        "BOOKING_RECHECK_SLOT": False,
        "REMINDER_MINUTES": 30,
    }
    for key, value in overrides.items():
        monkeypatch.setattr(Config, key, value, raising=False)
        # Keep the instance in sync for code that reads instance attributes directly.
        monkeypatch.setattr(config, key, value, raising=False)
    return config


class FakeCalendarProvider(CalendarProvider):
    """In-memory calendar: busy windows per agent, switchable failures."""

    def __init__(self):
        self.busy: dict[int, list[tuple[datetime, datetime]]] = {}
        self.fail_checks = False
        self.fail_reserve = False
        self.checks = []
        self.reserved = []

    def mark_busy(self, agent, start: datetime, end: datetime):
        self.busy.setdefault(agent.id, []).append((start, end))

    def is_slot_free(self, agent, start, end):
        self.checks.append((agent.id, start, end))
        if self.fail_checks:
            raise ProviderUnavailable("calendar unreachable")
        return not any(s < end and e > start for s, e in self.busy.get(agent.id, []))

    def reserve_event(self, agent, details):
        if self.fail_reserve:
            raise ProviderUnavailable("event insert failed")
        self.reserved.append((agent.id, details))
        n = len(self.reserved)
        return EventRef(event_id=f"evt-{n}", html_link=f"https://calendar.example.com/event/evt-{n}")

    def list_upcoming(self, agent, max_results=10):
        return [{"id": "evt-1", "summary": "Property Viewing - 12 Elm St"}][:max_results]

    def close(self):
        pass


class FakeNotifier:
    """Records fan-out calls; can be told to blow up."""

    def __init__(self):
        self.fail = False
        self.confirmations = []
        self.new_leads = []

    def booking_confirmed(self, booking):
        if self.fail:
            raise RuntimeError("smtp server on fire")
        self.confirmations.append(booking)
        return {"lead_email": "sent"}

    def new_lead(self, lead):
        self.new_leads.append(lead)
        return "sent"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
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
def clock():
    return lambda: NOW


@pytest.fixture
def calendar():
    return FakeCalendarProvider()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def oracle(db, calendar, clock):
    return AvailabilityOracle(db, calendar, fail_open=True, clock=clock)


@pytest.fixture
def orchestrator(db, oracle, calendar, notifier, clock):
    return BookingOrchestrator(db, oracle, calendar, notifier, clock=clock, recheck=False, lookahead_days=7)


@pytest.fixture
def make_agent(db):
    counter = itertools.count(1)

    def _make(**overrides) -> DBAgent:
        n = next(counter)
        data = {
            "name": f"Agent {n}",
            "email": f"agent{n}@realtyflow.test",
            "phone": f"+1555000000{n}",
            "calendar_id": f"agent{n}@group.calendar.google.com",
            "google_access_token": "access-token",
            "google_refresh_token": "refresh-token",
            "working_days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
            "working_hours_start": "09:00",
            "working_hours_end": "17:00",
            "timezone": "America/New_York",
            "meeting_duration": 60,
            "buffer_time": 15,
            "is_active": True,
        }
        data.update(overrides)
        agent = DBAgent(**data)
        db.add(agent)
        db.commit()
        db.refresh(agent)
        return agent

    return _make


@pytest.fixture
def make_property(db):
    def _make(**overrides) -> DBProperty:
        data = {"address": "12 Elm St, Springfield", "price": 425000, "bedrooms": 3, "bathrooms": 2, "sqft": 1800}
        data.update(overrides)
        prop = DBProperty(**data)
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop

    return _make


@pytest.fixture
def client(session_factory, calendar, notifier, clock):
    from realtyflow.dependencies import get_calendar_provider, get_clock, get_notifier
    from realtyflow.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_calendar_provider] = lambda: calendar
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    # Not used as a context manager: the lifespan would create tables in the
    # configured (file) database.
    yield TestClient(app)

    app.dependency_overrides.clear()
