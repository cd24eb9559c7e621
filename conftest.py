import os

# main builds a module-level app at import; keep it off disk
os.environ["EMS_DB_PATH"] = ":memory:"
os.environ["EMS_SIMULATED_DELAY"] = "0"

import pytest

from analytics import FeedbackEntry, FeedbackSource
from database import Database
from main import EventManagementSystem
from storage import StorageManager

FUTURE_DATE = "2099-12-31"
PAST_DATE = "2000-01-01"


class FixedFeedback(FeedbackSource):
    """One 5-star and one 3-star entry per completed event."""

    def feedback_for(self, events):
        entries = []
        for event in events:
            entries.append(FeedbackEntry(5, "Great event!", event.title, event.date))
            entries.append(FeedbackEntry(3, "It was okay.", event.title, event.date))
        return entries


@pytest.fixture
def storage():
    db = Database(":memory:")
    yield StorageManager(db)
    db.close()


@pytest.fixture
def system():
    ems = EventManagementSystem(Database(":memory:"), feedback_source=FixedFeedback())
    yield ems
    ems.close()


@pytest.fixture
def login(system):
    """Log in as a demo account, or as any account given its email and password."""
    def _login(role, email=None, password="demo123"):
        return system.auth.login(email or f"{role}@demo.com", password, role)
    return _login


@pytest.fixture
def signup(system):
    def _signup(email, role="participant", name="Test User"):
        return system.auth.signup(name, email, "secret123", role)
    return _signup


@pytest.fixture
def make_event(system):
    """Create an event as whoever is logged in."""
    def _make(**overrides):
        fields = dict(
            title="Test Event",
            description="A test event",
            date=FUTURE_DATE,
            time="18:00",
            location="Hall A",
            capacity=100,
            price=50.0,
        )
        fields.update(overrides)
        return system.events.create_event(**fields)
    return _make
