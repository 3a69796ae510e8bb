"""
Shared fixtures: a throwaway SQLite database with one working provider,
plus in-memory stand-ins for the calendar client, Redis and the event queue.
"""

import copy
import fnmatch
import json
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from appointments.database import init_db, make_engine
from appointments.models.generated import ProviderIntegrations, ProviderProfiles, Services
from appointments.services.google_calendar import CalendarAuthError, RefreshedToken

BELGRADE = ZoneInfo("Europe/Belgrade")
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
# Day before MONDAY, noon UTC
NOW = datetime(2030, 1, 6, 12, 0, tzinfo=timezone.utc)

PROVIDER_ID = 1
OTHER_PROVIDER_ID = 2
SERVICE_60 = 1
SERVICE_30 = 2
OTHER_PROVIDER_SERVICE = 3
INACTIVE_SERVICE = 4

WORKDAY = {"enabled": True, "working_hours": {"start": "09:00", "end": "17:00"}, "breaks": []}

DEFAULT_SETTINGS = {
    "week_schedule": {
        "monday": WORKDAY,
        "tuesday": {"enabled": False},
    },
    "buffer_minutes": 15,
    "advance_booking_days": 60,
    "minimum_notice_hours": 0,
}


def local(day: date, hour: int, minute: int = 0) -> datetime:
    """Provider-local wall-clock instant."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=BELGRADE)


def set_settings(db, provider_id: int = PROVIDER_ID, **overrides) -> None:
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    settings.update(overrides)
    provider = db.get(ProviderProfiles, provider_id)
    provider.availability_settings = json.dumps(settings)
    db.commit()


# ── Database ─────────────────────────────────────────────────────────────


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    db.add_all([
        ProviderProfiles(
            id=PROVIDER_ID,
            business_name="Studio Sava",
            timezone="Europe/Belgrade",
            availability_settings=json.dumps(DEFAULT_SETTINGS),
        ),
        ProviderProfiles(
            id=OTHER_PROVIDER_ID,
            business_name="Studio Dunav",
            timezone="Europe/Belgrade",
            availability_settings=json.dumps(DEFAULT_SETTINGS),
        ),
    ])
    db.flush()
    db.add_all([
        Services(id=SERVICE_60, provider_id=PROVIDER_ID, name="Haircut", duration_minutes=60, price=30.0),
        Services(id=SERVICE_30, provider_id=PROVIDER_ID, name="Beard trim", duration_minutes=30, price=15.0),
        Services(id=OTHER_PROVIDER_SERVICE, provider_id=OTHER_PROVIDER_ID, name="Coloring", duration_minutes=60, price=50.0),
        Services(id=INACTIVE_SERVICE, provider_id=PROVIDER_ID, name="Retired", duration_minutes=60, price=10.0, is_active=0),
    ])
    db.commit()
    db.close()

    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def integration(db):
    row = ProviderIntegrations(
        provider_id=PROVIDER_ID,
        provider="google_calendar",
        access_token="old-access",
        refresh_token="refresh-1",
        calendar_id="primary",
        sync_enabled=1,
    )
    db.add(row)
    db.commit()
    return row


# ── Calendar ─────────────────────────────────────────────────────────────


class FakeCalendar:
    """
    In-memory CalendarClient.

    `reject_tokens` holds access tokens answered with CalendarAuthError;
    `error` (an exception instance) is raised by every data call when set.
    """

    def __init__(self, busy=None, error=None, reject_tokens=(), new_token="new-access"):
        self.busy = list(busy or [])
        self.error = error
        self.reject_tokens = set(reject_tokens)
        self.new_token = new_token
        self.refresh_calls = 0
        self.created = []
        self.deleted = []
        self.busy_calls = []

    def _check(self, integration):
        if integration.access_token in self.reject_tokens:
            raise CalendarAuthError("401")
        if self.error is not None:
            raise self.error

    def get_busy_intervals(self, integration, start, end):
        self.busy_calls.append((start, end))
        self._check(integration)
        return list(self.busy)

    def create_event(self, integration, event):
        self._check(integration)
        self.created.append(event)
        return f"evt-{len(self.created)}"

    def delete_event(self, integration, event_id):
        self._check(integration)
        self.deleted.append(event_id)
        return True

    def refresh_credentials(self, refresh_token):
        self.refresh_calls += 1
        return RefreshedToken(access_token=self.new_token, token_expires_at="2030-01-06 13:00:00")


@pytest.fixture
def calendar():
    return FakeCalendar()


# ── Events ───────────────────────────────────────────────────────────────


class EventCollector:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event_type: str, payload: dict) -> None:
        self.events.append((event_type, payload))

    @property
    def types(self) -> list[str]:
        return [t for t, _ in self.events]


@pytest.fixture
def events():
    return EventCollector()


# ── Redis ────────────────────────────────────────────────────────────────


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class FakeRedis:
    """The subset of redis-py used by the slot cache (strings and sets, decoded)."""

    def __init__(self):
        self.data: dict[str, object] = {}
        self.ttls: dict[str, int] = {}

    def pipeline(self):
        return FakePipeline(self)

    def get(self, key):
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    def mget(self, *keys):
        return [self.get(k) for k in keys]

    def incr(self, key):
        value = int(self.get(key) or 0) + 1
        self.data[key] = str(value)
        return value

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def sadd(self, key, *members):
        current = self.data.setdefault(key, set())
        added = len(set(members) - current)
        current.update(members)
        return added

    def smembers(self, key):
        return set(self.data.get(key, set()))

    def srem(self, key, *members):
        current = self.data.get(key, set())
        removed = len(current & set(members))
        current.difference_update(members)
        return removed

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return key in self.data

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    def keys(self, pattern="*"):
        return [k for k in self.data if fnmatch.fnmatch(k, pattern)]


@pytest.fixture
def fake_redis():
    return FakeRedis()
