"""
Shared fixtures: in-memory database, a settable clock and timers that
only fire when a test says so.
"""
import os
import tempfile

os.environ.setdefault("FOCUSUP_LOG_DIR", tempfile.gettempdir())
os.environ.setdefault("FOCUSUP_DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from focusup.database import Base
from focusup import models  # noqa: F401  registers tables with Base
from focusup.services.daily_tracker import DailyTracker
from focusup.services.persistence import SqlPersistence
from focusup.services.reward_service import RewardService
from focusup.services.session_controller import SessionController
from focusup.services.verification import VerificationController

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Callable clock that only moves when advanced"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


class ManualTimer:
    def __init__(self, seconds, func, name, repeating):
        self.seconds = seconds
        self.func = func
        self.name = name
        self.repeating = repeating
        self.cancelled = False
        self.fired = 0

    @property
    def active(self) -> bool:
        return not self.cancelled and (self.repeating or self.fired == 0)

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Timer backend whose jobs run only through fire()"""

    def __init__(self):
        self.timers = []

    def call_every(self, seconds, func, name="tick"):
        timer = ManualTimer(seconds, func, name, repeating=True)
        self.timers.append(timer)
        return timer

    def call_later(self, seconds, func, name="timeout"):
        timer = ManualTimer(seconds, func, name, repeating=False)
        self.timers.append(timer)
        return timer

    def active(self, name=None):
        return [t for t in self.timers if t.active and (name is None or t.name == name)]

    def fire(self, name) -> int:
        """Run every active timer with this name once; returns how many ran"""
        fired = 0
        for timer in self.active(name):
            if not timer.active:
                continue
            timer.fired += 1
            timer.func()
            fired += 1
        return fired


@pytest.fixture
def db_session():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def persistence(db_session):
    return SqlPersistence(TestingSessionLocal)


@pytest.fixture
def clock():
    # 10:00 falls in the morning sprint bucket (x1.2)
    return FakeClock(datetime(2026, 1, 30, 10, 0, 0))


@pytest.fixture
def today(clock):
    return clock().date()


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def tracker(persistence, clock):
    return DailyTracker(persistence, clock)


@pytest.fixture
def reward_service(persistence, tracker, clock):
    return RewardService(persistence, tracker, clock)


@pytest.fixture
def controller(persistence, reward_service, timers, clock):
    """Controller without attentiveness checks (no minute-marks)"""
    return SessionController(
        persistence,
        reward_service,
        timers,
        verification=VerificationController(timers, minute_marks=()),
        clock=clock,
    )


@pytest.fixture
def completions(controller):
    received = []
    controller.register_completion_callback(received.append)
    return received
