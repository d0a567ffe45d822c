"""Shared fixtures for scheduling tests."""

from datetime import time

import pendulum
import pytest

from appointmentcore.adapters.memory_store import MemoryStore
from appointmentcore.adapters.notifications import RecordingNotificationSender
from appointmentcore.domain.models import AvailabilityWindow, Service
from appointmentcore.services.scheduling import SchedulingService

TZ = "Europe/Budapest"


@pytest.fixture
def now():
    """Friday morning, ten days before Sunday 2024-03-10."""
    return pendulum.parse("2024-03-01 08:00", tz=TZ)


@pytest.fixture
def consultation() -> Service:
    return Service(id="consultation", name="Consultation", duration_minutes=30, price=0)


@pytest.fixture
def coaching() -> Service:
    return Service(id="coaching", name="Coaching", duration_minutes=60, price=15000)


@pytest.fixture
def weekday_windows():
    """Monday to Friday, 09:00-17:00."""
    return [
        AvailabilityWindow(day_of_week=day, start_time=time(9, 0), end_time=time(17, 0))
        for day in range(1, 6)
    ]


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(lock_timeout=5)


@pytest.fixture
def notifier() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def scheduler(store, consultation, coaching, weekday_windows, notifier, now) -> SchedulingService:
    return SchedulingService(
        store=store,
        services=[consultation, coaching],
        windows=weekday_windows,
        timezone=TZ,
        notifier=notifier,
        clock=lambda: now,
    )
