"""Shared test fixtures and configuration.

Sets up environment variables before any parish_notify import (config
validates at import time) and provides a temp document store, a pinned
clock, and in-memory fakes for the trigger scheduler and the push relay.
"""

import os

# Patch env vars BEFORE any parish_notify imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Europe/Skopje")
os.environ.setdefault("PUSH_RELAY_ACCESS_TOKEN", "")

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from parish_notify.ports.trigger_scheduler import TriggerSchedulerError

TZ = ZoneInfo("Europe/Skopje")


def local(year, month, day, hour=0, minute=0, second=0):
    """Aware datetime in the parish zone."""
    return datetime(year, month, day, hour, minute, second, tzinfo=TZ)


class FixedClock:
    """Callable clock pinned to `now`; tests move it explicitly."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeTriggerScheduler:
    """Records submitted triggers instead of arming OS timers."""

    def __init__(self):
        self.triggers = {}
        self.submissions = []
        self.cancel_all_calls = 0
        self.fail_with = None

    async def schedule_one_shot(self, fire_at, payload, identifier=None):
        if self.fail_with is not None:
            raise TriggerSchedulerError(self.fail_with)
        identifier = identifier or f"trigger-{len(self.submissions)}"
        self.triggers[identifier] = (fire_at, payload)
        self.submissions.append(identifier)
        return identifier

    async def cancel(self, identifier):
        self.triggers.pop(identifier, None)

    async def cancel_all(self):
        self.cancel_all_calls += 1
        self.triggers.clear()

    async def pending(self):
        return sorted(self.triggers)


class FakePushRelay:
    """Answers every message with the next queued status ("ok" by default)."""

    def __init__(self, statuses=None, error=None):
        self.statuses = list(statuses or [])
        self.error = error
        self.batches = []

    async def send(self, messages):
        self.batches.append(messages)
        if self.error is not None:
            raise self.error
        outcomes = []
        for i, _ in enumerate(messages):
            status = self.statuses[i] if i < len(self.statuses) else "ok"
            if status == "ok":
                outcomes.append({"status": "ok", "id": f"ticket-{i}"})
            else:
                outcomes.append({"status": "error", "message": status})
        return outcomes


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_parish.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteDocumentStore backed by a temp file."""
    from parish_notify.data.document_store import SQLiteDocumentStore
    return SQLiteDocumentStore(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """Clock pinned to 1 June 2026, noon local time."""
    return FixedClock(local(2026, 6, 1, 12, 0))


@pytest.fixture
def scheduler():
    return FakeTriggerScheduler()


@pytest.fixture
def relay():
    return FakePushRelay()


@pytest.fixture
def config_store(store, clock):
    from parish_notify.core.config_store import NotificationConfigStore
    return NotificationConfigStore(store, clock)


@pytest.fixture
def schedule_log(store):
    from parish_notify.core.schedule_log import ScheduleLog
    return ScheduleLog(store)


@pytest.fixture
def planner(config_store, schedule_log, scheduler, clock):
    from parish_notify.core.planner import SchedulePlanner
    return SchedulePlanner(config_store, schedule_log, scheduler, clock)


@pytest.fixture
def history(store, clock):
    from parish_notify.core.history import DeliveryHistoryRecorder
    return DeliveryHistoryRecorder(store, clock, retention_days=30)


@pytest.fixture
def dispatcher(store, relay, clock):
    from parish_notify.core.dispatcher import PushFanoutDispatcher
    return PushFanoutDispatcher(store, relay, clock)
