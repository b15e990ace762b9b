"""Local wall clock for the scheduling engine.

Services take a `Clock` callable so tests can pin "now".
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from parish_notify.config import settings

Clock = Callable[[], datetime]


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def local_now() -> datetime:
    """Current time, timezone-aware, in the parish's zone."""
    return datetime.now(local_tz())
