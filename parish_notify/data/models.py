"""
Parish Notify — Data Models.

Calendar events are regenerated every year from recurring templates; the
notification entities (configs, schedule log, delivery history, device
tokens) live in the document store and survive restarts.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, tzinfo
from enum import Enum


class ServiceType(Enum):
    LITURGY = "LITURGY"
    EVENING_SERVICE = "EVENING_SERVICE"
    CHURCH_OPEN = "CHURCH_OPEN"
    PICNIC = "PICNIC"


class NotificationTiming(Enum):
    """Admin-selectable reminder offsets for a single event."""

    ONE_WEEK = "1_WEEK"
    THREE_DAYS = "3_DAYS"
    ONE_DAY = "1_DAY"
    TWELVE_HOURS = "12_HOURS"


class DefaultReminder(Enum):
    """Global reminders driven by the three NotificationDefaults switches."""

    WEEK_BEFORE = "WEEK_BEFORE"
    DAY_BEFORE = "DAY_BEFORE"
    HOUR_BEFORE = "HOUR_BEFORE"


class ScheduleStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class NotificationCategory(Enum):
    REMINDER = "REMINDER"
    URGENT = "URGENT"
    INFO = "INFO"
    EVENT = "EVENT"
    AUTOMATED = "AUTOMATED"


class DeliveryStatus(Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


def _parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


@dataclass(frozen=True)
class CalendarEvent:
    """One dated occurrence of a recurring church service."""

    date: date
    time: str                      # local start, "HH:MM"
    name: str
    service_type: ServiceType
    description: str | None = None
    template_id: str = ""          # stable across years, "" for ad-hoc events

    @property
    def event_id(self) -> str:
        return f"{self.date.isoformat()}_{self.name}"

    @property
    def start_time(self) -> time:
        return _parse_hhmm(self.time)

    def starts_at(self, tz: tzinfo | None = None) -> datetime:
        return datetime.combine(self.date, self.start_time, tzinfo=tz)

    def with_year(self, year: int) -> CalendarEvent:
        """Clone this event into another year, keeping month/day/time."""
        try:
            shifted = self.date.replace(year=year)
        except ValueError:
            # 29 February in a non-leap year
            shifted = self.date.replace(year=year, day=28)
        return replace(self, date=shifted)


@dataclass(frozen=True)
class RecurringEventTemplate:
    """A yearly-recurring slot in the parish calendar.

    Yearly CalendarEvent instances are derived from it, so the template_id
    identifies "the same event" across years.
    """

    template_id: str
    month: int
    day: int
    time: str
    name: str
    service_type: ServiceType
    description: str | None = None

    def for_year(self, year: int) -> CalendarEvent:
        try:
            event_date = date(year, self.month, self.day)
        except ValueError:
            event_date = date(year, self.month, 28)
        return CalendarEvent(
            date=event_date,
            time=self.time,
            name=self.name,
            service_type=self.service_type,
            description=self.description,
            template_id=self.template_id,
        )


@dataclass
class NotificationConfig:
    """Admin-authored reminder override for one event.

    At most one config per event_id is expected; the store does not
    enforce it.
    """

    event_id: str
    event_name: str
    event_date: date
    service_type: ServiceType
    timings: frozenset[NotificationTiming] = frozenset()
    is_enabled: bool = True
    custom_message: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def schedule_log_key(config_id: str, timing: str) -> str:
    """Identity of a schedule log row: one per (config, timing) pair."""
    return f"{config_id}_{timing}"


@dataclass
class ScheduleLogEntry:
    """A (config, timing) pair that was handed to the trigger scheduler.

    `timing` holds a NotificationTiming or DefaultReminder value.
    """

    config_id: str
    event_id: str
    timing: str
    scheduled_for: datetime
    status: ScheduleStatus = ScheduleStatus.PENDING
    sent_at: datetime | None = None
    error: str | None = None
    created_at: datetime | None = None

    @property
    def key(self) -> str:
        return schedule_log_key(self.config_id, self.timing)


@dataclass
class NotificationRecord:
    """Delivery history row: one per push fan-out."""

    title: str
    body: str
    category: NotificationCategory
    sent_at: datetime
    expires_at: datetime
    status: DeliveryStatus
    recipient_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    sent_by: str | None = None
    event_id: str | None = None
    is_automated: bool = False
    errors: list[str] = field(default_factory=list)
    id: str | None = None


@dataclass
class DeviceToken:
    """A registered push token (one row per device, in theory)."""

    token: str
    platform: str = ""
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
