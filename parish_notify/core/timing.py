"""Reminder timing calculator — pure business logic.

Maps (event, timing) to the absolute instant a reminder fires and to the
message it carries. Day-based timings snap to a fixed local hour; the
12-hour timing and the default reminders count back from the real start.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from parish_notify.data.models import CalendarEvent, DefaultReminder, NotificationTiming, ServiceType

# offset before the event day/start, pinned local hour (None = keep start time)
TIMING_RULES: dict[NotificationTiming, tuple[timedelta, time | None]] = {
    NotificationTiming.ONE_WEEK: (timedelta(days=7), time(10, 0)),
    NotificationTiming.THREE_DAYS: (timedelta(days=3), time(10, 0)),
    NotificationTiming.ONE_DAY: (timedelta(days=1), time(18, 0)),
    NotificationTiming.TWELVE_HOURS: (timedelta(hours=12), None),
}

DEFAULT_REMINDER_OFFSETS: dict[DefaultReminder, timedelta] = {
    DefaultReminder.WEEK_BEFORE: timedelta(days=7),
    DefaultReminder.DAY_BEFORE: timedelta(days=1),
    DefaultReminder.HOUR_BEFORE: timedelta(hours=1),
}

DEFAULT_TIMINGS_BY_TYPE: dict[ServiceType, frozenset[NotificationTiming]] = {
    ServiceType.PICNIC: frozenset({
        NotificationTiming.ONE_WEEK,
        NotificationTiming.THREE_DAYS,
        NotificationTiming.ONE_DAY,
    }),
    ServiceType.LITURGY: frozenset({NotificationTiming.ONE_DAY}),
    ServiceType.EVENING_SERVICE: frozenset({NotificationTiming.ONE_DAY}),
    ServiceType.CHURCH_OPEN: frozenset({NotificationTiming.ONE_DAY}),
}

TIMING_LABELS: dict[NotificationTiming, str] = {
    NotificationTiming.ONE_WEEK: "1 недела пред",
    NotificationTiming.THREE_DAYS: "3 дена пред",
    NotificationTiming.ONE_DAY: "1 ден пред",
    NotificationTiming.TWELVE_HOURS: "12 часа пред",
}

SERVICE_TYPE_LABELS: dict[ServiceType, str] = {
    ServiceType.LITURGY: "Литургија",
    ServiceType.EVENING_SERVICE: "Вечерна служба",
    ServiceType.CHURCH_OPEN: "Отворена црква",
    ServiceType.PICNIC: "Пикник",
}


@dataclass(frozen=True)
class NotificationMessage:
    title: str
    body: str


def _subtract_exact(moment: datetime, delta: timedelta) -> datetime:
    """Subtract elapsed time, not wall-clock time, for aware datetimes."""
    if moment.tzinfo is None:
        return moment - delta
    return (moment.astimezone(timezone.utc) - delta).astimezone(moment.tzinfo)


def fire_instant(
    event_date: date,
    event_time: time,
    timing: NotificationTiming,
    tz: tzinfo | None = None,
) -> datetime:
    """Absolute instant a reminder fires for an event starting at date+time.

    1_WEEK / 3_DAYS fire at 10:00 and 1_DAY at 18:00 local on the offset day,
    whatever the event's own start; 12_HOURS is exactly 43200s before start.
    """
    offset, pinned = TIMING_RULES[timing]
    if pinned is None:
        start = datetime.combine(event_date, event_time, tzinfo=tz)
        return _subtract_exact(start, offset)
    return datetime.combine(event_date - offset, pinned, tzinfo=tz)


def default_fire_instant(
    event: CalendarEvent, reminder: DefaultReminder, tz: tzinfo | None = None,
) -> datetime:
    """Fire instant of a global default reminder: start minus a fixed offset."""
    return _subtract_exact(event.starts_at(tz), DEFAULT_REMINDER_OFFSETS[reminder])


def message_for(
    event: CalendarEvent,
    timing: NotificationTiming,
    custom_message: str | None = None,
) -> NotificationMessage:
    """Title and body for a per-event reminder.

    An admin's custom message replaces the canned body verbatim.
    """
    if custom_message:
        return NotificationMessage(title=event.name, body=custom_message)

    label = SERVICE_TYPE_LABELS[event.service_type]
    day = event.date.strftime("%d.%m.%Y")

    if timing is NotificationTiming.ONE_WEEK:
        body = f"Потсетник: {label} на {day} во {event.time}ч. Не заборавајте да се подготвите!"
    elif timing is NotificationTiming.THREE_DAYS:
        body = f"{label} е за 3 дена ({day}). Резервирајте го денот!"
    elif timing is NotificationTiming.ONE_DAY:
        body = f"Утре е {label} во {event.time}ч. Ве очекуваме!"
    else:
        body = f"{label} започнува во {event.time}ч. Ве очекуваме!"

    return NotificationMessage(title=event.name, body=body)


def default_reminder_message(event: CalendarEvent, reminder: DefaultReminder) -> NotificationMessage:
    """Canned message for a global default reminder."""
    if reminder is DefaultReminder.HOUR_BEFORE:
        body = f"{event.name} започнува за 1 час"
    elif reminder is DefaultReminder.DAY_BEFORE:
        body = f"{event.name} е утре во {event.time}"
    else:
        body = f"{event.name} е следната недела во {event.time}"

    if event.service_type is ServiceType.PICNIC and event.description:
        body += f"\nЛокација: {event.description}"

    return NotificationMessage(title=event.name, body=body)


def timing_from_value(value: str) -> NotificationTiming | DefaultReminder:
    """Parse a schedule-log timing string back into its enum."""
    try:
        return NotificationTiming(value)
    except ValueError:
        return DefaultReminder(value)
