"""
Parish Notify — Recurring church calendar.

The parish's yearly services as templates with stable ids. Dated events for
any year are derived from them; next year's list is produced by cloning the
current one and shifting the year.
"""

from __future__ import annotations

from datetime import date, datetime

from parish_notify.data.models import CalendarEvent, RecurringEventTemplate, ServiceType

_OPEN_HOURS = "09:00 - 13:00"

CHURCH_TEMPLATES: tuple[RecurringEventTemplate, ...] = (
    # January
    RecurringEventTemplate("sv-naum-jan", 1, 5, "09:00", "Свети Наум охридски", ServiceType.CHURCH_OPEN, _OPEN_HOURS),
    RecurringEventTemplate("bozhik-liturgy", 1, 7, "09:00", "Рождество Христово БОЖИК", ServiceType.LITURGY),
    RecurringEventTemplate("bozhik-evening", 1, 7, "19:00", "Рождество Христово БОЖИК", ServiceType.EVENING_SERVICE),
    RecurringEventTemplate(
        "bogojavlenie", 1, 19, "19:00", "Голем Богојавлениски Водосвет, Богојавление", ServiceType.EVENING_SERVICE,
    ),
    # February
    RecurringEventTemplate("zadushnica-feb", 2, 14, "09:00", "ЗАДУШНИЦА", ServiceType.LITURGY),
    RecurringEventTemplate("sretenie", 2, 15, "09:00", "Сретение Господово", ServiceType.LITURGY),
    # April
    RecurringEventTemplate("veliki-petok", 4, 10, "19:00", "Велики Петок", ServiceType.EVENING_SERVICE),
    RecurringEventTemplate(
        "veligden", 4, 12, "09:00", "Воскресение на Господ Исус Христос, Велигден", ServiceType.LITURGY,
    ),
    # May
    RecurringEventTemplate("gjurgjovden", 5, 6, "09:00", "Св. вмч. Георгиј Победоносец", ServiceType.CHURCH_OPEN, _OPEN_HOURS),
    RecurringEventTemplate("kiril-metodij", 5, 24, "09:00", "Св. Кирил и Методиј", ServiceType.LITURGY),
    RecurringEventTemplate(
        "duhovi", 5, 31, "09:00", "Слегување на Св. Дух врз апостолите – Духови", ServiceType.LITURGY,
    ),
    # July
    RecurringEventTemplate("sv-naum-jul", 7, 3, "09:00", "Св. Наум Охридски", ServiceType.CHURCH_OPEN, _OPEN_HOURS),
    RecurringEventTemplate("picnic-summer", 7, 5, "09:00", "Неделна Литургија – Пикник", ServiceType.PICNIC),
    RecurringEventTemplate("petrovden", 7, 12, "09:00", "Св. ап-ли Петар и Павле, Петровден", ServiceType.LITURGY),
    # August
    RecurringEventTemplate("preobrazhenie", 8, 18, "09:00", "Преображение на Господ Исус Христос", ServiceType.LITURGY),
    RecurringEventTemplate(
        "uspenie", 8, 27, "19:00", "Успение Богородично, Голема Богородица", ServiceType.EVENING_SERVICE,
    ),
    RecurringEventTemplate("picnic-late-summer", 8, 30, "09:00", "Неделна Литургија – Пикник", ServiceType.PICNIC),
    # September
    RecurringEventTemplate("mala-bogorodica", 9, 21, "09:00", "Мала Богородица", ServiceType.CHURCH_OPEN, _OPEN_HOURS),
    RecurringEventTemplate("krstovden", 9, 27, "09:00", "Воздвижение на Чесниот Крст, Крстовден", ServiceType.LITURGY),
    # October
    RecurringEventTemplate("petkovden", 10, 26, "19:00", "Св. Петка, Петковден", ServiceType.EVENING_SERVICE),
    # November
    RecurringEventTemplate("zadushnica-nov", 11, 1, "09:00", "ЗАДУШНИЦА", ServiceType.LITURGY),
    RecurringEventTemplate("mitrovden", 11, 8, "09:00", "Св. вмч. Димитриј – Митровден", ServiceType.LITURGY),
    RecurringEventTemplate("arhangel", 11, 21, "09:00", "Собор на св. Архангел Михаил", ServiceType.LITURGY),
    # December
    RecurringEventTemplate(
        "sv-kliment", 12, 8, "09:00", "Свети Климент Охридски", ServiceType.LITURGY,
    ),
    RecurringEventTemplate("nikoljden", 12, 19, "09:00", "Св. Николај", ServiceType.LITURGY),
)

# Name substrings that make a non-picnic service a "big event"
MAJOR_FEASTS: tuple[str, ...] = (
    "Богојавление",
    "Велигден",
    "Велики Петок",
    "Духови",
    "Успение Богородично",
    "Раѓање Христово",
    "Свети Наум",
    "Свети Климент",
    "Петровден",
)


def events_for_year(
    year: int, templates: tuple[RecurringEventTemplate, ...] = CHURCH_TEMPLATES,
) -> list[CalendarEvent]:
    """Materialize every template for one year, ordered by start."""
    events = [t.for_year(year) for t in templates]
    events.sort(key=lambda ev: (ev.date, ev.time))
    return events


def generate_next_year_events(events: list[CalendarEvent], year: int) -> list[CalendarEvent]:
    """Clone an event list into `year` by replacing the year field."""
    return [ev.with_year(year) for ev in events]


def events_in_window(
    start: datetime,
    end: datetime,
    templates: tuple[RecurringEventTemplate, ...] = CHURCH_TEMPLATES,
) -> list[CalendarEvent]:
    """Events whose start falls in [start, end), across year boundaries."""
    tz = start.tzinfo
    result: list[CalendarEvent] = []
    for year in range(start.year, end.year + 1):
        for ev in events_for_year(year, templates):
            if start <= ev.starts_at(tz) < end:
                result.append(ev)
    return result


def future_events(now: datetime, events: list[CalendarEvent] | None = None) -> list[CalendarEvent]:
    """All events starting at or after `now`, soonest first."""
    if events is None:
        events = events_for_year(now.year)
    upcoming = [ev for ev in events if ev.starts_at(now.tzinfo) >= now]
    upcoming.sort(key=lambda ev: (ev.date, ev.time))
    return upcoming


def is_big_event(event: CalendarEvent) -> bool:
    if event.service_type is ServiceType.PICNIC:
        return True
    return any(feast in event.name for feast in MAJOR_FEASTS)


def big_events(now: datetime, events: list[CalendarEvent] | None = None) -> list[CalendarEvent]:
    """Future picnics and major feasts: the events worth extra reminders."""
    return [ev for ev in future_events(now, events) if is_big_event(ev)]


def find_event(events: list[CalendarEvent], event_date: date, name: str) -> CalendarEvent | None:
    """Resolve the concrete event for a (date, name) pair, or None."""
    for ev in events:
        if ev.date == event_date and ev.name == name:
            return ev
    return None
