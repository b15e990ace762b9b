"""
Parish Notify — Schedule planner.

Converges the trigger scheduler with the reminders implied by
(events x enabled configs x timings) and by the global default reminders.

Every (config, timing) pair goes through the same gate:
    1. compute the fire instant; skip silently if it is not in the future
    2. claim the schedule-log row (insert-if-absent); skip if already claimed
    3. submit the one-shot trigger; on failure release the row so the next
       cycle retries the pair

Reading configs or claiming rows can raise StoreUnavailableError, which
aborts the cycle. A trigger submit failure only skips its pair.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from parish_notify.core.clock import Clock, local_now
from parish_notify.core.timing import (
    default_fire_instant,
    default_reminder_message,
    fire_instant,
    message_for,
)
from parish_notify.data.church_calendar import events_for_year, events_in_window, find_event
from parish_notify.data.models import (
    CalendarEvent,
    DefaultReminder,
    NotificationTiming,
    ScheduleLogEntry,
    ScheduleStatus,
    ServiceType,
)
from parish_notify.ports.trigger_scheduler import TriggerPayload, TriggerSchedulerError

if TYPE_CHECKING:
    from parish_notify.config import NotificationDefaults
    from parish_notify.core.config_store import NotificationConfigStore
    from parish_notify.core.schedule_log import ScheduleLog
    from parish_notify.ports.trigger_scheduler import TriggerScheduler

logger = logging.getLogger(__name__)

_TIMING_ORDER = list(NotificationTiming)


@dataclass
class PlanResult:
    """Counters of one planning pass."""

    scheduled: int = 0
    skipped_past: int = 0
    skipped_existing: int = 0
    skipped_unresolved: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def absorb(self, other: PlanResult) -> None:
        self.scheduled += other.scheduled
        self.skipped_past += other.skipped_past
        self.skipped_existing += other.skipped_existing
        self.skipped_unresolved += other.skipped_unresolved
        self.failed += other.failed
        self.errors.extend(other.errors)


def one_year_later(moment: datetime) -> datetime:
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, day=28)


def default_config_id(event: CalendarEvent) -> str:
    """Pseudo config id that keys default reminders in the schedule log."""
    if event.template_id:
        return f"defaults_{event.date.isoformat()}_{event.template_id}"
    return f"defaults_{event.event_id}"


def enabled_reminders(defaults: NotificationDefaults) -> list[DefaultReminder]:
    reminders = []
    if defaults.week_before:
        reminders.append(DefaultReminder.WEEK_BEFORE)
    if defaults.day_before:
        reminders.append(DefaultReminder.DAY_BEFORE)
    if defaults.hour_before:
        reminders.append(DefaultReminder.HOUR_BEFORE)
    return reminders


def _known_events(now: datetime) -> list[CalendarEvent]:
    return events_for_year(now.year) + events_for_year(now.year + 1)


class SchedulePlanner:
    """Idempotent planner over the trigger scheduler and the schedule log."""

    def __init__(
        self,
        configs: NotificationConfigStore,
        log: ScheduleLog,
        scheduler: TriggerScheduler,
        clock: Clock = local_now,
        events: Callable[[datetime], list[CalendarEvent]] = _known_events,
    ) -> None:
        self._configs = configs
        self._log = log
        self._scheduler = scheduler
        self._clock = clock
        self._events = events

    async def plan(
        self,
        events: list[CalendarEvent] | None = None,
        defaults: NotificationDefaults | None = None,
    ) -> PlanResult:
        """Schedule every future (config, timing) pair not yet in the log."""
        now = self._clock()
        if defaults is None:
            defaults = await self._configs.load_defaults()
        result = PlanResult()
        if not defaults.enabled:
            logger.info("Notifications disabled globally, nothing to plan")
            return result

        configs = await self._configs.list()
        if events is None:
            events = self._events(now)

        for config in configs:
            if not config.is_enabled or config.id is None:
                continue
            if config.event_date < now.date():
                continue

            event = find_event(events, config.event_date, config.event_name)
            if event is None:
                logger.warning(
                    "No calendar event matches config %s (%s, %s), skipping",
                    config.id, config.event_date, config.event_name,
                )
                result.skipped_unresolved += 1
                continue

            for timing in sorted(config.timings, key=_TIMING_ORDER.index):
                fire_at = fire_instant(event.date, event.start_time, timing, now.tzinfo)
                if fire_at <= now:
                    result.skipped_past += 1
                    continue
                message = message_for(event, timing, config.custom_message)
                payload = TriggerPayload(
                    title=message.title,
                    body=message.body,
                    data={"event_id": config.event_id, "timing": timing.value},
                )
                await self._submit(config.id, config.event_id, timing.value, fire_at, payload, now, result)

        logger.info(
            "Planning pass: %d scheduled, %d already scheduled, %d past, %d failed",
            result.scheduled, result.skipped_existing, result.skipped_past, result.failed,
        )
        return result

    async def schedule_events(
        self,
        events: list[CalendarEvent],
        defaults: NotificationDefaults | None = None,
    ) -> PlanResult:
        """Schedule the global default reminders for the given events."""
        now = self._clock()
        if defaults is None:
            defaults = await self._configs.load_defaults()
        result = PlanResult()
        if not defaults.enabled:
            return result

        reminders = enabled_reminders(defaults)
        for event in events:
            if event.starts_at(now.tzinfo) <= now:
                continue
            for reminder in reminders:
                fire_at = default_fire_instant(event, reminder, now.tzinfo)
                if fire_at <= now:
                    result.skipped_past += 1
                    continue
                message = default_reminder_message(event, reminder)
                payload = TriggerPayload(
                    title=message.title,
                    body=message.body,
                    data={"event_id": event.event_id, "timing": reminder.value},
                    urgent=event.service_type is ServiceType.PICNIC,
                )
                await self._submit(
                    default_config_id(event), event.event_id, reminder.value, fire_at, payload, now, result,
                )

        logger.info(
            "Default reminders for %d events: %d scheduled, %d already scheduled",
            len(events), result.scheduled, result.skipped_existing,
        )
        return result

    async def reschedule_all(self, defaults: NotificationDefaults | None = None) -> PlanResult:
        """Cancel every trigger, forget the log, and rebuild the next year.

        The log is cleared together with the cancel-all; stale rows would
        otherwise block the reschedule that follows.
        """
        now = self._clock()
        if defaults is None:
            defaults = await self._configs.load_defaults()

        await self._scheduler.cancel_all()
        await self._log.clear()

        if not defaults.enabled:
            logger.info("Notifications disabled globally: all triggers cancelled")
            return PlanResult()

        window = events_in_window(now, one_year_later(now))
        result = await self.schedule_events(window, defaults)
        result.absorb(await self.plan(defaults=defaults))
        logger.info("Full reschedule done: %d triggers scheduled", result.scheduled)
        return result

    async def reconcile(self) -> int:
        """Line the log up with the live trigger table after a restart.

        Future PENDING rows with no live trigger are released so the next
        pass schedules them again; past ones are marked SKIPPED as missed.
        Returns the number of released rows.
        """
        now = self._clock()
        live = set(await self._scheduler.pending())
        released = 0
        for entry in await self._log.pending():
            if entry.key in live:
                continue
            if entry.scheduled_for > now:
                await self._log.release(entry.key)
                released += 1
            else:
                await self._log.mark(entry.key, ScheduleStatus.SKIPPED, error="missed while not running")
        return released

    async def _submit(
        self,
        config_id: str,
        event_id: str,
        timing: str,
        fire_at: datetime,
        payload: TriggerPayload,
        now: datetime,
        result: PlanResult,
    ) -> None:
        entry = ScheduleLogEntry(
            config_id=config_id,
            event_id=event_id,
            timing=timing,
            scheduled_for=fire_at,
            created_at=now,
        )
        if not await self._log.claim(entry):
            result.skipped_existing += 1
            return

        payload.data["log_key"] = entry.key
        try:
            await self._scheduler.schedule_one_shot(fire_at, payload, identifier=entry.key)
        except TriggerSchedulerError as exc:
            logger.warning("Failed to schedule %s at %s: %s", entry.key, fire_at.isoformat(), exc)
            await self._log.release(entry.key)
            result.failed += 1
            result.errors.append(f"{entry.key}: {exc}")
            return

        result.scheduled += 1
        logger.debug("Scheduled %s at %s", entry.key, fire_at.isoformat())
