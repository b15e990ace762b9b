"""
Parish Notify — Yearly rollover driver.

A long-lived daily task owned by the process: first tick at the next local
midnight, then every 24 hours. Each tick plans the coming year, and in
December also materializes next year's events. It then runs the retention
sweeps.

On start, if the last check is missing or more than a year old, everything
is cancelled and rescheduled from scratch. Otherwise the schedule log is
reconciled with the trigger table and a normal check runs.

Checks are single-flight: a tick that arrives while a check is running is
dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from parish_notify.core.clock import Clock, local_now
from parish_notify.core.planner import PlanResult, one_year_later
from parish_notify.data.church_calendar import events_for_year, events_in_window, generate_next_year_events
from parish_notify.ports.document_store import StoreUnavailableError

if TYPE_CHECKING:
    from parish_notify.core.history import DeliveryHistoryRecorder
    from parish_notify.core.planner import SchedulePlanner
    from parish_notify.core.schedule_log import ScheduleLog
    from parish_notify.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

META_COLLECTION = "meta"
LAST_CHECK_DOC_ID = "lastScheduleCheck"
DAY_SECONDS = 24 * 60 * 60


class DriverState(Enum):
    IDLE = "idle"
    CHECKING = "checking"


def seconds_until_next_midnight(now: datetime) -> float:
    midnight = datetime.combine(now.date() + timedelta(days=1), time(0, 0), tzinfo=now.tzinfo)
    if now.tzinfo is None:
        return (midnight - now).total_seconds()
    return (midnight.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


class YearlyRolloverDriver:
    """Daily check task with an explicit start/stop lifecycle."""

    def __init__(
        self,
        planner: SchedulePlanner,
        store: DocumentStore,
        log: ScheduleLog | None = None,
        history: DeliveryHistoryRecorder | None = None,
        clock: Clock = local_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_retention_days: int | None = None,
    ) -> None:
        if log_retention_days is None:
            from parish_notify.config import settings
            log_retention_days = settings.SCHEDULE_LOG_RETENTION_DAYS

        self._planner = planner
        self._store = store
        self._log = log
        self._history = history
        self._clock = clock
        self._sleep = sleep
        self._log_retention_days = log_retention_days
        self._state = DriverState.IDLE
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Run the startup check, then launch the daily loop."""
        if self.running:
            return
        await self.startup_check()
        self._task = asyncio.create_task(self._run_daily(), name="yearly-rollover-check")
        logger.info("Rollover driver started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Rollover driver stopped")

    async def _run_daily(self) -> None:
        await self._sleep(seconds_until_next_midnight(self._clock()))
        while True:
            await self.tick()
            await self._sleep(DAY_SECONDS)

    # -- checks ------------------------------------------------------------

    async def startup_check(self) -> bool:
        """Full reschedule when the last check is missing or a year old.

        Returns True when the full reschedule ran.
        """
        try:
            now = self._clock()
            last = await self.last_check()
            if last is None or now > one_year_later(last):
                logger.info("Last schedule check %s, rescheduling everything", last.isoformat() if last else "never")
                await self._planner.reschedule_all()
                await self._save_last_check(now)
                return True
            await self.check()
        except StoreUnavailableError as exc:
            logger.error("Startup schedule check skipped, store unavailable: %s", exc)
        return False

    async def tick(self) -> None:
        """One timer tick. A failed check waits for the next tick."""
        try:
            await self.check()
        except StoreUnavailableError as exc:
            logger.error("Daily schedule check skipped, store unavailable: %s", exc)
        except Exception:
            logger.exception("Daily schedule check failed")

    async def check(self) -> PlanResult | None:
        """Idle -> Checking -> Idle. Returns None if a check was already running.

        Starts by reconciling the log with the live triggers, so rows left
        behind by an interrupted clear are released here too.
        """
        if self._state is DriverState.CHECKING:
            logger.info("Schedule check already running, skipping")
            return None

        self._state = DriverState.CHECKING
        try:
            now = self._clock()
            result = PlanResult()

            released = await self._planner.reconcile()
            if released:
                logger.info("Released %d schedule log rows without a live trigger", released)

            if now.month == 12:
                next_year = generate_next_year_events(events_for_year(now.year), now.year + 1)
                logger.info("December: scheduling %d events for %d", len(next_year), now.year + 1)
                result.absorb(await self._planner.schedule_events(next_year))

            window = events_in_window(now, one_year_later(now))
            result.absorb(await self._planner.schedule_events(window))
            result.absorb(await self._planner.plan())

            await self._save_last_check(now)
            await self._sweep(now)
            return result
        finally:
            self._state = DriverState.IDLE

    async def _sweep(self, now: datetime) -> None:
        if self._history is not None:
            await self._history.cleanup_expired()
        if self._log is not None:
            await self._log.purge_older_than(now, self._log_retention_days)

    # -- persisted last-check timestamp -------------------------------------

    async def last_check(self) -> datetime | None:
        data = await self._store.get(META_COLLECTION, LAST_CHECK_DOC_ID)
        if not data or not data.get("at"):
            return None
        return datetime.fromisoformat(data["at"])

    async def _save_last_check(self, now: datetime) -> None:
        await self._store.set(META_COLLECTION, LAST_CHECK_DOC_ID, {"at": now.isoformat()})
