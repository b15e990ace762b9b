"""
Parish Notify — Application wiring.

Builds the document store, adapters and services, connects the trigger
scheduler to the fired-trigger handler, and runs the rollover driver until
SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass

from parish_notify.adapters.expo_push_relay import ExpoPushRelay
from parish_notify.adapters.local_trigger_scheduler import LocalTriggerScheduler
from parish_notify.config import settings
from parish_notify.core.clock import Clock, local_now
from parish_notify.core.config_store import NotificationConfigStore
from parish_notify.core.dispatcher import PushFanoutDispatcher
from parish_notify.core.history import DeliveryHistoryRecorder
from parish_notify.core.notification_service import NotificationService
from parish_notify.core.planner import SchedulePlanner
from parish_notify.core.rollover import YearlyRolloverDriver
from parish_notify.core.schedule_log import ScheduleLog
from parish_notify.data.document_store import SQLiteDocumentStore
from parish_notify.ports.document_store import DocumentStore
from parish_notify.ports.push_relay import PushRelay

logger = logging.getLogger(__name__)


@dataclass
class Application:
    service: NotificationService
    driver: YearlyRolloverDriver
    scheduler: LocalTriggerScheduler


def build_app(
    store: DocumentStore | None = None,
    relay: PushRelay | None = None,
    clock: Clock = local_now,
) -> Application:
    """Wire every component. Arguments default to the production adapters."""
    store = store or SQLiteDocumentStore()
    relay = relay or ExpoPushRelay()

    scheduler = LocalTriggerScheduler(clock=clock)
    configs = NotificationConfigStore(store, clock)
    log = ScheduleLog(store)
    planner = SchedulePlanner(configs, log, scheduler, clock)
    dispatcher = PushFanoutDispatcher(store, relay, clock)
    history = DeliveryHistoryRecorder(store, clock)

    service = NotificationService(configs, planner, dispatcher, history, log, clock)
    scheduler.set_handler(service.handle_fired_trigger)

    driver = YearlyRolloverDriver(planner, store, log=log, history=history, clock=clock)
    logger.info("Parish Notify application built (timezone %s)", settings.TIMEZONE)
    return Application(service=service, driver=driver, scheduler=scheduler)


async def run(app: Application) -> None:
    """Start the driver and block until a termination signal arrives."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises
            pass

    await app.driver.start()
    try:
        await stop.wait()
    finally:
        await app.driver.stop()
        await app.scheduler.cancel_all()


def main() -> None:
    """Entry point: build the app and run the scheduling engine."""
    logger.info("Starting Parish Notify...")
    asyncio.run(run(build_app()))
