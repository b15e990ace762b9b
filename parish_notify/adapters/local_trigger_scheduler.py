"""Local trigger scheduler — implements TriggerScheduler on the asyncio loop.

Keeps one `loop.call_later` handle per identifier and calls the `on_fire`
handler with the payload when the trigger is due. The trigger table lives
in memory only; the rollover driver reconciles the schedule log with it
after a restart.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from parish_notify.core.clock import Clock, local_now
from parish_notify.ports.trigger_scheduler import TriggerPayload, TriggerSchedulerError

logger = logging.getLogger(__name__)

FireHandler = Callable[[TriggerPayload], Awaitable[None]]


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds from start to end, counted in UTC for aware datetimes."""
    if start.tzinfo is None or end.tzinfo is None:
        return (end - start).total_seconds()
    return (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()


class LocalTriggerScheduler:
    """In-process one-shot triggers."""

    def __init__(self, on_fire: FireHandler | None = None, clock: Clock = local_now) -> None:
        self._on_fire = on_fire
        self._clock = clock
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._inflight: set[asyncio.Task] = set()

    def set_handler(self, on_fire: FireHandler) -> None:
        self._on_fire = on_fire

    async def schedule_one_shot(
        self, fire_at: datetime, payload: TriggerPayload, identifier: str | None = None
    ) -> str:
        delay = seconds_between(self._clock(), fire_at)
        if delay <= 0:
            raise TriggerSchedulerError(f"Trigger time {fire_at.isoformat()} is in the past")

        identifier = identifier or f"trigger-{uuid.uuid4().hex[:12]}"
        previous = self._handles.pop(identifier, None)
        if previous is not None:
            previous.cancel()

        loop = asyncio.get_running_loop()
        self._handles[identifier] = loop.call_later(delay, self._fire, identifier, payload)
        return identifier

    def _fire(self, identifier: str, payload: TriggerPayload) -> None:
        self._handles.pop(identifier, None)
        if self._on_fire is None:
            logger.warning("Trigger %s fired with no handler: %s", identifier, payload.title)
            return
        task = asyncio.ensure_future(self._deliver(identifier, payload))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _deliver(self, identifier: str, payload: TriggerPayload) -> None:
        try:
            await self._on_fire(payload)
        except Exception:
            logger.exception("Handler for trigger %s failed", identifier)

    async def cancel(self, identifier: str) -> None:
        handle = self._handles.pop(identifier, None)
        if handle is not None:
            handle.cancel()

    async def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        count = len(self._handles)
        self._handles.clear()
        logger.info("Cancelled %d scheduled triggers", count)

    async def pending(self) -> list[str]:
        return sorted(self._handles)
