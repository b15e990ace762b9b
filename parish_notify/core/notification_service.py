"""
Parish Notify — UI-agnostic notification service.

The admin surface of the scheduling engine: config edits re-run the
planner, default-switch changes rebuild every trigger, and manual blasts go
through the dispatcher and into the history. It also handles triggers as
they fire.

Admin-initiated calls propagate StoreUnavailableError to the caller. The
fired-trigger path runs in the background and logs it instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from parish_notify.core.clock import Clock, local_now
from parish_notify.data.models import NotificationCategory, ScheduleStatus
from parish_notify.ports.document_store import StoreUnavailableError

if TYPE_CHECKING:
    from parish_notify.config import NotificationDefaults
    from parish_notify.core.config_store import NotificationConfigStore
    from parish_notify.core.dispatcher import DispatchResult, PushFanoutDispatcher
    from parish_notify.core.history import DeliveryHistoryRecorder, NotificationStats
    from parish_notify.core.planner import PlanResult, SchedulePlanner
    from parish_notify.core.schedule_log import ScheduleLog
    from parish_notify.data.models import NotificationConfig, NotificationRecord, ScheduleLogEntry
    from parish_notify.ports.trigger_scheduler import TriggerPayload

logger = logging.getLogger(__name__)

NEWS_PREVIEW_CHARS = 100


def news_preview(content: str) -> str:
    if len(content) <= NEWS_PREVIEW_CHARS:
        return content
    return content[:NEWS_PREVIEW_CHARS] + "..."


class NotificationService:
    """Orchestrates config store, planner, dispatcher and history."""

    def __init__(
        self,
        configs: NotificationConfigStore,
        planner: SchedulePlanner,
        dispatcher: PushFanoutDispatcher,
        history: DeliveryHistoryRecorder,
        log: ScheduleLog,
        clock: Clock = local_now,
    ) -> None:
        self._configs = configs
        self._planner = planner
        self._dispatcher = dispatcher
        self._history = history
        self._log = log
        self._clock = clock

    # -- per-event configs -------------------------------------------------

    async def save_config(self, config: NotificationConfig) -> tuple[str, PlanResult]:
        config_id = await self._configs.upsert(config)
        return config_id, await self._planner.plan()

    async def toggle_config(self, config_id: str, enabled: bool) -> PlanResult:
        await self._configs.set_enabled(config_id, enabled)
        return await self._planner.plan()

    async def delete_config(self, config_id: str) -> PlanResult:
        # already-armed triggers stay; they are skipped when they fire
        await self._configs.delete(config_id)
        return await self._planner.plan()

    async def initialize_default_configs(self) -> int:
        created = await self._configs.initialize_defaults()
        if created:
            await self._planner.plan()
        return created

    async def scheduled_for_event(self, event_id: str) -> list[ScheduleLogEntry]:
        return await self._log.for_event(event_id)

    # -- global defaults ---------------------------------------------------

    async def get_defaults(self) -> NotificationDefaults:
        return await self._configs.load_defaults()

    async def update_defaults(self, defaults: NotificationDefaults) -> PlanResult:
        """Persist the switches, then cancel and rebuild every trigger."""
        await self._configs.save_defaults(defaults)
        return await self._planner.reschedule_all(defaults)

    # -- push fan-out ------------------------------------------------------

    async def broadcast(
        self,
        title: str,
        body: str,
        category: NotificationCategory,
        urgent: bool = False,
        sent_by: str | None = None,
        event_id: str | None = None,
        is_automated: bool = False,
        data: dict | None = None,
    ) -> tuple[DispatchResult, NotificationRecord]:
        """Dispatch to every device and record the outcome."""
        result = await self._dispatcher.dispatch(title, body, urgent=urgent, data=data)

        if result.success:
            recipients, succeeded, failed = result.recipient_count, result.sent_count, result.failed_count
        else:
            # nothing reached a device: recorded as "not attempted"
            recipients, succeeded, failed = 0, 0, 0

        errors = list(result.errors)
        if result.error:
            errors.append(result.error)

        record = await self._history.record(
            title,
            body,
            category,
            recipient_count=recipients,
            success_count=succeeded,
            failure_count=failed,
            sent_by=sent_by,
            event_id=event_id,
            is_automated=is_automated,
            errors=errors,
        )
        return result, record

    async def send_manual_notification(
        self, title: str, body: str, urgent: bool = True, sent_by: str = "admin",
    ) -> DispatchResult:
        if not body.strip():
            raise ValueError("notification body must not be empty")
        category = NotificationCategory.URGENT if urgent else NotificationCategory.INFO
        result, _ = await self.broadcast(title, body, category, urgent=urgent, sent_by=sent_by)
        return result

    async def announce_news(self, title: str, content: str, news_id: str | None = None) -> DispatchResult:
        """Automated push for a freshly published news post."""
        data = {"type": "news", "newsId": news_id} if news_id else {"type": "news"}
        result, _ = await self.broadcast(
            f"Нова објава: {title}",
            news_preview(content),
            NotificationCategory.INFO,
            urgent=False,
            sent_by="news-auto",
            is_automated=True,
            data=data,
        )
        return result

    # -- fired triggers ----------------------------------------------------

    async def handle_fired_trigger(self, payload: TriggerPayload) -> None:
        """Deliver a due reminder to every device and close its log row."""
        key = payload.data.get("log_key")
        event_id = payload.data.get("event_id")
        try:
            entry = await self._log.get(key) if key else None
            if entry is None:
                logger.warning("Trigger '%s' fired without a schedule log row, dropping", payload.title)
                return

            if not await self._still_wanted(entry.config_id):
                await self._log.mark(key, ScheduleStatus.SKIPPED, sent_at=self._clock())
                logger.info("Reminder %s skipped: disabled since it was scheduled", key)
                return

            result, _ = await self.broadcast(
                payload.title,
                payload.body,
                NotificationCategory.AUTOMATED,
                urgent=payload.urgent,
                sent_by="auto-reminder",
                event_id=event_id,
                is_automated=True,
                data={"eventId": event_id, "timing": payload.data.get("timing")},
            )
            if result.success and result.sent_count > 0:
                await self._log.mark(key, ScheduleStatus.SENT, sent_at=self._clock())
            else:
                await self._log.mark(
                    key, ScheduleStatus.FAILED, sent_at=self._clock(),
                    error=result.error or "no device accepted the reminder",
                )
        except StoreUnavailableError as exc:
            logger.error("Could not process fired reminder %s: %s", key, exc)

    async def _still_wanted(self, config_id: str) -> bool:
        defaults = await self._configs.load_defaults()
        if not defaults.enabled:
            return False
        if config_id.startswith("defaults_"):
            return True
        config = await self._configs.get(config_id)
        return config is not None and config.is_enabled

    # -- history -----------------------------------------------------------

    async def history(self) -> list[NotificationRecord]:
        return await self._history.recent()

    async def stats(self, window_days: int = 30) -> NotificationStats:
        return await self._history.stats(window_days)

    async def cleanup_history(self) -> int:
        return await self._history.cleanup_expired()
