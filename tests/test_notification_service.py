"""Tests for parish_notify.core.notification_service — the admin surface.

Real config store, planner, dispatcher and history over a temp SQLite
store; only the trigger scheduler and the push relay are faked.
"""

from datetime import date

import pytest

from conftest import FakePushRelay
from parish_notify.config import NotificationDefaults
from parish_notify.core.dispatcher import NO_DEVICES_ERROR, PushFanoutDispatcher
from parish_notify.core.notification_service import NotificationService, news_preview
from parish_notify.data.models import (
    DeliveryStatus,
    NotificationCategory,
    NotificationConfig,
    NotificationTiming,
    ScheduleLogEntry,
    ScheduleStatus,
    ServiceType,
)
from parish_notify.ports.trigger_scheduler import TriggerPayload

PICNIC_NAME = "Неделна Литургија – Пикник"
PICNIC_EVENT_ID = f"2026-07-05_{PICNIC_NAME}"


def _make_service(store, clock, config_store, planner, history, schedule_log, relay=None):
    relay = relay or FakePushRelay()
    dispatcher = PushFanoutDispatcher(store, relay, clock)
    service = NotificationService(config_store, planner, dispatcher, history, schedule_log, clock)
    return service, dispatcher, relay


@pytest.fixture
def service_parts(store, clock, config_store, planner, history, schedule_log):
    return _make_service(store, clock, config_store, planner, history, schedule_log)


def _picnic_config(**overrides):
    fields = dict(
        event_id=PICNIC_EVENT_ID,
        event_name=PICNIC_NAME,
        event_date=date(2026, 7, 5),
        service_type=ServiceType.PICNIC,
        timings=frozenset({NotificationTiming.ONE_DAY}),
    )
    fields.update(overrides)
    return NotificationConfig(**fields)


class TestConfigEdits:
    @pytest.mark.asyncio
    async def test_save_config_plans(self, service_parts, scheduler):
        service, _, _ = service_parts
        config_id, result = await service.save_config(_picnic_config())
        assert result.scheduled == 1
        assert f"{config_id}_1_DAY" in scheduler.triggers

    @pytest.mark.asyncio
    async def test_toggle_and_delete(self, service_parts, config_store):
        service, _, _ = service_parts
        config_id, _ = await service.save_config(_picnic_config())

        await service.toggle_config(config_id, False)
        assert (await config_store.get(config_id)).is_enabled is False

        await service.delete_config(config_id)
        assert await config_store.get(config_id) is None

    @pytest.mark.asyncio
    async def test_scheduled_for_event(self, service_parts):
        service, _, _ = service_parts
        await service.save_config(_picnic_config())
        entries = await service.scheduled_for_event(PICNIC_EVENT_ID)
        assert [e.timing for e in entries] == ["1_DAY"]
        assert all(isinstance(e, ScheduleLogEntry) for e in entries)

    @pytest.mark.asyncio
    async def test_initialize_default_configs(self, service_parts, scheduler):
        service, _, _ = service_parts
        created = await service.initialize_default_configs()
        assert created > 0
        assert scheduler.submissions
        assert await service.initialize_default_configs() == 0


class TestDefaults:
    @pytest.mark.asyncio
    async def test_disable_cancels_everything(self, service_parts, scheduler, schedule_log):
        service, _, _ = service_parts
        await service.save_config(_picnic_config())

        await service.update_defaults(NotificationDefaults(enabled=False))

        assert scheduler.triggers == {}
        assert await schedule_log.list() == []
        assert (await service.get_defaults()).enabled is False

    @pytest.mark.asyncio
    async def test_reenable_rebuilds(self, service_parts, scheduler):
        service, _, _ = service_parts
        config_id, _ = await service.save_config(_picnic_config())
        await service.update_defaults(NotificationDefaults(enabled=False))

        result = await service.update_defaults(NotificationDefaults())

        assert result.scheduled > 1
        assert f"{config_id}_1_DAY" in scheduler.triggers
        assert "defaults_2026-07-05_picnic-summer_DAY_BEFORE" in scheduler.triggers


class TestManualNotifications:
    @pytest.mark.asyncio
    async def test_partial_blast_recorded(self, store, clock, config_store, planner, history, schedule_log):
        relay = FakePushRelay(statuses=["ok", "InvalidCredentials", "ok"])
        service, dispatcher, _ = _make_service(
            store, clock, config_store, planner, history, schedule_log, relay,
        )
        for token in ("t1", "t2", "t3"):
            await dispatcher.register_device(token)

        result = await service.send_manual_notification("Важно", "Тест")

        assert result.sent_count == 2
        (record,) = await service.history()
        assert record.status is DeliveryStatus.PARTIAL
        assert record.category is NotificationCategory.URGENT
        assert record.recipient_count == 3
        assert record.success_count == 2
        assert record.sent_by == "admin"

    @pytest.mark.asyncio
    async def test_non_urgent_is_info(self, service_parts):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")

        await service.send_manual_notification("Инфо", "Тело", urgent=False)

        (record,) = await service.history()
        assert record.category is NotificationCategory.INFO
        assert relay.batches[0][0]["priority"] == "normal"

    @pytest.mark.asyncio
    async def test_no_devices_recorded_as_not_attempted(self, service_parts):
        service, _, _ = service_parts

        result = await service.send_manual_notification("Важно", "Тест")

        assert result.success is False
        (record,) = await service.history()
        assert (record.recipient_count, record.success_count, record.failure_count) == (0, 0, 0)
        assert record.status is DeliveryStatus.SENT
        assert record.errors == [NO_DEVICES_ERROR]

    @pytest.mark.asyncio
    async def test_empty_body_rejected(self, service_parts):
        service, _, _ = service_parts
        with pytest.raises(ValueError):
            await service.send_manual_notification("Важно", "   ")

    @pytest.mark.asyncio
    async def test_announce_news(self, service_parts):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")

        await service.announce_news("Велигден", "х" * 150, news_id="n1")

        (record,) = await service.history()
        assert record.title == "Нова објава: Велигден"
        assert record.body == "х" * 100 + "..."
        assert record.category is NotificationCategory.INFO
        assert record.sent_by == "news-auto"
        assert record.is_automated is True
        assert relay.batches[0][0]["data"]["newsId"] == "n1"

    def test_news_preview_short_content_untouched(self):
        assert news_preview("кратко") == "кратко"

    @pytest.mark.asyncio
    async def test_stats(self, service_parts):
        service, dispatcher, _ = service_parts
        await dispatcher.register_device("t1")
        await service.send_manual_notification("Важно", "Тест")

        stats = await service.stats()
        assert stats.total_sent == 1
        assert stats.success_rate == 100
        assert stats.by_category[NotificationCategory.URGENT] == 1


class TestFiredTrigger:
    async def _armed(self, service, scheduler):
        config_id, _ = await service.save_config(_picnic_config())
        key = f"{config_id}_1_DAY"
        _, payload = scheduler.triggers[key]
        return config_id, key, payload

    @pytest.mark.asyncio
    async def test_delivers_and_marks_sent(self, service_parts, scheduler, schedule_log):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")
        _, key, payload = await self._armed(service, scheduler)

        await service.handle_fired_trigger(payload)

        assert (await schedule_log.get(key)).status is ScheduleStatus.SENT
        (record,) = await service.history()
        assert record.category is NotificationCategory.AUTOMATED
        assert record.event_id == PICNIC_EVENT_ID
        assert record.is_automated is True
        assert relay.batches[0][0]["title"] == PICNIC_NAME

    @pytest.mark.asyncio
    async def test_no_devices_marks_failed(self, service_parts, scheduler, schedule_log):
        service, _, _ = service_parts
        _, key, payload = await self._armed(service, scheduler)

        await service.handle_fired_trigger(payload)

        entry = await schedule_log.get(key)
        assert entry.status is ScheduleStatus.FAILED
        assert entry.error == NO_DEVICES_ERROR

    @pytest.mark.asyncio
    async def test_disabled_config_skipped(self, service_parts, scheduler, schedule_log):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")
        config_id, key, payload = await self._armed(service, scheduler)
        await service.toggle_config(config_id, False)

        await service.handle_fired_trigger(payload)

        assert (await schedule_log.get(key)).status is ScheduleStatus.SKIPPED
        assert relay.batches == []

    @pytest.mark.asyncio
    async def test_deleted_config_skipped(self, service_parts, scheduler, schedule_log):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")
        config_id, key, payload = await self._armed(service, scheduler)
        await service.delete_config(config_id)

        await service.handle_fired_trigger(payload)

        assert (await schedule_log.get(key)).status is ScheduleStatus.SKIPPED
        assert relay.batches == []

    @pytest.mark.asyncio
    async def test_default_reminder_skipped_when_globally_disabled(
        self, service_parts, planner, scheduler, config_store, schedule_log,
    ):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")
        from parish_notify.data.church_calendar import events_for_year

        picnic = next(ev for ev in events_for_year(2026) if ev.template_id == "picnic-summer")
        await planner.schedule_events([picnic])
        key = "defaults_2026-07-05_picnic-summer_DAY_BEFORE"
        _, payload = scheduler.triggers[key]
        await config_store.save_defaults(NotificationDefaults(enabled=False))

        await service.handle_fired_trigger(payload)

        assert (await schedule_log.get(key)).status is ScheduleStatus.SKIPPED
        assert relay.batches == []

    @pytest.mark.asyncio
    async def test_unknown_log_key_dropped(self, service_parts):
        service, dispatcher, relay = service_parts
        await dispatcher.register_device("t1")

        await service.handle_fired_trigger(TriggerPayload("t", "b", data={"log_key": "ghost_1_DAY"}))
        await service.handle_fired_trigger(TriggerPayload("t", "b"))

        assert relay.batches == []
        assert await service.history() == []
