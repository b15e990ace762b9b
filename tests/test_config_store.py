"""Tests for parish_notify.core.config_store — configs and global defaults."""

from datetime import date

import pytest
from pydantic import ValidationError

from parish_notify.config import NotificationDefaults
from parish_notify.core.config_store import (
    CONFIG_COLLECTION,
    DEFAULTS_DOC_ID,
    SETTINGS_COLLECTION,
    ConfigNotFoundError,
)
from parish_notify.data.church_calendar import big_events, events_for_year
from parish_notify.data.models import NotificationConfig, NotificationTiming, ServiceType


def _config(**overrides):
    fields = dict(
        event_id="2026-07-05_Неделна Литургија – Пикник",
        event_name="Неделна Литургија – Пикник",
        event_date=date(2026, 7, 5),
        service_type=ServiceType.PICNIC,
        timings=frozenset({NotificationTiming.ONE_DAY}),
    )
    fields.update(overrides)
    return NotificationConfig(**fields)


class TestUpsert:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, config_store, clock):
        config_id = await config_store.upsert(_config())
        stored = await config_store.get(config_id)
        assert stored.id == config_id
        assert stored.timings == {NotificationTiming.ONE_DAY}
        assert stored.created_at == clock.now
        assert stored.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, config_store, clock):
        config_id = await config_store.upsert(_config())
        created = clock.now
        clock.advance(hours=2)

        await config_store.upsert(_config(id=config_id, custom_message="Понесете храна"))
        stored = await config_store.get(config_id)
        assert stored.custom_message == "Понесете храна"
        assert stored.created_at == created
        assert stored.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_update_of_unknown_id_creates_it(self, config_store, clock):
        await config_store.upsert(_config(id="given-id"))
        stored = await config_store.get("given-id")
        assert stored is not None
        assert stored.created_at == clock.now

    @pytest.mark.asyncio
    async def test_get_by_event_id(self, config_store):
        await config_store.upsert(_config())
        found = await config_store.get_by_event_id("2026-07-05_Неделна Литургија – Пикник")
        assert found is not None
        assert found.service_type is ServiceType.PICNIC
        assert await config_store.get_by_event_id("missing") is None


class TestDeleteAndToggle:
    @pytest.mark.asyncio
    async def test_delete(self, config_store):
        config_id = await config_store.upsert(_config())
        await config_store.delete(config_id)
        assert await config_store.get(config_id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, config_store):
        with pytest.raises(ConfigNotFoundError):
            await config_store.delete("missing")

    @pytest.mark.asyncio
    async def test_set_enabled(self, config_store):
        config_id = await config_store.upsert(_config())
        await config_store.set_enabled(config_id, False)
        assert (await config_store.get(config_id)).is_enabled is False

    @pytest.mark.asyncio
    async def test_set_enabled_missing_raises(self, config_store):
        with pytest.raises(ConfigNotFoundError):
            await config_store.set_enabled("missing", True)


class TestInitializeDefaults:
    @pytest.mark.asyncio
    async def test_creates_one_config_per_big_event(self, config_store, clock):
        events = events_for_year(2026)
        expected = big_events(clock.now, events)

        created = await config_store.initialize_defaults(events)
        assert created == len(expected)

        configs = await config_store.list()
        picnic = next(c for c in configs if c.service_type is ServiceType.PICNIC)
        assert picnic.timings == {
            NotificationTiming.ONE_WEEK,
            NotificationTiming.THREE_DAYS,
            NotificationTiming.ONE_DAY,
        }

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, config_store):
        events = events_for_year(2026)
        await config_store.initialize_defaults(events)
        assert await config_store.initialize_defaults(events) == 0


class TestDefaults:
    @pytest.mark.asyncio
    async def test_missing_defaults(self, config_store):
        defaults = await config_store.load_defaults()
        assert defaults == NotificationDefaults()
        assert defaults.day_before and defaults.hour_before and not defaults.week_before

    @pytest.mark.asyncio
    async def test_save_and_load(self, config_store):
        await config_store.save_defaults(NotificationDefaults(week_before=True, hour_before=False))
        loaded = await config_store.load_defaults()
        assert loaded.week_before is True
        assert loaded.hour_before is False

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, config_store, store):
        await store.set(SETTINGS_COLLECTION, DEFAULTS_DOC_ID, {"enabled": True, "surprise": 1})
        with pytest.raises(ValidationError):
            await config_store.load_defaults()

    @pytest.mark.asyncio
    async def test_configs_stored_in_own_collection(self, config_store, store):
        config_id = await config_store.upsert(_config())
        data = await store.get(CONFIG_COLLECTION, config_id)
        assert data["timings"] == ["1_DAY"]
        assert data["event_date"] == "2026-07-05"
