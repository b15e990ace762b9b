"""
Parish Notify — Notification config store.

CRUD over per-event reminder configs plus the global NotificationDefaults,
on top of the DocumentStore port. Reads and writes propagate
StoreUnavailableError; the caller decides whether to retry or surface it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from parish_notify.config import NotificationDefaults
from parish_notify.core.clock import Clock, local_now
from parish_notify.core.timing import DEFAULT_TIMINGS_BY_TYPE
from parish_notify.data.church_calendar import big_events
from parish_notify.data.models import NotificationConfig, NotificationTiming, ServiceType

if TYPE_CHECKING:
    from parish_notify.data.models import CalendarEvent
    from parish_notify.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

CONFIG_COLLECTION = "autoNotifyConfig"
SETTINGS_COLLECTION = "settings"
DEFAULTS_DOC_ID = "notifications"


class ConfigNotFoundError(LookupError):
    """Raised when toggling or deleting a config id that does not exist."""


def _config_to_doc(config: NotificationConfig) -> dict[str, Any]:
    return {
        "event_id": config.event_id,
        "event_name": config.event_name,
        "event_date": config.event_date.isoformat(),
        "service_type": config.service_type.value,
        "timings": sorted(t.value for t in config.timings),
        "is_enabled": config.is_enabled,
        "custom_message": config.custom_message or None,
    }


def _doc_to_config(doc_id: str, data: dict[str, Any]) -> NotificationConfig:
    created = data.get("created_at")
    updated = data.get("updated_at")
    return NotificationConfig(
        id=doc_id,
        event_id=data["event_id"],
        event_name=data.get("event_name", ""),
        event_date=date.fromisoformat(data["event_date"]),
        service_type=ServiceType(data["service_type"]),
        timings=frozenset(NotificationTiming(t) for t in data.get("timings", [])),
        is_enabled=data.get("is_enabled", True),
        custom_message=data.get("custom_message") or None,
        created_at=datetime.fromisoformat(created) if created else None,
        updated_at=datetime.fromisoformat(updated) if updated else None,
    )


class NotificationConfigStore:
    """Per-event notification configs, keyed by store id, looked up by event id."""

    def __init__(self, store: DocumentStore, clock: Clock = local_now) -> None:
        self._store = store
        self._clock = clock

    async def list(self) -> list[NotificationConfig]:
        docs = await self._store.list(CONFIG_COLLECTION)
        return [_doc_to_config(d.id, d.data) for d in docs]

    async def get(self, config_id: str) -> NotificationConfig | None:
        data = await self._store.get(CONFIG_COLLECTION, config_id)
        if data is None:
            return None
        return _doc_to_config(config_id, data)

    async def get_by_event_id(self, event_id: str) -> NotificationConfig | None:
        """First config for the event, or None. Duplicates are possible."""
        docs = await self._store.query(CONFIG_COLLECTION, "event_id", "==", event_id)
        if not docs:
            return None
        if len(docs) > 1:
            logger.warning("Found %d configs for event %s, using the first", len(docs), event_id)
        return _doc_to_config(docs[0].id, docs[0].data)

    async def upsert(self, config: NotificationConfig) -> str:
        """Create (no id) or merge-update (id) a config. Returns its id.

        Updates keep the stored created_at.
        """
        now = self._clock().isoformat()
        doc = _config_to_doc(config)
        doc["updated_at"] = now

        if config.id is None:
            doc["created_at"] = now
            config_id = await self._store.add(CONFIG_COLLECTION, doc)
            logger.info("Notification config created: %s for '%s'", config_id, config.event_id)
        else:
            config_id = config.id
            if await self._store.get(CONFIG_COLLECTION, config_id) is None:
                doc["created_at"] = now
            await self._store.set(CONFIG_COLLECTION, config_id, doc, merge=True)
            logger.info("Notification config updated: %s", config_id)
        return config_id

    async def delete(self, config_id: str) -> None:
        deleted = await self._store.delete(CONFIG_COLLECTION, config_id)
        if not deleted:
            raise ConfigNotFoundError(f"Notification config {config_id} not found")
        logger.info("Notification config deleted: %s", config_id)

    async def set_enabled(self, config_id: str, enabled: bool) -> None:
        if await self._store.get(CONFIG_COLLECTION, config_id) is None:
            raise ConfigNotFoundError(f"Notification config {config_id} not found")
        await self._store.set(
            CONFIG_COLLECTION,
            config_id,
            {"is_enabled": enabled, "updated_at": self._clock().isoformat()},
            merge=True,
        )
        logger.info("Notification config %s %s", config_id, "enabled" if enabled else "disabled")

    async def initialize_defaults(self, events: list[CalendarEvent] | None = None) -> int:
        """Create a config for every future big event that lacks one.

        Returns the number of configs created.
        """
        created = 0
        for event in big_events(self._clock(), events):
            if await self.get_by_event_id(event.event_id) is not None:
                continue
            await self.upsert(
                NotificationConfig(
                    event_id=event.event_id,
                    event_name=event.name,
                    event_date=event.date,
                    service_type=event.service_type,
                    timings=DEFAULT_TIMINGS_BY_TYPE[event.service_type],
                    is_enabled=True,
                )
            )
            created += 1
        logger.info("Initialized %d default notification configs", created)
        return created

    # -- global defaults ---------------------------------------------------

    async def load_defaults(self) -> NotificationDefaults:
        """Stored defaults, validated; built-in defaults when none are stored."""
        data = await self._store.get(SETTINGS_COLLECTION, DEFAULTS_DOC_ID)
        if data is None:
            return NotificationDefaults()
        return NotificationDefaults.model_validate(data)

    async def save_defaults(self, defaults: NotificationDefaults) -> None:
        await self._store.set(SETTINGS_COLLECTION, DEFAULTS_DOC_ID, defaults.model_dump())
        logger.info("Notification defaults saved: %s", defaults.model_dump())
