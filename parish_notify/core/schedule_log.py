"""
Parish Notify — Schedule log.

The idempotency log of the planner: one row per (config, timing) pair that
has a live trigger. Rows are claimed with an insert-if-absent before the
trigger is submitted, so two planner runs can never both schedule a pair.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from parish_notify.data.models import ScheduleLogEntry, ScheduleStatus

if TYPE_CHECKING:
    from parish_notify.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

LOG_COLLECTION = "autoNotifyLog"


def _entry_to_doc(entry: ScheduleLogEntry) -> dict[str, Any]:
    return {
        "config_id": entry.config_id,
        "event_id": entry.event_id,
        "timing": entry.timing,
        "scheduled_for": entry.scheduled_for.isoformat(),
        "status": entry.status.value,
        "sent_at": entry.sent_at.isoformat() if entry.sent_at else None,
        "error": entry.error,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def _doc_to_entry(data: dict[str, Any]) -> ScheduleLogEntry:
    sent_at = data.get("sent_at")
    created_at = data.get("created_at")
    return ScheduleLogEntry(
        config_id=data["config_id"],
        event_id=data["event_id"],
        timing=data["timing"],
        scheduled_for=datetime.fromisoformat(data["scheduled_for"]),
        status=ScheduleStatus(data.get("status", "PENDING")),
        sent_at=datetime.fromisoformat(sent_at) if sent_at else None,
        error=data.get("error"),
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


class ScheduleLog:
    """Document-store backed schedule log, keyed by `<configId>_<timing>`."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, key: str) -> ScheduleLogEntry | None:
        data = await self._store.get(LOG_COLLECTION, key)
        if data is None:
            return None
        return _doc_to_entry(data)

    async def claim(self, entry: ScheduleLogEntry) -> bool:
        """Insert the entry unless its key exists. True if this call won."""
        return await self._store.create(LOG_COLLECTION, entry.key, _entry_to_doc(entry))

    async def release(self, key: str) -> None:
        """Drop a claimed row, e.g. after the trigger submit failed."""
        await self._store.delete(LOG_COLLECTION, key)

    async def list(self) -> list[ScheduleLogEntry]:
        docs = await self._store.list(LOG_COLLECTION)
        return [_doc_to_entry(d.data) for d in docs]

    async def for_event(self, event_id: str) -> list[ScheduleLogEntry]:
        docs = await self._store.query(LOG_COLLECTION, "event_id", "==", event_id)
        return [_doc_to_entry(d.data) for d in docs]

    async def pending(self) -> list[ScheduleLogEntry]:
        docs = await self._store.query(LOG_COLLECTION, "status", "==", ScheduleStatus.PENDING.value)
        return [_doc_to_entry(d.data) for d in docs]

    async def mark(
        self,
        key: str,
        status: ScheduleStatus,
        sent_at: datetime | None = None,
        error: str | None = None,
    ) -> None:
        """Record the outcome of a fired trigger."""
        if await self._store.get(LOG_COLLECTION, key) is None:
            logger.warning("Schedule log entry %s vanished before it could be marked %s", key, status.value)
            return
        await self._store.set(
            LOG_COLLECTION,
            key,
            {
                "status": status.value,
                "sent_at": sent_at.isoformat() if sent_at else None,
                "error": error,
            },
            merge=True,
        )

    async def clear(self) -> int:
        """Delete every row. Paired with a cancel-all of the trigger scheduler."""
        docs = await self._store.list(LOG_COLLECTION)
        for d in docs:
            await self._store.delete(LOG_COLLECTION, d.id)
        logger.info("Schedule log cleared (%d entries)", len(docs))
        return len(docs)

    async def purge_older_than(self, now: datetime, retention_days: int) -> int:
        """Delete rows whose scheduled_for is more than retention_days ago."""
        cutoff = now - timedelta(days=retention_days)
        deleted = 0
        for d in await self._store.list(LOG_COLLECTION):
            if datetime.fromisoformat(d.data["scheduled_for"]) < cutoff:
                await self._store.delete(LOG_COLLECTION, d.id)
                deleted += 1
        if deleted:
            logger.info("Purged %d schedule log entries older than %d days", deleted, retention_days)
        return deleted
