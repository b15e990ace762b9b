"""
Parish Notify — Delivery history.

One record per push fan-out, kept for a fixed number of days and then
swept. Also computes the rollup shown on the admin history screen.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from parish_notify.core.clock import Clock, local_now
from parish_notify.data.models import DeliveryStatus, NotificationCategory, NotificationRecord

if TYPE_CHECKING:
    from parish_notify.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

HISTORY_COLLECTION = "notificationHistory"


def derive_status(success_count: int, failure_count: int) -> DeliveryStatus:
    """SENT when nothing failed, FAILED when nothing succeeded, else PARTIAL."""
    if failure_count == 0:
        return DeliveryStatus.SENT
    if success_count == 0:
        return DeliveryStatus.FAILED
    return DeliveryStatus.PARTIAL


def _record_to_doc(record: NotificationRecord) -> dict[str, Any]:
    return {
        "title": record.title,
        "body": record.body,
        "category": record.category.value,
        "sent_at": record.sent_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "status": record.status.value,
        "recipient_count": record.recipient_count,
        "success_count": record.success_count,
        "failure_count": record.failure_count,
        "sent_by": record.sent_by or "",
        "event_id": record.event_id or "",
        "is_automated": record.is_automated,
        "errors": list(record.errors),
    }


def _doc_to_record(doc_id: str, data: dict[str, Any]) -> NotificationRecord:
    return NotificationRecord(
        id=doc_id,
        title=data.get("title", ""),
        body=data.get("body", ""),
        category=NotificationCategory(data.get("category", "INFO")),
        sent_at=datetime.fromisoformat(data["sent_at"]),
        expires_at=datetime.fromisoformat(data["expires_at"]),
        status=DeliveryStatus(data.get("status", "SENT")),
        recipient_count=data.get("recipient_count", 0),
        success_count=data.get("success_count", 0),
        failure_count=data.get("failure_count", 0),
        sent_by=data.get("sent_by") or None,
        event_id=data.get("event_id") or None,
        is_automated=data.get("is_automated", False),
        errors=list(data.get("errors", [])),
    )


@dataclass
class NotificationStats:
    total_sent: int = 0
    total_recipients: int = 0
    success_rate: int = 100
    by_category: dict[NotificationCategory, int] = field(
        default_factory=lambda: {c: 0 for c in NotificationCategory}
    )
    last_7_days: int = 0
    last_30_days: int = 0


class DeliveryHistoryRecorder:
    """Document-store backed delivery history with time-based retention."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock = local_now,
        retention_days: int | None = None,
    ) -> None:
        if retention_days is None:
            from parish_notify.config import settings
            retention_days = settings.HISTORY_RETENTION_DAYS

        self._store = store
        self._clock = clock
        self._retention = timedelta(days=retention_days)

    async def record(
        self,
        title: str,
        body: str,
        category: NotificationCategory,
        recipient_count: int,
        success_count: int,
        failure_count: int,
        sent_by: str | None = None,
        event_id: str | None = None,
        is_automated: bool = False,
        errors: list[str] | None = None,
    ) -> NotificationRecord:
        """Persist one dispatch outcome. Status is derived from the counts."""
        sent_at = self._clock()
        record = NotificationRecord(
            title=title,
            body=body,
            category=category,
            sent_at=sent_at,
            expires_at=sent_at + self._retention,
            status=derive_status(success_count, failure_count),
            recipient_count=recipient_count,
            success_count=success_count,
            failure_count=failure_count,
            sent_by=sent_by,
            event_id=event_id,
            is_automated=is_automated,
            errors=list(errors or []),
        )
        record.id = await self._store.add(HISTORY_COLLECTION, _record_to_doc(record))
        logger.info(
            "History: '%s' %s (%d/%d delivered)",
            title, record.status.value, success_count, recipient_count,
        )
        return record

    async def list_all(self) -> list[NotificationRecord]:
        """Every stored record, newest first."""
        docs = await self._store.list(HISTORY_COLLECTION)
        records = [_doc_to_record(d.id, d.data) for d in docs]
        records.sort(key=lambda r: r.sent_at, reverse=True)
        return records

    async def recent(self) -> list[NotificationRecord]:
        """Records that have not expired yet, newest first."""
        now = self._clock()
        return [r for r in await self.list_all() if r.expires_at > now]

    async def delete(self, record_id: str) -> bool:
        return await self._store.delete(HISTORY_COLLECTION, record_id)

    async def cleanup_expired(self) -> int:
        """Delete every record past its expiry. Safe to run concurrently."""
        now = self._clock()
        deleted = 0
        for record in await self.list_all():
            if record.expires_at < now and record.id is not None:
                if await self.delete(record.id):
                    deleted += 1
        logger.info("Cleaned up %d expired notification records", deleted)
        return deleted

    async def stats(self, window_days: int = 30) -> NotificationStats:
        """Rollup over non-expired records sent within the window.

        last_7_days and last_30_days count non-expired records whatever
        the window.
        """
        now = self._clock()
        window_start = now - timedelta(days=window_days)
        week_start = now - timedelta(days=7)
        month_start = now - timedelta(days=30)
        live = await self.recent()
        records = [r for r in live if r.sent_at >= window_start]

        stats = NotificationStats(
            total_sent=len(records),
            last_7_days=sum(1 for r in live if r.sent_at >= week_start),
            last_30_days=sum(1 for r in live if r.sent_at >= month_start),
        )
        total_success = 0
        for r in records:
            stats.by_category[r.category] += 1
            stats.total_recipients += r.recipient_count
            total_success += r.success_count

        if stats.total_recipients > 0:
            # half-up, not banker's rounding
            stats.success_rate = math.floor(total_success * 100 / stats.total_recipients + 0.5)
        return stats
