"""
Parish Notify — Push fan-out dispatcher.

Sends one admin-authored (or automated) message to every registered device
in a single relay batch. Tokens are deduplicated first: registration races
can leave several rows for one device.

Recording the outcome in the delivery history is the caller's job.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from parish_notify.core.clock import Clock, local_now
from parish_notify.data.models import DeviceToken
from parish_notify.ports.document_store import StoreUnavailableError
from parish_notify.ports.push_relay import PushRelayError

if TYPE_CHECKING:
    from parish_notify.ports.document_store import DocumentStore
    from parish_notify.ports.push_relay import PushRelay

logger = logging.getLogger(__name__)

TOKENS_COLLECTION = "pushTokens"
NO_DEVICES_ERROR = "No devices registered for push notifications"

URGENT_CHANNEL = "urgent-updates"
DEFAULT_CHANNEL = "church-events"


@dataclass
class DispatchResult:
    """Outcome of one fan-out.

    success is False only when nothing was handed to the relay or the relay
    rejected the whole batch; per-message failures keep success True.
    """

    success: bool
    sent_count: int
    recipient_count: int = 0
    failed_count: int = 0
    error: str | None = None
    errors: list[str] = field(default_factory=list)


def token_doc_id(token: str) -> str:
    """Deterministic document id, so re-registering a token upserts."""
    return "token_" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


def unique_tokens(records: list[DeviceToken]) -> list[str]:
    """Non-empty tokens, first occurrence wins, order kept."""
    return list(dict.fromkeys(r.token for r in records if r.token))


def build_message(
    token: str,
    title: str,
    body: str,
    urgent: bool,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "to": token,
        "title": title,
        "body": body,
        # full body travels in data too, in case the relay truncates it
        "data": {"fullBody": body, **(data or {})},
        "priority": "high" if urgent else "normal",
        "channel": URGENT_CHANNEL if urgent else DEFAULT_CHANNEL,
    }


class PushFanoutDispatcher:
    """Device registry plus batch fan-out through the push relay."""

    def __init__(self, store: DocumentStore, relay: PushRelay, clock: Clock = local_now) -> None:
        self._store = store
        self._relay = relay
        self._clock = clock

    async def register_device(self, token: str, platform: str = "") -> str:
        if not token.strip():
            raise ValueError("push token must not be empty")
        doc_id = token_doc_id(token)
        now = self._clock().isoformat()
        doc: dict[str, Any] = {"token": token, "platform": platform, "updated_at": now}
        if await self._store.get(TOKENS_COLLECTION, doc_id) is None:
            doc["created_at"] = now
        await self._store.set(TOKENS_COLLECTION, doc_id, doc, merge=True)
        logger.info("Device registered: %s (%s)", doc_id, platform or "unknown platform")
        return doc_id

    async def unregister_device(self, token: str) -> bool:
        return await self._store.delete(TOKENS_COLLECTION, token_doc_id(token))

    async def device_tokens(self) -> list[DeviceToken]:
        docs = await self._store.list(TOKENS_COLLECTION)
        tokens = []
        for d in docs:
            created = d.data.get("created_at")
            updated = d.data.get("updated_at")
            tokens.append(
                DeviceToken(
                    id=d.id,
                    token=d.data.get("token", ""),
                    platform=d.data.get("platform", ""),
                    created_at=datetime.fromisoformat(created) if created else None,
                    updated_at=datetime.fromisoformat(updated) if updated else None,
                )
            )
        return tokens

    async def dispatch(
        self,
        title: str,
        body: str,
        urgent: bool = True,
        data: dict[str, Any] | None = None,
    ) -> DispatchResult:
        """Fan a message out to every unique registered token.

        Never raises for store or relay trouble: the failure is reported in
        the result so the caller can still record the attempt.
        """
        try:
            records = await self.device_tokens()
        except StoreUnavailableError as exc:
            logger.error("Could not load push tokens: %s", exc)
            return DispatchResult(success=False, sent_count=0, error=str(exc))

        tokens = unique_tokens(records)
        logger.info("Found %d tokens, %d unique", len(records), len(tokens))
        if not tokens:
            return DispatchResult(success=False, sent_count=0, error=NO_DEVICES_ERROR)

        messages = [build_message(t, title, body, urgent, data) for t in tokens]
        try:
            outcomes = await self._relay.send(messages)
        except PushRelayError as exc:
            logger.error("Push relay rejected batch of %d: %s", len(messages), exc)
            return DispatchResult(success=False, sent_count=0, error=f"Failed to send: {exc}")

        sent = sum(1 for o in outcomes if o.get("status") == "ok")
        errors = [
            f"{token}: {o.get('message', 'error')}"
            for token, o in zip(tokens, outcomes)
            if o.get("status") != "ok"
        ]
        logger.info("Push fan-out '%s': %d/%d delivered", title, sent, len(tokens))
        return DispatchResult(
            success=True,
            sent_count=sent,
            recipient_count=len(tokens),
            failed_count=len(tokens) - sent,
            errors=errors,
        )
