"""Trigger scheduler port — the OS-level local notification scheduler.

Accepts one-shot triggers at an absolute instant; they can only be revoked
by identifier or all at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


class TriggerSchedulerError(Exception):
    """Raised when a trigger cannot be submitted or cancelled."""


@dataclass(frozen=True)
class TriggerPayload:
    """What the user sees when the trigger fires, plus routing data."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    urgent: bool = False


class TriggerScheduler(Protocol):
    """Abstract one-shot trigger interface used by core modules."""

    async def schedule_one_shot(
        self, fire_at: datetime, payload: TriggerPayload, identifier: str | None = None
    ) -> str: ...

    async def cancel(self, identifier: str) -> None: ...

    async def cancel_all(self) -> None: ...

    async def pending(self) -> list[str]: ...
