"""Push relay port — abstract interface for the batch push service.

One call carries many messages; the relay answers with one outcome per
message, in request order.
"""

from __future__ import annotations

from typing import Any, Protocol


class PushRelayError(Exception):
    """Raised when the relay is unreachable or rejects the whole batch."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PushRelay(Protocol):
    """Abstract push relay interface used by core modules."""

    async def send(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]: ...
