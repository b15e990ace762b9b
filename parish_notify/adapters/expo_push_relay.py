"""Expo push relay adapter — implements PushRelay over httpx.

POSTs the whole batch as one JSON array. Any non-2xx answer or transport
error fails the entire batch; per-message outcomes come back positionally
in the `data` array of a 2xx response.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from parish_notify.ports.push_relay import PushRelayError

logger = logging.getLogger(__name__)

_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
    "Content-Type": "application/json",
}


def to_expo_message(message: dict[str, Any]) -> dict[str, Any]:
    """Map a relay-neutral message onto Expo's field names."""
    expo = {
        "to": message["to"],
        "sound": "default",
        "title": message["title"],
        "body": message["body"],
        "data": message.get("data", {}),
        "priority": message.get("priority", "default"),
    }
    if message.get("channel"):
        expo["channelId"] = message["channel"]
    return expo


class ExpoPushRelay:
    """Expo Push API implementation of PushRelay."""

    def __init__(
        self,
        url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        if url is None or access_token is None or timeout is None:
            from parish_notify.config import settings
            url = url or settings.PUSH_RELAY_URL
            access_token = settings.PUSH_RELAY_ACCESS_TOKEN if access_token is None else access_token
            timeout = settings.PUSH_RELAY_TIMEOUT_SECONDS if timeout is None else timeout

        self._url = url
        self._access_token = access_token
        self._timeout = timeout

    async def send(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        headers = dict(_HEADERS)
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._url,
                    json=[to_expo_message(m) for m in messages],
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise PushRelayError(f"Push relay unreachable: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise PushRelayError(resp.text, status_code=resp.status_code)

        try:
            outcomes = list(resp.json().get("data") or [])
        except ValueError as exc:
            raise PushRelayError(f"Malformed relay response: {exc}", status_code=resp.status_code) from exc

        if len(outcomes) != len(messages):
            logger.warning("Relay returned %d outcomes for %d messages", len(outcomes), len(messages))
        outcomes = outcomes[: len(messages)]
        outcomes += [{"status": "error", "message": "no outcome from relay"}] * (len(messages) - len(outcomes))
        return outcomes
