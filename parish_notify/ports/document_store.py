"""Document store port — abstract interface over the managed document database.

Core modules depend on this protocol, never on a specific backend.
Documents are plain JSON-compatible dicts addressed by (collection, id).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

QUERY_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


class StoreUnavailableError(Exception):
    """Raised when any document store operation fails."""


@dataclass(frozen=True)
class Document:
    id: str
    data: dict[str, Any]


class DocumentStore(Protocol):
    """Abstract document store interface used by core modules."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def list(self, collection: str) -> list[Document]: ...

    async def query(
        self, collection: str, field: str, op: str, value: Any
    ) -> list[Document]: ...

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def create(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> bool: ...

    async def delete(self, collection: str, doc_id: str) -> bool: ...
