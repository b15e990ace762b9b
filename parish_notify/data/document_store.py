"""
Parish Notify — SQLite document store.

Implements the DocumentStore port on a single SQLite table of JSON
documents keyed by (collection, id). Stands in for the managed cloud
document database; every entity the app persists goes through here.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from parish_notify.ports.document_store import QUERY_OPERATORS, Document, StoreUnavailableError

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteDocumentStore:
    """SQLite-backed storage for JSON documents."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from parish_notify.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection  TEXT NOT NULL,
                    id          TEXT NOT NULL,
                    data        TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
        logger.debug("Document store initialized at %s", self._db_path)

    # -- sync core ---------------------------------------------------------

    def _run(self, fn, *args):
        try:
            return fn(*args)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Document store error: {exc}") from exc

    def _get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["data"])

    def _list(self, collection: str) -> list[Document]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
        return [Document(id=r["id"], data=json.loads(r["data"])) for r in rows]

    def _query(self, collection: str, field: str, op: str, value: Any) -> list[Document]:
        if not _FIELD_RE.match(field):
            raise ValueError(f"Invalid field name: {field!r}")
        if op not in QUERY_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op!r}")

        extract = f"json_extract(data, '$.{field}')"
        if value is None and op in ("==", "!="):
            condition = f"{extract} IS {'NOT ' if op == '!=' else ''}NULL"
            params: tuple = (collection,)
        else:
            sql_op = "=" if op == "==" else op
            condition = f"{extract} {sql_op} ?"
            params = (collection, value)

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, data FROM documents WHERE collection = ? AND {condition} ORDER BY rowid",
                params,
            ).fetchall()
        return [Document(id=r["id"], data=json.loads(r["data"])) for r in rows]

    def _set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> None:
        with self._connect() as conn:
            if merge:
                row = conn.execute(
                    "SELECT data FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                ).fetchone()
                if row is not None:
                    data = {**json.loads(row["data"]), **data}
            conn.execute(
                """
                INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)
                ON CONFLICT (collection, id) DO UPDATE SET data = excluded.data
                """,
                (collection, doc_id, json.dumps(data, ensure_ascii=False)),
            )

    def _create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO documents (collection, id, data) VALUES (?, ?, ?)",
                (collection, doc_id, json.dumps(data, ensure_ascii=False)),
            )
        return cursor.rowcount > 0

    def _delete(self, collection: str, doc_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
        return cursor.rowcount > 0

    # -- DocumentStore port ------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._run, self._get, collection, doc_id)

    async def list(self, collection: str) -> list[Document]:
        return await asyncio.to_thread(self._run, self._list, collection)

    async def query(self, collection: str, field: str, op: str, value: Any) -> list[Document]:
        return await asyncio.to_thread(self._run, self._query, collection, field, op, value)

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        await asyncio.to_thread(self._run, self._set, collection, doc_id, data, merge)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await asyncio.to_thread(self._run, self._set, collection, doc_id, data, False)
        return doc_id

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        """Insert only if absent. Returns False when the id is already taken."""
        return await asyncio.to_thread(self._run, self._create, collection, doc_id, data)

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete by id. Deleting a missing document is a no-op returning False."""
        return await asyncio.to_thread(self._run, self._delete, collection, doc_id)
