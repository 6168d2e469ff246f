"""Per-supplier sync cursor: the latest logical time fully applied by EDI ingestion.

The cursor never moves backwards; advance() with an older timestamp is a no-op.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Protocol, runtime_checkable

import psycopg

from catalog_sync import db
from catalog_sync.errors import StorageError
from catalog_sync.models import SyncCursor, ensure_aware

logger = logging.getLogger(__name__)


@runtime_checkable
class SyncCursorStore(Protocol):
    def get(self, supplier_id: str) -> SyncCursor | None:
        ...

    def advance(self, supplier_id: str, timestamp: datetime) -> SyncCursor:
        ...


class InMemorySyncCursorStore:
    def __init__(self) -> None:
        self._cursors: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def get(self, supplier_id: str) -> SyncCursor | None:
        with self._lock:
            ts = self._cursors.get(supplier_id)
        return SyncCursor(supplier_id, ts) if ts else None

    def advance(self, supplier_id: str, timestamp: datetime) -> SyncCursor:
        ts = ensure_aware(timestamp)
        with self._lock:
            current = self._cursors.get(supplier_id)
            if current is None or ts > current:
                self._cursors[supplier_id] = ts
            return SyncCursor(supplier_id, self._cursors[supplier_id])


class PostgresSyncCursorStore:
    """product_cache_sync table; GREATEST() keeps the cursor monotonic."""

    def get(self, supplier_id: str) -> SyncCursor | None:
        try:
            with db._get_conn() as conn:
                row = conn.execute(
                    "SELECT supplier_id, latest_sync_timestamp FROM product_cache_sync WHERE supplier_id = %s",
                    (supplier_id,),
                ).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Sync cursor read failed for {supplier_id}") from exc
        return SyncCursor(**row) if row else None

    def advance(self, supplier_id: str, timestamp: datetime) -> SyncCursor:
        try:
            with db._get_conn() as conn:
                row = conn.execute(
                    """INSERT INTO product_cache_sync (supplier_id, latest_sync_timestamp)
                       VALUES (%s, %s)
                       ON CONFLICT (supplier_id) DO UPDATE SET
                           latest_sync_timestamp = GREATEST(
                               product_cache_sync.latest_sync_timestamp,
                               EXCLUDED.latest_sync_timestamp
                           )
                       RETURNING supplier_id, latest_sync_timestamp""",
                    (supplier_id, ensure_aware(timestamp)),
                ).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Sync cursor advance failed for {supplier_id}") from exc
        return SyncCursor(**row)
