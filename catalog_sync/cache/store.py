"""Versioned cache store: conditional writes keyed by (product_id, supplier_id).

Convergence contract:
- A write is applied only when no record exists for the key or the stored
  updated_at is strictly older than the incoming one
- Anything else is STALE: silently discarded, never raised
- The highest updated_at always wins, independent of arrival order or
  duplicate deliveries, so concurrent writers need no external lock
- Deletes are tombstones routed through the same condition (see soft_delete)
- Backend failures surface as StorageError
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Protocol, runtime_checkable

import psycopg
from psycopg.types.json import Jsonb

from catalog_sync import db
from catalog_sync.errors import StorageError
from catalog_sync.models import (
    CacheRecord,
    Platform,
    UpsertOutcome,
    ensure_aware,
    utcnow,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    """Conditional-write product cache."""

    def upsert(self, record: CacheRecord) -> UpsertOutcome:
        ...

    def soft_delete(
        self,
        product_id: str,
        supplier_id: str,
        platform: Platform,
        updated_at: datetime | None = None,
    ) -> UpsertOutcome:
        ...

    def get(self, product_id: str, supplier_id: str) -> CacheRecord | None:
        ...

    def scan(self, supplier_id: str) -> list[CacheRecord]:
        ...


class InMemoryCacheStore:
    """Lock-guarded dict implementation with the same write condition as Postgres."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], CacheRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, record: CacheRecord) -> UpsertOutcome:
        with self._lock:
            existing = self._records.get(record.key)
            if existing is not None and existing.updated_at >= record.updated_at:
                logger.debug("Stale cache write discarded for %s", record.key)
                return UpsertOutcome.STALE
            self._records[record.key] = copy.deepcopy(record)
            return UpsertOutcome.APPLIED

    def soft_delete(
        self,
        product_id: str,
        supplier_id: str,
        platform: Platform,
        updated_at: datetime | None = None,
    ) -> UpsertOutcome:
        ts = ensure_aware(updated_at) if updated_at else utcnow()
        key = (product_id, supplier_id)
        with self._lock:
            existing = self._records.get(key)
            if existing is None:
                self._records[key] = CacheRecord(
                    product_id=product_id,
                    supplier_id=supplier_id,
                    platform=platform,
                    updated_at=ts,
                    deleted=True,
                )
                return UpsertOutcome.APPLIED
            if existing.updated_at >= ts:
                logger.debug("Stale delete discarded for %s", key)
                return UpsertOutcome.STALE
            tombstone = copy.deepcopy(existing)
            tombstone.deleted = True
            tombstone.updated_at = ts
            self._records[key] = tombstone
            return UpsertOutcome.APPLIED

    def get(self, product_id: str, supplier_id: str) -> CacheRecord | None:
        with self._lock:
            record = self._records.get((product_id, supplier_id))
            return copy.deepcopy(record) if record else None

    def scan(self, supplier_id: str) -> list[CacheRecord]:
        with self._lock:
            return [
                copy.deepcopy(r) for (_, sid), r in self._records.items() if sid == supplier_id
            ]


_UPSERT_SQL = """
    INSERT INTO product_cache (
        product_id, supplier_id, platform, deleted, query_key, updated_at,
        product_hashes, variant_hashes, variant_list_hash, data
    )
    VALUES (
        %(product_id)s, %(supplier_id)s, %(platform)s, %(deleted)s, %(query_key)s,
        %(updated_at)s, %(product_hashes)s, %(variant_hashes)s,
        %(variant_list_hash)s, %(data)s
    )
    ON CONFLICT (product_id, supplier_id) DO UPDATE SET
        platform = EXCLUDED.platform,
        deleted = EXCLUDED.deleted,
        query_key = EXCLUDED.query_key,
        updated_at = EXCLUDED.updated_at,
        product_hashes = EXCLUDED.product_hashes,
        variant_hashes = EXCLUDED.variant_hashes,
        variant_list_hash = EXCLUDED.variant_list_hash,
        data = EXCLUDED.data
    WHERE product_cache.updated_at < EXCLUDED.updated_at
    RETURNING product_id
"""

# Tombstone: keeps the stored payload, flips the flag, bumps updated_at.
_SOFT_DELETE_SQL = """
    INSERT INTO product_cache (product_id, supplier_id, platform, deleted, updated_at)
    VALUES (%(product_id)s, %(supplier_id)s, %(platform)s, TRUE, %(updated_at)s)
    ON CONFLICT (product_id, supplier_id) DO UPDATE SET
        deleted = TRUE,
        updated_at = EXCLUDED.updated_at
    WHERE product_cache.updated_at < EXCLUDED.updated_at
    RETURNING product_id
"""

_SELECT_COLUMNS = """
    product_id, supplier_id, platform, deleted, query_key, updated_at,
    product_hashes, variant_hashes, variant_list_hash, data
"""


class PostgresCacheStore:
    """product_cache table; the write condition lives in the ON CONFLICT ... WHERE clause."""

    def upsert(self, record: CacheRecord) -> UpsertOutcome:
        params = {
            "product_id": record.product_id,
            "supplier_id": record.supplier_id,
            "platform": record.platform.value,
            "deleted": record.deleted,
            "query_key": record.query_key,
            "updated_at": record.updated_at,
            "product_hashes": Jsonb(
                {
                    "general_hash": record.product_hashes.general_hash,
                    "status_hash": record.product_hashes.status_hash,
                }
            ),
            "variant_hashes": Jsonb(record.variant_hashes),
            "variant_list_hash": record.variant_list_hash,
            "data": Jsonb(record.data),
        }
        return self._conditional_write(_UPSERT_SQL, params, record.key)

    def soft_delete(
        self,
        product_id: str,
        supplier_id: str,
        platform: Platform,
        updated_at: datetime | None = None,
    ) -> UpsertOutcome:
        params = {
            "product_id": product_id,
            "supplier_id": supplier_id,
            "platform": Platform(platform).value,
            "updated_at": ensure_aware(updated_at) if updated_at else utcnow(),
        }
        return self._conditional_write(_SOFT_DELETE_SQL, params, (product_id, supplier_id))

    def _conditional_write(self, sql: str, params: dict, key: tuple[str, str]) -> UpsertOutcome:
        try:
            with db._get_conn() as conn:
                row = conn.execute(sql, params).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Cache write failed for {key}") from exc
        if row is None:
            logger.debug("Stale cache write discarded for %s", key)
            return UpsertOutcome.STALE
        return UpsertOutcome.APPLIED

    def get(self, product_id: str, supplier_id: str) -> CacheRecord | None:
        try:
            with db._get_conn() as conn:
                row = conn.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM product_cache "
                    "WHERE product_id = %s AND supplier_id = %s",
                    (product_id, supplier_id),
                ).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Cache read failed for {(product_id, supplier_id)}") from exc
        return CacheRecord.from_dict(row) if row else None

    def scan(self, supplier_id: str) -> list[CacheRecord]:
        try:
            with db._get_conn() as conn:
                rows = conn.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM product_cache WHERE supplier_id = %s",
                    (supplier_id,),
                ).fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Cache scan failed for supplier {supplier_id}") from exc
        return [CacheRecord.from_dict(r) for r in rows]
