"""Audit trail: append-only log of accepted cache mutations.

Entries are keyed by (hash_key, timestamp) where hash_key is
"{product_id}-{supplier_id}" and timestamp is the mutation's updated_at.
Retention is enforced by the store: expired entries are hidden from reads
and dropped by purge_expired() (run from the scheduler).
"""

from __future__ import annotations

import copy
import logging
import os
import threading
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

import psycopg
from psycopg.types.json import Jsonb

from catalog_sync import db
from catalog_sync.errors import AuditWriteFailed, StorageError
from catalog_sync.models import AuditRecord, utcnow

logger = logging.getLogger(__name__)

AUDIT_TTL = timedelta(days=int(os.environ.get("AUDIT_TTL_DAYS", "30")))


def _with_expiry(record: AuditRecord, now: datetime) -> AuditRecord:
    stamped = copy.deepcopy(record)
    if stamped.expires_at is None:
        stamped.expires_at = now + AUDIT_TTL
    return stamped


@runtime_checkable
class AuditTrail(Protocol):
    def append(self, record: AuditRecord) -> None:
        ...

    def query_by_key(self, hash_key: str) -> list[AuditRecord]:
        ...

    def purge_expired(self) -> int:
        ...


class InMemoryAuditTrail:
    """In-process audit trail; expiry is evaluated against the wall clock on read."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, datetime], AuditRecord] = {}
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        stamped = _with_expiry(record, utcnow())
        with self._lock:
            # Same (hash_key, timestamp) overwrites, like a keyed put.
            self._entries[(stamped.hash_key, stamped.timestamp)] = stamped

    def query_by_key(self, hash_key: str) -> list[AuditRecord]:
        now = utcnow()
        with self._lock:
            entries = [
                copy.deepcopy(e)
                for (key, _), e in self._entries.items()
                if key == hash_key and e.expires_at > now
            ]
        return sorted(entries, key=lambda e: e.timestamp)

    def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for k in expired:
                del self._entries[k]
        return len(expired)


class PostgresAuditTrail:
    """product_audit table with an expires_at column."""

    def append(self, record: AuditRecord) -> None:
        stamped = _with_expiry(record, utcnow())
        try:
            with db._get_conn() as conn:
                conn.execute(
                    """INSERT INTO product_audit
                           (hash_key, "timestamp", action, actor, platform,
                            product_id, supplier_id, data, expires_at)
                       VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                       ON CONFLICT (hash_key, "timestamp") DO NOTHING""",
                    (
                        stamped.hash_key,
                        stamped.timestamp,
                        stamped.action.value,
                        stamped.actor.value,
                        stamped.platform.value,
                        stamped.product_id,
                        stamped.supplier_id,
                        Jsonb(stamped.data) if stamped.data is not None else None,
                        stamped.expires_at,
                    ),
                )
        except psycopg.Error as exc:
            raise AuditWriteFailed(f"Audit append failed for {stamped.hash_key}") from exc

    def query_by_key(self, hash_key: str) -> list[AuditRecord]:
        try:
            with db._get_conn() as conn:
                rows = conn.execute(
                    """SELECT hash_key, "timestamp", action, actor, platform,
                              product_id, supplier_id, data, expires_at
                       FROM product_audit
                       WHERE hash_key = %s AND expires_at > now()
                       ORDER BY "timestamp" ASC""",
                    (hash_key,),
                ).fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Audit query failed for {hash_key}") from exc
        return [AuditRecord(**row) for row in rows]

    def purge_expired(self) -> int:
        try:
            with db._get_conn() as conn:
                result = conn.execute("DELETE FROM product_audit WHERE expires_at <= now()")
                return result.rowcount
        except psycopg.Error as exc:
            raise StorageError("Audit retention purge failed") from exc
