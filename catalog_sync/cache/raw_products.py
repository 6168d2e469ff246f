"""Supplier-scoped raw product catalog (the primary EDI/storefront payloads).

Records are keyed by (supplier_code, hash_key). EDI ingestion owns a
supplier's rows for the duration of a run and replaces them wholesale.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Protocol, runtime_checkable

import psycopg
from psycopg.types.json import Jsonb

from catalog_sync import db
from catalog_sync.errors import StorageError
from catalog_sync.models import RawSupplierRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class RawProductStore(Protocol):
    def put(self, record: RawSupplierRecord) -> None:
        ...

    def get(self, supplier_code: str, hash_key: str) -> RawSupplierRecord | None:
        ...

    def get_many(self, supplier_code: str, hash_keys: list[str]) -> list[RawSupplierRecord]:
        ...

    def scan(self, supplier_code: str, limit: int | None = None) -> list[RawSupplierRecord]:
        ...

    def delete_all(self, supplier_code: str) -> int:
        ...


class InMemoryRawProductStore:
    def __init__(self) -> None:
        self._records: dict[str, dict[str, RawSupplierRecord]] = {}
        self._lock = threading.Lock()

    def put(self, record: RawSupplierRecord) -> None:
        with self._lock:
            self._records.setdefault(record.supplier_code, {})[record.hash_key] = copy.deepcopy(record)

    def get(self, supplier_code: str, hash_key: str) -> RawSupplierRecord | None:
        with self._lock:
            record = self._records.get(supplier_code, {}).get(hash_key)
            return copy.deepcopy(record) if record else None

    def get_many(self, supplier_code: str, hash_keys: list[str]) -> list[RawSupplierRecord]:
        with self._lock:
            bucket = self._records.get(supplier_code, {})
            return [copy.deepcopy(bucket[k]) for k in hash_keys if k in bucket]

    def scan(self, supplier_code: str, limit: int | None = None) -> list[RawSupplierRecord]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records.get(supplier_code, {}).values()]
        return records[:limit] if limit is not None else records

    def delete_all(self, supplier_code: str) -> int:
        with self._lock:
            removed = self._records.pop(supplier_code, {})
        return len(removed)


_COLUMNS = "hash_key, supplier_code, query_key, platform, deleted, data"


class PostgresRawProductStore:
    """supplier_products table."""

    def put(self, record: RawSupplierRecord) -> None:
        try:
            with db._get_conn() as conn:
                conn.execute(
                    """INSERT INTO supplier_products
                           (supplier_code, hash_key, query_key, platform, deleted, data)
                       VALUES (%s, %s, %s, %s, %s, %s)
                       ON CONFLICT (supplier_code, hash_key) DO UPDATE SET
                           query_key = EXCLUDED.query_key,
                           platform = EXCLUDED.platform,
                           deleted = EXCLUDED.deleted,
                           data = EXCLUDED.data""",
                    (
                        record.supplier_code,
                        record.hash_key,
                        record.query_key,
                        record.platform.value,
                        record.deleted,
                        Jsonb(record.data),
                    ),
                )
        except psycopg.Error as exc:
            raise StorageError(f"Raw product write failed for {record.hash_key}") from exc

    def get(self, supplier_code: str, hash_key: str) -> RawSupplierRecord | None:
        try:
            with db._get_conn() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM supplier_products WHERE supplier_code = %s AND hash_key = %s",
                    (supplier_code, hash_key),
                ).fetchone()
        except psycopg.Error as exc:
            raise StorageError(f"Raw product read failed for {hash_key}") from exc
        return RawSupplierRecord(**row) if row else None

    def get_many(self, supplier_code: str, hash_keys: list[str]) -> list[RawSupplierRecord]:
        if not hash_keys:
            return []
        try:
            with db._get_conn() as conn:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM supplier_products WHERE supplier_code = %s AND hash_key = ANY(%s)",
                    (supplier_code, list(hash_keys)),
                ).fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Raw product batch read failed for {supplier_code}") from exc
        return [RawSupplierRecord(**r) for r in rows]

    def scan(self, supplier_code: str, limit: int | None = None) -> list[RawSupplierRecord]:
        sql = f"SELECT {_COLUMNS} FROM supplier_products WHERE supplier_code = %s ORDER BY hash_key"
        params: tuple = (supplier_code,)
        if limit is not None:
            sql += " LIMIT %s"
            params = (supplier_code, limit)
        try:
            with db._get_conn() as conn:
                rows = conn.execute(sql, params).fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Raw product scan failed for {supplier_code}") from exc
        return [RawSupplierRecord(**r) for r in rows]

    def delete_all(self, supplier_code: str) -> int:
        try:
            with db._get_conn() as conn:
                result = conn.execute(
                    "DELETE FROM supplier_products WHERE supplier_code = %s",
                    (supplier_code,),
                )
                return result.rowcount
        except psycopg.Error as exc:
            raise StorageError(f"Raw product delete failed for {supplier_code}") from exc
